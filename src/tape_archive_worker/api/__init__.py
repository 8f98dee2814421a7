"""HTTP API for health checks and operator actions."""

from tape_archive_worker.api.router import api_router

__all__ = ["api_router"]
