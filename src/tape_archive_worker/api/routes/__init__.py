"""Route modules public API."""

from tape_archive_worker.api.routes.health import router as health_router
from tape_archive_worker.api.routes.management import router as management_router

__all__ = ["health_router", "management_router"]
