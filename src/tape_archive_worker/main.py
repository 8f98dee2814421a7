"""FastAPI application entrypoint."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from tape_archive_worker import __version__
from tape_archive_worker.api import api_router
from tape_archive_worker.api.dependencies import get_settings, get_tape_worker

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Build FastAPI application."""

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        """Build the worker at startup and run it for the app's lifetime."""

        settings = get_settings()
        worker = get_tape_worker()
        if settings.worker_enabled:
            await worker.start()
        else:
            logger.info("TAPE_WORKER_WORKER_ENABLED=false; serving management API only.")
        try:
            yield
        finally:
            await worker.stop()

    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()


def run() -> None:
    """Run the worker and its management API."""

    settings = get_settings()
    uvicorn.run(
        "tape_archive_worker.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
    )


__all__ = ["app", "create_app", "run"]
