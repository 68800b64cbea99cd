"""FastAPI web server."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Callable

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import Response
from fastapi.staticfiles import StaticFiles

import config
from core.errors import TaskError
from core.kernel import Kernel
from web.api_utils import ErrorCode, error_response
from web.dependencies import initialize_app_services, shutdown_app_services

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@asynccontextmanager
async def _lifespan(app: FastAPI):
    """Start and stop every app-scoped service in order."""
    app.state.started_at = time.monotonic()
    app.state.app_version = config.APP_VERSION
    initialize_app_services(app)
    logger.info("App v%s started.", config.APP_VERSION)
    try:
        yield
    finally:
        await shutdown_app_services(app)
        logger.info("App shut down cleanly.")


def create_app(
    settings: config.Settings | None = None,
    *,
    kernel_factory: Callable[[], Kernel] | None = None,
) -> FastAPI:
    """Build the FastAPI app with the task routes and the archive file server."""
    from web.routes.system import router as system_router
    from web.routes.tasks import router as tasks_router

    settings = settings or config.SETTINGS
    archive_dir = (
        config.ARCHIVE_DIR
        if settings is config.SETTINGS
        else config.resolve_archive_dir(settings)
    )

    app = FastAPI(
        title="link-archiver",
        version=config.APP_VERSION,
        docs_url=None,
        redoc_url=None,
        openapi_url="/api/openapi.json",
        lifespan=_lifespan,
    )
    app.state.settings = settings
    app.state.kernel_factory = kernel_factory

    @app.exception_handler(TaskError)
    async def _handle_task_error(_: Request, exc: TaskError) -> Response:
        return error_response(str(exc), exc.http_status, code=ErrorCode(exc.code))

    for router in (tasks_router, system_router):
        app.include_router(router)

    app.mount("/archives", StaticFiles(directory=str(archive_dir)), name="archives")

    return app


def run_server(settings: config.Settings | None = None) -> None:
    """Configure logging and serve the app with Uvicorn."""
    settings = settings or config.SETTINGS
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    logger.info("Server starting on http://%s:%d", settings.host, settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


def main() -> None:
    """Module entry point: ``python -m web.server``."""
    run_server()


if __name__ == "__main__":
    main()
