"""FastAPI dependency providers."""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Callable

from fastapi import FastAPI, Request

import config
from core.kernel import Kernel, create_default_kernel
from core.task_store import TaskService

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT_SECONDS: float | None = None


def _build_task_service(
    settings: config.Settings, kernel_factory: Callable[[], Kernel] | None = None
) -> TaskService:
    return TaskService(
        kernel_factory=kernel_factory or partial(create_default_kernel, settings),
        settings=settings,
    )


def initialize_app_services(app: FastAPI, settings: config.Settings | None = None) -> None:
    """Build every app-scoped service once, from the lifespan.

    The ``get_*`` dependencies assume this already ran and only read state.
    """
    settings = settings or getattr(app.state, "settings", None) or config.SETTINGS
    app.state.settings = settings
    app.state.task_service = _build_task_service(
        settings, getattr(app.state, "kernel_factory", None)
    )
    logger.info(
        "App services ready (max_active_tasks=%d, max_urls_per_task=%d).",
        settings.max_active_tasks,
        settings.max_urls_per_task,
    )


async def shutdown_app_services(app: FastAPI) -> None:
    """Stop app-scoped services during shutdown."""
    task_service: TaskService | None = getattr(app.state, "task_service", None)
    if task_service is not None:
        try:
            await asyncio.to_thread(
                task_service.stop, timeout_seconds=SHUTDOWN_TIMEOUT_SECONDS
            )
        except Exception:
            logger.exception("Error while stopping TaskService.")


def get_task_service(request: Request) -> TaskService:
    """Return the app-scoped TaskService."""
    return request.app.state.task_service  # type: ignore[no-any-return]


def get_settings(request: Request) -> config.Settings:
    return request.app.state.settings  # type: ignore[no-any-return]
