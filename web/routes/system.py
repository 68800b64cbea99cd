"""Health and limits routes."""

from __future__ import annotations

import time

from fastapi import APIRouter, Depends, Request

import config
from core.task_store import TaskService
from web.dependencies import get_settings, get_task_service
from web.schemas import HealthResponse, LimitsResponse

router = APIRouter(prefix="/api", tags=["system"])


def _uptime(request: Request) -> float:
    started_at = float(getattr(request.app.state, "started_at", time.monotonic()))
    return max(0.0, time.monotonic() - started_at)


def _app_version(request: Request) -> str:
    return str(getattr(request.app.state, "app_version", "dev"))


@router.get("/health", response_model=HealthResponse)
def health(
    request: Request,
    task_service: TaskService = Depends(get_task_service),
) -> HealthResponse:
    return HealthResponse(
        status="ok",
        uptime_seconds=_uptime(request),
        version=_app_version(request),
        active_tasks=task_service.store.count_active(),
    )


@router.get("/limits", response_model=LimitsResponse)
def limits(settings: config.Settings = Depends(get_settings)) -> LimitsResponse:
    return LimitsResponse(
        max_active_tasks=settings.max_active_tasks,
        max_urls_per_task=settings.max_urls_per_task,
        allowed_extensions=sorted(settings.allowed_extensions),
        download_max_bytes=settings.download_max_bytes,
    )
