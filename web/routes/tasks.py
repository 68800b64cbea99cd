"""Task lifecycle routes."""

from __future__ import annotations

from fastapi import APIRouter, Body, Depends

from core.task_store import TaskService
from web.dependencies import get_task_service
from web.schemas import AddURLsRequest, AddURLsResponse, TaskResponse

router = APIRouter(tags=["tasks"])


@router.post("/task", response_model=TaskResponse, response_model_exclude_none=True)
def create_task(
    task_service: TaskService = Depends(get_task_service),
) -> TaskResponse:
    """Register a new task in ``pending``."""
    return TaskResponse.from_snapshot(task_service.create_task())


@router.post(
    "/task/{task_id}",
    response_model=AddURLsResponse,
    response_model_exclude_none=True,
)
def add_urls(
    task_id: str,
    data: AddURLsRequest = Body(...),
    task_service: TaskService = Depends(get_task_service),
) -> AddURLsResponse:
    """Validate and attach links; the link that fills the quota starts the download."""
    outcome = task_service.add_urls(task_id, data.urls)
    return AddURLsResponse.from_outcome(outcome)


@router.get(
    "/task/{task_id}",
    response_model=TaskResponse,
    response_model_exclude_none=True,
)
def get_status(
    task_id: str,
    task_service: TaskService = Depends(get_task_service),
) -> TaskResponse:
    return TaskResponse.from_snapshot(task_service.get_status(task_id))
