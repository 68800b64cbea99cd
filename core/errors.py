"""Errors raised by the task lifecycle operations."""

from __future__ import annotations

from fastapi import status


class TaskError(Exception):
    """Base class for errors surfaced to the caller of TaskService."""

    code = "task_error"
    http_status = status.HTTP_400_BAD_REQUEST


class AdmissionRejected(TaskError):
    """Raised when the store already holds the maximum number of active tasks."""

    code = "admission_rejected"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, active: int, limit: int) -> None:
        self.active = active
        self.limit = limit
        super().__init__(f"Server busy: {active} active tasks (limit {limit}).")


class TaskNotFound(TaskError):
    code = "task_not_found"
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task with id {task_id} not found.")


class TaskNotAcceptingSubmissions(TaskError):
    """Raised when URLs are submitted to a task that is processing or finished."""

    code = "task_not_accepting"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, task_id: str, task_status: str) -> None:
        self.task_id = task_id
        self.task_status = task_status
        super().__init__(
            f"Task {task_id} no longer accepts links. The task is {task_status}."
        )


class ArchiveError(Exception):
    """Raised by the archiver when the bundle cannot be written."""


class DownloadError(Exception):
    """Raised by a single download unit; the message ends up in the task errors."""
