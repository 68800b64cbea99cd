"""Pydantic API contracts for FastAPI endpoints.

Naming convention:
  - ``*Request``  : inbound request body (validated strictly, no extra fields).
  - ``*Response`` : outbound payload (extra fields ignored on construction).
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.types import AddURLsOutcome, TaskSnapshot


class _RequestModel(BaseModel):
    """Base model for all inbound request payloads."""

    model_config = ConfigDict(extra="forbid")


class _ResponseModel(BaseModel):
    """Base model for all outbound response payloads."""

    model_config = ConfigDict(extra="ignore")


class ErrorResponse(_ResponseModel):
    """Stable error envelope used by error paths."""

    error: str
    code: str
    details: dict[str, Any] | None = None


class HealthResponse(_ResponseModel):
    status: str
    uptime_seconds: float
    version: str
    active_tasks: int


class LimitsResponse(_ResponseModel):
    max_active_tasks: int
    max_urls_per_task: int
    allowed_extensions: list[str]
    download_max_bytes: int


class TaskModel(_ResponseModel):
    id: str
    status: str
    url_archive: str | None = None
    errors: list[str] | None = None
    url_files: list[str] | None = None


class TaskResponse(_ResponseModel):
    task: TaskModel
    active_tasks: list[str] = Field(default_factory=list)
    completed_tasks: list[str] = Field(default_factory=list)

    @classmethod
    def from_snapshot(cls, snapshot: TaskSnapshot) -> TaskResponse:
        task = snapshot.task
        return cls(
            task=TaskModel(
                id=task.id,
                status=str(task.status),
                url_archive=task.archive_url or None,
                errors=list(task.errors) or None,
                url_files=list(task.url_files) or None,
            ),
            active_tasks=list(snapshot.active_task_ids),
            completed_tasks=list(snapshot.completed_task_ids),
        )


class InvalidURLModel(_ResponseModel):
    url: str
    reason: str


class AddURLsResponse(_ResponseModel):
    valid_urls: list[str] | None = None
    invalid_urls: list[InvalidURLModel] | None = None
    rejected_urls: list[str] | None = None

    @classmethod
    def from_outcome(cls, outcome: AddURLsOutcome) -> AddURLsResponse:
        return cls(
            valid_urls=list(outcome.accepted) or None,
            invalid_urls=[
                InvalidURLModel(url=item.url, reason=item.reason) for item in outcome.invalid
            ]
            or None,
            rejected_urls=list(outcome.rejected_by_quota) or None,
        )


class AddURLsRequest(_RequestModel):
    urls: list[str] = Field(min_length=1)

    @field_validator("urls", mode="before")
    @classmethod
    def _normalize_urls(cls, value: Any) -> Any:
        """Accept a single string as a one-item list."""
        if isinstance(value, str):
            return [value]
        return value
