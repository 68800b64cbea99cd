"""Shared type definitions for the task lifecycle."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path


class TaskStatus(StrEnum):
    PENDING = "pending"
    ADD_LINKS = "add_links"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


ACCEPTING_STATES = frozenset([TaskStatus.PENDING, TaskStatus.ADD_LINKS])
TERMINAL_STATES = frozenset([TaskStatus.COMPLETED, TaskStatus.FAILED])

# Allowed forward moves; anything else is a bug in the caller.
TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset([TaskStatus.ADD_LINKS]),
    TaskStatus.ADD_LINKS: frozenset([TaskStatus.PROCESSING]),
    TaskStatus.PROCESSING: frozenset([TaskStatus.COMPLETED, TaskStatus.FAILED]),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
}


class RejectionReason(StrEnum):
    """Why a submitted URL was not accepted."""

    MALFORMED_URL = "MalformedURL"
    UNREACHABLE = "Unreachable"
    MISSING_CONTENT_TYPE = "MissingContentType"
    DISALLOWED_TYPE = "DisallowedType"
    CANCELLED = "Cancelled"


@dataclass
class Task:
    """Mutable task record. Only TaskStore touches instances of this class."""

    id: str
    status: TaskStatus = TaskStatus.PENDING
    url_files: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    archive_url: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def copy(self, *, include_results: bool = True) -> Task:
        """Detached copy safe to hand out after the store lock is released."""
        return Task(
            id=self.id,
            status=self.status,
            url_files=list(self.url_files),
            errors=list(self.errors) if include_results else [],
            archive_url=self.archive_url if include_results else "",
        )


@dataclass(frozen=True)
class TaskSnapshot:
    task: Task
    active_task_ids: tuple[str, ...]
    completed_task_ids: tuple[str, ...]


@dataclass(frozen=True)
class InvalidURL:
    url: str
    reason: str


@dataclass(frozen=True)
class AddURLsOutcome:
    accepted: tuple[str, ...] = ()
    invalid: tuple[InvalidURL, ...] = ()
    rejected_by_quota: tuple[str, ...] = ()


@dataclass(frozen=True)
class DownloadBatch:
    """Collected result of one download fan-out."""

    files: tuple[Path, ...] = ()
    errors: tuple[str, ...] = ()

    @property
    def total(self) -> int:
        return len(self.files) + len(self.errors)
