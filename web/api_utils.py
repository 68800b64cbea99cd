"""Shared API response helpers."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from fastapi.responses import JSONResponse

from web.schemas import ErrorResponse


class ErrorCode(StrEnum):
    """Stable error codes exposed by the API."""

    BAD_REQUEST = "bad_request"
    TASK_ERROR = "task_error"
    ADMISSION_REJECTED = "admission_rejected"
    TASK_NOT_FOUND = "task_not_found"
    TASK_NOT_ACCEPTING = "task_not_accepting"


def error_response(
    message: str,
    status_code: int,
    code: ErrorCode | str = ErrorCode.BAD_REQUEST,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Build a stable error payload with ``code`` and optional ``details``.

    Args:
        message:     Human readable description.
        status_code: HTTP status. Must be 4xx or 5xx.
        code:        Machine readable code (``ErrorCode``).
        details:     Extra fields for debugging.
    """
    if not (400 <= status_code < 600):
        raise ValueError(
            f"error_response requires a 4xx/5xx status, got: {status_code}"
        )
    payload = ErrorResponse(error=message, code=str(code), details=details).model_dump(
        exclude_none=True
    )
    return JSONResponse(content=payload, status_code=status_code)
