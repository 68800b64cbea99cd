"""Core package exports with lazy imports."""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "Kernel",
    "create_default_kernel",
    "HttpClient",
    "TaskStore",
    "TaskService",
    "Task",
    "TaskStatus",
    "TaskSnapshot",
    "AddURLsOutcome",
    "InvalidURL",
]


def __getattr__(name: str) -> Any:
    if name in {"Kernel", "create_default_kernel"}:
        module = import_module(".kernel", __name__)
        return getattr(module, name)

    if name == "HttpClient":
        module = import_module(".http_client", __name__)
        return module.HttpClient

    if name in {"TaskStore", "TaskService"}:
        module = import_module(".task_store", __name__)
        return getattr(module, name)

    if name in {"Task", "TaskStatus", "TaskSnapshot", "AddURLsOutcome", "InvalidURL"}:
        module = import_module(".types", __name__)
        return getattr(module, name)

    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
