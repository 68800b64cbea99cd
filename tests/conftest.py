from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import httpx
import pytest

import config
from core.kernel import create_default_kernel
from core.task_store import TaskService


@dataclass
class FakeResource:
    body: bytes = b"payload"
    content_type: str | None = "image/jpeg"
    status_code: int = 200
    head_status_code: int | None = None
    fail_get: bool = False


class FakeWeb:
    """In-memory web served through ``httpx.MockTransport``.

    Unknown URLs fail with a connection error. GETs can be held back with
    ``gate`` to freeze a pipeline mid-download.
    """

    def __init__(self) -> None:
        self.resources: dict[str, FakeResource] = {}
        self.calls: list[tuple[str, str]] = []
        self.gate: threading.Event | None = None
        self.get_started = threading.Event()
        self._lock = threading.Lock()

    def add(self, url: str, **kwargs) -> str:
        self.resources[url] = FakeResource(**kwargs)
        return url

    def urls_called(self, method: str) -> list[str]:
        with self._lock:
            return [url for m, url in self.calls if m == method]

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        with self._lock:
            self.calls.append((request.method, url))

        resource = self.resources.get(url)
        if resource is None:
            raise httpx.ConnectError("connection refused", request=request)

        headers = {"content-type": resource.content_type} if resource.content_type else {}
        if request.method == "HEAD":
            status_code = resource.head_status_code or resource.status_code
            return httpx.Response(status_code, headers=headers, request=request)

        self.get_started.set()
        if self.gate is not None:
            self.gate.wait(timeout=5.0)
        if resource.fail_get:
            raise httpx.ReadError("connection reset", request=request)
        return httpx.Response(
            resource.status_code, headers=headers, content=resource.body, request=request
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def make_settings(tmp_path: Path, **overrides) -> config.Settings:
    values = {
        "max_active_tasks": 2,
        "max_urls_per_task": 3,
        "allowed_extensions": "jpeg,pdf",
        "probe_timeout": 1.0,
        "download_timeout": 2.0,
        "download_dir": tmp_path / "downloads",
        "archive_dir": tmp_path / "archives",
        "archive_base_url": "http://testserver/archives/",
        "pipeline_workers": 2,
    }
    values.update(overrides)
    return config.Settings(**values)


@pytest.fixture()
def fake_web() -> FakeWeb:
    return FakeWeb()


@pytest.fixture()
def settings(tmp_path: Path) -> config.Settings:
    return make_settings(tmp_path)


@pytest.fixture()
def settings_factory(tmp_path: Path) -> Callable[..., config.Settings]:
    return lambda **overrides: make_settings(tmp_path, **overrides)


@pytest.fixture()
def kernel_factory(fake_web: FakeWeb):
    def _factory(settings: config.Settings):
        return create_default_kernel(settings, transport=fake_web.transport)

    return _factory


@pytest.fixture()
def service_factory(kernel_factory):
    services: list[TaskService] = []

    def _factory(settings: config.Settings) -> TaskService:
        service = TaskService(kernel_factory=lambda: kernel_factory(settings), settings=settings)
        services.append(service)
        return service

    yield _factory
    for service in services:
        service.stop(timeout_seconds=5.0)


@pytest.fixture()
def service(service_factory, settings) -> TaskService:
    return service_factory(settings)


@pytest.fixture()
def wait_for_status():
    def _wait(
        service: TaskService,
        task_id: str,
        expected: set[str] | str,
        timeout: float = 5.0,
        interval: float = 0.02,
    ):
        wanted = {expected} if isinstance(expected, str) else set(expected)
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            snapshot = service.get_status(task_id)
            if snapshot.task.status in wanted:
                return snapshot
            time.sleep(interval)
        actual = service.get_status(task_id).task.status
        raise TimeoutError(
            f"task {task_id!r} did not reach {sorted(wanted)!r} in {timeout}s (actual: {actual!r})"
        )

    return _wait
