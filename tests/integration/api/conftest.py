from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from core.kernel import create_default_kernel
from web.server import create_app


@pytest.fixture()
def app_client(settings, fake_web):
    app = create_app(
        settings,
        kernel_factory=lambda: create_default_kernel(settings, transport=fake_web.transport),
    )
    with TestClient(app) as client:
        yield client
