"""Shared fixtures: an app wired to an in-process upstream."""

import httpx
import pytest
from fastapi.testclient import TestClient

from relay.config import Settings, get_settings
from relay.main import app, get_transport


class Upstream:
    """Records outbound requests and answers them with a configurable handler."""

    def __init__(self):
        self.requests = []
        self.handler = lambda request: httpx.Response(200, content=b"")

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def methods(self):
        return [r.method for r in self.requests]


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def client(upstream, settings):
    app.dependency_overrides[get_transport] = lambda: httpx.MockTransport(upstream)
    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
    app.dependency_overrides.clear()
