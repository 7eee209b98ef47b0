"""Shared fixtures: gateway app wired to simulated downstream services."""
import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest
from fastapi.testclient import TestClient

from api_gateway.config.settings import Settings
from api_gateway.main import create_app

AUTH_URL = "http://auth.test"
USERS_URL = "http://users.test"
INTERNAL_KEY = "test-internal-key"

Handler = Callable[[httpx.Request], httpx.Response]


class FakeBackends:
    """Routes httpx requests to canned handlers and records every call."""

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Handler] = {}
        self.calls: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        key = (request.method, f"{request.url.host}{request.url.path}")
        handler = self.routes.get(key)
        if handler is None:
            return httpx.Response(404, json={"error": "Not Found"})
        return handler(request)

    def on(self, method: str, url: str, handler: Handler) -> None:
        key = (method, url.split("://", 1)[1])
        self.routes[key] = handler

    def reply(self, method: str, url: str, status_code: int = 200, payload: Any = None) -> None:
        self.on(method, url, lambda request: httpx.Response(status_code, json=payload))

    def fail(self, method: str, url: str, exc_type: type = httpx.ConnectError) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise exc_type("simulated failure", request=request)

        self.on(method, url, handler)

    def calls_to(self, url: str) -> List[httpx.Request]:
        host_path = url.split("://", 1)[1]
        return [c for c in self.calls if f"{c.url.host}{c.url.path}" == host_path]

    def token_valid(self, user: Dict[str, Any]) -> None:
        self.reply("POST", f"{AUTH_URL}/validate-token", 200, {"valid": True, "user": user})


def body_of(request: httpx.Request) -> Optional[Any]:
    return json.loads(request.content) if request.content else None


@pytest.fixture
def settings() -> Settings:
    return Settings(
        auth_service_url=AUTH_URL,
        users_service_url=USERS_URL,
        internal_api_key=INTERNAL_KEY,
        downstream_timeout=2.0,
        log_format="console",
    )


@pytest.fixture
def backends() -> FakeBackends:
    return FakeBackends()


@pytest.fixture
def transport(backends) -> httpx.MockTransport:
    return httpx.MockTransport(backends)


@pytest.fixture
def app(settings, transport):
    return create_app(settings, transport=transport)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def alice() -> Dict[str, Any]:
    return {"id": 1, "name": "Alice"}


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return {"Authorization": "Bearer valid-token"}
