"""Shared fixtures: an in-process app and raw starlette requests."""
from typing import Any, Callable
from urllib.parse import urlencode

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from webfram.app import create_app
from webfram.config import Settings


@pytest.fixture
def settings() -> Settings:
    return Settings(LOG_LEVEL="DEBUG", LOG_JSON=False, BIND_EAGER_RULE_CHECK=False)


@pytest.fixture
def app(settings):
    # Leave structlog unconfigured so capture_logs keeps working
    return create_app(settings, configure_logs=False)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_request() -> Callable[..., Request]:
    """Build a starlette Request without going through an app."""

    def _make(
        *,
        method: str = "POST",
        path: str = "/",
        query: dict[str, Any] | list[tuple[str, str]] | None = None,
        headers: dict[str, str] | None = None,
        body: bytes | str = b"",
        path_params: dict[str, Any] | None = None,
        cookies: dict[str, str] | None = None,
        content_type: str | None = None,
    ) -> Request:
        header_map = dict(headers or {})
        if content_type:
            header_map["content-type"] = content_type
        if cookies:
            header_map["cookie"] = "; ".join(f"{k}={v}" for k, v in cookies.items())
        payload = body.encode() if isinstance(body, str) else body
        scope = {
            "type": "http",
            "method": method,
            "path": path,
            "query_string": urlencode(query or {}, doseq=True).encode(),
            "headers": [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in header_map.items()],
            "path_params": path_params or {},
        }

        async def receive():
            return {"type": "http.request", "body": payload, "more_body": False}

        return Request(scope, receive)

    return _make
