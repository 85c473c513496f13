"""Общие фикстуры: приложение с поддельными backend'ом и Safepay."""

from __future__ import annotations

from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

from portal.app.main import create_app
from portal.app.services.safepay import SafepayClient

TEST_V1_SECRET = "test-v1-secret"


class FakeBackend:
    """
    Подменяет backend через httpx.MockTransport.

    Ответы задаются по (METHOD, path); всё остальное -> 404.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], tuple[int, Any]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, payload: Any = None, status_code: int = 200) -> None:
        self.routes[(method.upper(), path)] = (status_code, payload)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={"message": "Not found"})

        status_code, payload = self.routes[key]
        if isinstance(payload, Exception):
            raise payload
        if payload is None:
            return httpx.Response(status_code)
        return httpx.Response(status_code, json=payload)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def backend() -> FakeBackend:
    fake = FakeBackend()
    # guard кабинета клиента по умолчанию пропускает
    fake.add("GET", "/api/Reviews/PendingReviews", {"pendingReviewCount": 0, "orders": []})
    return fake


@pytest.fixture
def safepay_api() -> FakeBackend:
    fake = FakeBackend()
    fake.add("POST", "/order/v1/init", {"data": {"token": "track_123"}})
    return fake


@pytest.fixture
def safepay(safepay_api: FakeBackend) -> SafepayClient:
    return SafepayClient(
        api_key="sec_test_key",
        v1_secret=TEST_V1_SECRET,
        environment="sandbox",
        transport=safepay_api.transport,
    )


@pytest.fixture
def app(backend: FakeBackend, safepay: SafepayClient):
    return create_app(backend_transport=backend.transport, safepay=safepay)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app, follow_redirects=False)


@pytest.fixture
def login_as(client: TestClient, backend: FakeBackend):
    """Ставит cookie сессии и ответ /api/auth/me для нужной роли."""

    def _login(role: str, user_id: int = 1, **extra: Any) -> dict[str, Any]:
        user = {
            "userId": user_id,
            "username": f"{role}_user",
            "name": f"Test {role}",
            "email": f"{role}@example.com",
            "role": role,
            **extra,
        }
        backend.add("GET", "/api/auth/me", user)
        client.cookies.set("auth_token", f"token-{role}")
        return user

    return _login
