"""Shared test fixtures."""
import json
from collections.abc import Callable

import httpx
import pytest
from fastapi.testclient import TestClient

from clinic_api.api.deps import get_http_client, get_settings, get_verification_manager
from clinic_api.core.config import Settings
from clinic_api.main import app
from clinic_api.services.verification_service import VerificationCodeManager

CRM_URL = "https://crm.test"
GATEWAY_URL = "https://wa.test"


class FakeUpstream:
    """Routes (method, path) to canned responses and records every request."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, status_code: int = 200, json_body=None, handler=None) -> None:
        if handler is None:
            def handler(request: httpx.Request) -> httpx.Response:
                return httpx.Response(status_code, json=json_body)
        self.routes[(method, path)] = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"error": f"no fake for {request.method} {request.url.path}"})
        return handler(request)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    @staticmethod
    def body(request: httpx.Request) -> dict:
        return json.loads(request.content)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        frappe_crm_url=CRM_URL,
        frappe_api_key="key",
        frappe_api_secret="secret",
        mercadopago_access_token="TEST-token",
        mercadopago_api_url="https://mp.test",
        site_url="https://clinic.test",
        whatsapp_service_url=GATEWAY_URL,
        whatsapp_api_key="wa-key",
    )


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def manager() -> VerificationCodeManager:
    return VerificationCodeManager()


@pytest.fixture
def client(test_settings, upstream, manager):
    """FastAPI test client with every upstream call served by ``upstream``."""

    async def _http_client():
        async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as http:
            yield http

    app.dependency_overrides[get_http_client] = _http_client
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_verification_manager] = lambda: manager
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
