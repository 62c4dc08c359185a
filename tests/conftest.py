from __future__ import annotations

import pathlib
import sys
from typing import Any

import pytest
from fastapi.testclient import TestClient

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from workshop_payments.config import Settings
from workshop_payments.dependencies import get_gateway, get_notifier, get_store
from workshop_payments.main import app
from workshop_payments.notifications.appscript import AppsScriptClient
from workshop_payments.providers.kashier import KashierClient
from workshop_payments.repositories.memory_store import InMemoryPaymentStore


class FakeKashier(KashierClient):
    """Records calls instead of talking to Kashier."""

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self.created: list[dict[str, Any]] = []
        self.verified: list[str] = []
        self.create_response: dict[str, Any] = {
            "_id": "sess_1",
            "sessionUrl": "https://checkout.kashier.io/session/sess_1",
            "status": "CREATED",
        }
        self.create_error: Exception | None = None
        self.verify_error: Exception | None = None
        self.payments: dict[str, dict[str, Any]] = {}

    async def create_session(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.created.append(payload)
        if self.create_error:
            raise self.create_error
        return dict(self.create_response)

    async def verify_session(self, session_id: str) -> dict[str, Any]:
        self.verified.append(session_id)
        if self.verify_error:
            raise self.verify_error
        payment = {"sessionId": session_id, "status": "PENDING"}
        payment.update(self.payments.get(session_id, {}))
        return {"message": "success", "data": payment}


class FakeAppsScript(AppsScriptClient):
    def __init__(self, settings: Settings):
        super().__init__(settings)
        self.registrations: list[dict[str, Any]] = []
        self.receipts: list[dict[str, Any]] = []
        self.error: Exception | None = None

    async def forward_registration(self, payload: dict[str, Any]) -> str:
        if self.error:
            raise self.error
        self.registrations.append(payload)
        return '{"ok":true}'

    async def send_receipt(self, payload: dict[str, Any]) -> str:
        if self.error:
            raise self.error
        self.receipts.append(payload)
        return '{"ok":true,"sent":"receipt"}'


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        server_base="https://api.example.org",
        appscript_url="https://script.google.com/macros/s/abc/exec",
        appscript_token="shh",
        kashier_mode="test",
        kashier_merchant_id="MID-123",
        kashier_api_key="key-1",
        kashier_secret="secret-1",
    )


@pytest.fixture
def store() -> InMemoryPaymentStore:
    return InMemoryPaymentStore()


@pytest.fixture
def gateway(test_settings: Settings) -> FakeKashier:
    return FakeKashier(test_settings)


@pytest.fixture
def notifier(test_settings: Settings) -> FakeAppsScript:
    return FakeAppsScript(test_settings)


@pytest.fixture
def client(store: InMemoryPaymentStore, gateway: FakeKashier, notifier: FakeAppsScript):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()

