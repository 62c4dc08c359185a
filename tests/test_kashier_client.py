from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import httpx
import pytest

from workshop_payments.config import Settings
from workshop_payments.domain.errors import GatewayError
from workshop_payments.providers.kashier import KashierClient


def _response(method: str, url: str, status_code: int, **kwargs) -> httpx.Response:
    return httpx.Response(status_code, request=httpx.Request(method, url), **kwargs)


def test_mode_selects_base_url(test_settings: Settings) -> None:
    assert KashierClient(test_settings).base_url == "https://test-api.kashier.io"
    live = test_settings.model_copy(update={"kashier_mode": "live"})
    assert KashierClient(live).base_url == "https://api.kashier.io"


def test_build_session_payload(test_settings: Settings) -> None:
    client = KashierClient(test_settings)
    now = datetime(2026, 1, 1, 10, 0, 0, 250000, tzinfo=timezone.utc)
    payload = client.build_session_payload(
        amount="100",
        currency="EGP",
        order="order-1",
        merchant_redirect="https://x/r",
        customer_email="a@b.co",
        now=now,
    )
    assert payload["expireAt"] == "2026-01-01T11:00:00.250Z"
    assert payload["maxFailureAttempts"] == 3
    assert payload["paymentType"] == "credit"
    assert payload["defaultMethod"] == "card"
    assert payload["retrieveSavedCard"] is False
    assert payload["merchantId"] == "MID-123"
    assert payload["description"] == "Payment for order-1"
    assert payload["customer"] == {"email": "a@b.co", "reference": ""}
    assert payload["serverWebhook"] == "https://api.example.org/api/payment/webhook"
    assert payload["metaData"] == {}


def test_create_session_posts_with_credentials(monkeypatch: pytest.MonkeyPatch, test_settings: Settings) -> None:
    calls: list[tuple[str, dict]] = []

    async def fake_post(self, url, headers=None, json=None, **kwargs):  # type: ignore[override]
        calls.append((str(url), headers))
        return _response("POST", url, 201, json={"_id": "sess_9", "sessionUrl": "https://pay/sess_9"})

    monkeypatch.setattr(httpx.AsyncClient, "post", fake_post)
    data = asyncio.run(KashierClient(test_settings).create_session({"amount": "5"}))
    assert data["_id"] == "sess_9"
    url, headers = calls[0]
    assert url == "https://test-api.kashier.io/v3/payment/sessions"
    assert headers["Authorization"] == "secret-1"
    assert headers["api-key"] == "key-1"


def test_create_session_rejected(monkeypatch: pytest.MonkeyPatch, test_settings: Settings) -> None:
    async def fake_post(self, url, headers=None, json=None, **kwargs):  # type: ignore[override]
        return _response("POST", url, 400, json={"message": "invalid merchantRedirect"})

    monkeypatch.setattr(httpx.AsyncClient, "post", fake_post)
    with pytest.raises(GatewayError) as excinfo:
        asyncio.run(KashierClient(test_settings).create_session({"amount": "5"}))
    assert excinfo.value.status_code == 400
    assert excinfo.value.body == {"message": "invalid merchantRedirect"}


def test_verify_session_returns_payload(monkeypatch: pytest.MonkeyPatch, test_settings: Settings) -> None:
    urls: list[str] = []

    async def fake_get(self, url, headers=None, **kwargs):  # type: ignore[override]
        urls.append(str(url))
        return _response("GET", url, 200, json={"message": "ok", "data": {"status": "PAID"}})

    monkeypatch.setattr(httpx.AsyncClient, "get", fake_get)
    client = KashierClient(test_settings)
    data = asyncio.run(client.verify_session("abc"))
    assert urls == ["https://test-api.kashier.io/v3/payment/sessions/abc/payment"]
    assert client.extract_payment(data) == {"status": "PAID"}


def test_verify_session_error_includes_status_and_body(
    monkeypatch: pytest.MonkeyPatch, test_settings: Settings
) -> None:
    async def fake_get(self, url, headers=None, **kwargs):  # type: ignore[override]
        return _response("GET", url, 404, text="session not found")

    monkeypatch.setattr(httpx.AsyncClient, "get", fake_get)
    with pytest.raises(GatewayError) as excinfo:
        asyncio.run(KashierClient(test_settings).verify_session("missing"))
    assert "404" in str(excinfo.value)
    assert "session not found" in str(excinfo.value)


def test_verify_session_transport_error(monkeypatch: pytest.MonkeyPatch, test_settings: Settings) -> None:
    async def fake_get(self, url, headers=None, **kwargs):  # type: ignore[override]
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(httpx.AsyncClient, "get", fake_get)
    with pytest.raises(GatewayError):
        asyncio.run(KashierClient(test_settings).verify_session("abc"))


def test_store_defaults_to_postgres_when_database_configured(test_settings: Settings) -> None:
    assert test_settings.model_copy(update={"store_backend": ""}).store_kind == "memory"
    configured = test_settings.model_copy(
        update={"store_backend": "", "db_host": "db", "db_user": "app", "db_name": "payments"}
    )
    assert configured.store_kind == "postgres"
    forced = configured.model_copy(update={"store_backend": "Memory"})
    assert forced.store_kind == "memory"
