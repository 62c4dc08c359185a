from __future__ import annotations

from fastapi.testclient import TestClient

from workshop_payments.domain.errors import DispatchRejectedError, GatewayError
from workshop_payments.domain.models import PaymentRecord


def _seed(store, status: str = "CREATED", **kwargs) -> PaymentRecord:
    values = {
        "session_id": "sess_1",
        "merchant_order_id": "order-1",
        "amount": "100",
        "currency": "EGP",
        "user": {"name": "Omar", "email": "omar@example.com"},
        "meta_data": {"workshopId": "ws-1", "program_title": "Robotics"},
    }
    values.update(kwargs)
    return store.create_payment(PaymentRecord(status=status, **values))


def test_status_requires_identifier(client: TestClient) -> None:
    assert client.get("/api/payment/status").status_code == 400


def test_status_unknown_order_is_404(client: TestClient, gateway) -> None:
    response = client.get("/api/payment/status", params={"merchantOrderId": "order-missing"})
    assert response.status_code == 404
    assert gateway.verified == []


def test_status_settled_payment_skips_verification(client: TestClient, store, gateway) -> None:
    _seed(store, status="PAID")
    response = client.get("/api/payment/status", params={"merchantOrderId": "order-1"})
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "PAID"
    assert body["verified"] is False
    assert body["payment"]["sessionId"] == "sess_1"
    assert gateway.verified == []


def test_status_reverifies_pending_payment(client: TestClient, store, gateway) -> None:
    _seed(store)
    gateway.payments["sess_1"] = {"status": "AUTHORIZED"}
    response = client.get("/api/payment/status", params={"merchantOrderId": "order-1"})
    assert response.status_code == 200
    assert response.json()["status"] == "AUTHORIZED"
    assert response.json()["verified"] is True
    assert store.get_payment_by_session_id("sess_1").status == "AUTHORIZED"


def test_status_bootstraps_record_from_session_id(client: TestClient, store, gateway) -> None:
    gateway.payments["sess_new"] = {"status": "PAID", "merchantOrderId": "order-new"}
    response = client.get("/api/payment/status", params={"sessionId": "sess_new"})
    assert response.status_code == 200
    assert response.json()["status"] == "PAID"
    assert store.get_payment_by_merchant_order_id("order-new").session_id == "sess_new"


def test_status_verification_failure(client: TestClient, store, gateway) -> None:
    _seed(store)
    gateway.verify_error = GatewayError("Kashier verify failed: 500 boom", status_code=500)
    response = client.get("/api/payment/status", params={"sessionId": "sess_1"})
    assert response.status_code == 500


def test_fulfill_requires_identifier(client: TestClient) -> None:
    assert client.post("/api/payment/fulfill", json={}).status_code == 400


def test_fulfill_unknown_record(client: TestClient) -> None:
    response = client.post("/api/payment/fulfill", json={"merchantOrderId": "order-missing"})
    assert response.status_code == 404


def test_fulfill_sends_receipt_once(client: TestClient, store, gateway, notifier) -> None:
    _seed(store)
    gateway.payments["sess_1"] = {"status": "PAID"}

    first = client.post("/api/payment/fulfill", json={"merchantOrderId": "order-1"})
    assert first.status_code == 200
    body = first.json()
    assert body == {
        "ok": True,
        "status": "PAID",
        "receiptSent": True,
        "receiptResponse": '{"ok":true,"sent":"receipt"}',
    }
    assert notifier.receipts[0]["email"] == "omar@example.com"
    assert notifier.receipts[0]["program_title"] == "Robotics"

    second = client.post("/api/payment/fulfill", json={"sessionId": "sess_1"})
    assert second.status_code == 200
    assert second.json()["receiptSent"] is True
    assert len(notifier.receipts) == 1
    assert gateway.verified == ["sess_1"]

    record = store.get_payment_by_session_id("sess_1")
    assert record.receipt_sent is True
    assert record.emailed_at is not None


def test_fulfill_not_successful(client: TestClient, store, gateway, notifier) -> None:
    _seed(store)
    gateway.payments["sess_1"] = {"status": "FAILED"}
    response = client.post("/api/payment/fulfill", json={"sessionId": "sess_1"})
    assert response.status_code == 400
    assert notifier.receipts == []
    assert store.get_payment_by_session_id("sess_1").status == "FAILED"


def test_fulfill_dispatch_failure_allows_retry(client: TestClient, store, gateway, notifier) -> None:
    _seed(store)
    gateway.payments["sess_1"] = {"status": "PAID"}
    notifier.error = DispatchRejectedError("quota exceeded", response_text='{"error":"quota exceeded"}')

    failed = client.post("/api/payment/fulfill", json={"sessionId": "sess_1"})
    assert failed.status_code == 500
    assert store.get_payment_by_session_id("sess_1").receipt_sent is False

    notifier.error = None
    retried = client.post("/api/payment/fulfill", json={"sessionId": "sess_1"})
    assert retried.status_code == 200
    assert len(notifier.receipts) == 1


def test_fulfill_without_email(client: TestClient, store, gateway, notifier) -> None:
    _seed(store, user=None, meta_data={})
    gateway.payments["sess_1"] = {"status": "PAID"}
    response = client.post("/api/payment/fulfill", json={"sessionId": "sess_1"})
    assert response.status_code == 200
    assert response.json()["receiptSent"] is False
    assert notifier.receipts == []


def test_fulfill_verification_failure(client: TestClient, store, gateway) -> None:
    _seed(store)
    gateway.verify_error = GatewayError("Kashier verify failed: 502", status_code=502)
    response = client.post("/api/payment/fulfill", json={"sessionId": "sess_1"})
    assert response.status_code == 500


def test_fulfill_flag_write_failure_still_reports_sent(client: TestClient, store, gateway, notifier, monkeypatch) -> None:
    _seed(store, status="PAID")
    gateway.payments["sess_1"] = {"status": "PAID"}

    def broken(record, changes, **kwargs):
        raise RuntimeError("store down")

    monkeypatch.setattr(store, "update_payment", broken)
    response = client.post("/api/payment/fulfill", json={"sessionId": "sess_1"})
    assert response.status_code == 200
    assert response.json()["receiptSent"] is True
    assert response.json()["receiptResponse"] == '{"ok":true,"sent":"receipt"}'
    assert len(notifier.receipts) == 1


def test_fulfill_accepts_numeric_order_id(client: TestClient, store, gateway, notifier) -> None:
    _seed(store, merchant_order_id="1042")
    gateway.payments["sess_1"] = {"status": "PAID"}
    response = client.post("/api/payment/fulfill", json={"merchantOrderId": 1042})
    assert response.status_code == 200
    assert response.json()["receiptSent"] is True
