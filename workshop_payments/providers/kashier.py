from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import httpx

from workshop_payments.config import Settings
from workshop_payments.domain.errors import GatewayError

from .base import PaymentGateway

logger = logging.getLogger(__name__)

SESSION_TTL = timedelta(hours=1)
MAX_FAILURE_ATTEMPTS = 3


def _expire_at(now: datetime | None = None) -> str:
    moment = (now or datetime.now(timezone.utc)) + SESSION_TTL
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


class KashierClient(PaymentGateway):
    """Kashier hosted payment sessions (v3 API).

    create_session(): POST /v3/payment/sessions and return the session document.
    verify_session(): GET /v3/payment/sessions/{id}/payment, server to server.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.base_url = settings.kashier_api_base

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": self.settings.kashier_secret,
            "api-key": self.settings.kashier_api_key,
            "Content-Type": "application/json",
        }

    def build_session_payload(
        self,
        *,
        amount: str,
        currency: str,
        order: str,
        merchant_redirect: str,
        description: str | None = None,
        customer_email: str | None = None,
        customer_reference: str | None = None,
        meta_data: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> Dict[str, Any]:
        return {
            "expireAt": _expire_at(now),
            "maxFailureAttempts": MAX_FAILURE_ATTEMPTS,
            "paymentType": "credit",
            "amount": amount,
            "currency": currency,
            "order": order,
            "merchantRedirect": merchant_redirect,
            "display": "en",
            "type": "one-time",
            "allowedMethods": "card,wallet",
            "merchantId": self.settings.kashier_merchant_id,
            "failureRedirect": False,
            "defaultMethod": "card",
            "description": description or f"Payment for {order}",
            "customer": {
                "email": customer_email or "",
                "reference": customer_reference or "",
            },
            # The hosted page would otherwise fetch saved cards from the
            # browser without an Authorization header and get a 400.
            "retrieveSavedCard": False,
            "saveCard": "optional",
            "serverWebhook": self.settings.webhook_url,
            "metaData": meta_data or {},
        }

    @staticmethod
    def _read_body(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError:
            return {"raw": resp.text} if resp.text else {}

    async def create_session(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/v3/payment/sessions"
        started = time.monotonic()
        logger.info(
            "creating kashier session",
            extra={"endpoint": url, "amount": payload.get("amount"), "currency": payload.get("currency")},
        )
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(url, headers=self._headers(), json=payload)
        except httpx.HTTPError as exc:
            logger.info("kashier create transport error", extra={"endpoint": url, "error": str(exc)})
            raise GatewayError(f"Kashier create failed: {exc}") from exc
        data = self._read_body(resp)
        latency_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "kashier create responded",
            extra={"endpoint": url, "response_code": resp.status_code, "event": f"{latency_ms}ms"},
        )
        if resp.is_error:
            raise GatewayError(
                f"Kashier create failed ({resp.status_code})",
                status_code=resp.status_code,
                body=data,
            )
        return data if isinstance(data, dict) else {"raw": data}

    async def verify_session(self, session_id: str) -> Dict[str, Any]:
        url = f"{self.base_url}/v3/payment/sessions/{session_id}/payment"
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.get(url, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.info(
                "kashier verify transport error",
                extra={"endpoint": url, "session_id": session_id, "error": str(exc)},
            )
            raise GatewayError(f"Kashier verify failed: {exc}") from exc
        if resp.is_error:
            logger.info(
                "kashier verify rejected",
                extra={"session_id": session_id, "response_code": resp.status_code},
            )
            raise GatewayError(
                f"Kashier verify failed: {resp.status_code} {resp.text}",
                status_code=resp.status_code,
                body=self._read_body(resp),
            )
        data = self._read_body(resp)
        logger.info(
            "kashier session verified",
            extra={
                "session_id": session_id,
                "status": self.extract_payment(data).get("status") if isinstance(data, dict) else None,
            },
        )
        return data if isinstance(data, dict) else {"raw": data}
