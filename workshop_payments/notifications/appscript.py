from __future__ import annotations

import json
import logging
from typing import Any, Dict

import httpx

from workshop_payments.config import Settings
from workshop_payments.domain.errors import (
    ConfigurationError,
    DispatchError,
    DispatchRejectedError,
)

logger = logging.getLogger(__name__)


class AppsScriptClient:
    """Posts JSON to the Google Apps Script web app that sends emails.

    The script answers 200 even on failure and reports errors as
    ``{"error": "..."}``, so the body is inspected as well as the status.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def configured(self) -> bool:
        return self.settings.appscript_configured

    async def forward_registration(self, payload: Dict[str, Any]) -> str:
        return await self._post(payload, event="registration")

    async def send_receipt(self, payload: Dict[str, Any]) -> str:
        return await self._post({"type": "payment_receipt", **payload}, event="receipt")

    async def _post(self, payload: Dict[str, Any], *, event: str) -> str:
        if not self.configured:
            raise ConfigurationError("APPSCRIPT_URL not set")
        body = dict(payload)
        if self.settings.appscript_token:
            body["token"] = self.settings.appscript_token
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    self.settings.appscript_url,
                    headers={"Content-Type": "application/json"},
                    json=body,
                    follow_redirects=True,
                )
        except httpx.HTTPError as exc:
            logger.info("apps script unreachable", extra={"event": event, "error": str(exc)})
            raise DispatchError(str(exc)) from exc

        text = resp.text
        parsed: Any = None
        try:
            parsed = json.loads(text) if text else None
        except ValueError:
            parsed = None
        error = parsed.get("error") if isinstance(parsed, dict) else None
        if resp.is_error or error:
            logger.info(
                "apps script returned error",
                extra={"event": event, "response_code": resp.status_code, "error": str(error or "")},
            )
            message = str(error) if error else (text or "apps script error")
            raise DispatchRejectedError(message, response_text=text)
        logger.info("apps script accepted", extra={"event": event, "response_code": resp.status_code})
        return text
