from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class PaymentGateway(ABC):
    """Outbound calls to the payment provider."""

    @abstractmethod
    async def create_session(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Create a hosted payment session and return the provider response."""

    @abstractmethod
    async def verify_session(self, session_id: str) -> dict[str, Any]:
        """Fetch the authoritative state of a session.

        This is the only trusted source of a payment status; notification
        bodies and client-supplied values are never written without it.
        """

    @staticmethod
    def extract_payment(verification: dict[str, Any]) -> dict[str, Any]:
        """Unwrap ``{message, data: {...payment...}}`` responses."""
        data = verification.get("data") if isinstance(verification, dict) else None
        if isinstance(data, dict):
            return data
        return verification if isinstance(verification, dict) else {}
