from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from workshop_payments.domain.models import PaymentRecord


class PaymentStore(ABC):
    """Document store holding the ``payments`` and ``workshop_registrations`` collections.

    Timestamps are assigned by the store at write time. There is no uniqueness
    constraint on ``sessionId``; callers query before writing.
    """

    @abstractmethod
    def create_payment(self, record: PaymentRecord) -> PaymentRecord:
        """Insert a record, assigning ``id`` and ``created_at``."""

    @abstractmethod
    def get_payment_by_session_id(self, session_id: str) -> Optional[PaymentRecord]:
        ...

    @abstractmethod
    def get_payment_by_merchant_order_id(self, merchant_order_id: str) -> Optional[PaymentRecord]:
        """Return the most recently created record for the order."""

    @abstractmethod
    def get_payment_by_provider_reference(self, reference: str) -> Optional[PaymentRecord]:
        """Return the newest record whose stored provider payload carries ``reference`` in a reference field."""

    @abstractmethod
    def update_payment(
        self,
        record: PaymentRecord,
        changes: dict[str, Any],
        *,
        stamp: str | None = None,
    ) -> PaymentRecord:
        """Apply ``changes`` (attribute name -> value) and return the updated record.

        ``stamp`` names a timestamp attribute (``verified_at``, ``emailed_at``)
        to set to the current time.
        """

    @abstractmethod
    def create_registration(self, document: dict[str, Any]) -> str:
        """Insert a registration document and return its id."""

    @abstractmethod
    def update_registration(
        self,
        registration_id: str,
        changes: dict[str, Any],
        *,
        stamp: str | None = None,
    ) -> None:
        """Merge ``changes`` into a registration; ``stamp`` is a document key."""


PROVIDER_REFERENCE_KEYS = ("orderReference", "orderId", "transactionId")


def has_reference(payload: Any, reference: str) -> bool:
    """True when a ``PROVIDER_REFERENCE_KEYS`` field, at any depth, equals ``reference``."""
    if isinstance(payload, dict):
        for key, value in payload.items():
            if key in PROVIDER_REFERENCE_KEYS and not isinstance(value, (dict, list, tuple, bool)):
                if value is not None and str(value) == reference:
                    return True
            elif has_reference(value, reference):
                return True
        return False
    if isinstance(payload, (list, tuple)):
        return any(has_reference(item, reference) for item in payload)
    return False
