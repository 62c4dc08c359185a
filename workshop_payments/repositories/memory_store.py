from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from workshop_payments.domain.models import PaymentRecord

from .base import PaymentStore, has_reference


class InMemoryPaymentStore(PaymentStore):
    """Simple in-memory document store.

    Documents are copied on the way in and out so callers cannot mutate
    stored state without going through ``update_*``.
    """

    def __init__(self) -> None:
        self.payments: Dict[str, dict[str, Any]] = {}
        self.registrations: Dict[str, dict[str, Any]] = {}

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def _hydrate(self, record_id: str) -> PaymentRecord:
        return PaymentRecord.from_document(record_id, copy.deepcopy(self.payments[record_id]))

    def create_payment(self, record: PaymentRecord) -> PaymentRecord:
        record_id = uuid4().hex
        record.created_at = self._now()
        self.payments[record_id] = copy.deepcopy(record.to_document())
        return self._hydrate(record_id)

    def _latest(self, predicate) -> Optional[PaymentRecord]:
        # dicts keep insertion order, so the last match is the newest one
        for record_id in reversed(list(self.payments)):
            if predicate(self.payments[record_id]):
                return self._hydrate(record_id)
        return None

    def get_payment_by_session_id(self, session_id: str) -> Optional[PaymentRecord]:
        if not session_id:
            return None
        return self._latest(lambda doc: doc.get("sessionId") == session_id)

    def get_payment_by_merchant_order_id(self, merchant_order_id: str) -> Optional[PaymentRecord]:
        if not merchant_order_id:
            return None
        return self._latest(lambda doc: doc.get("merchantOrderId") == merchant_order_id)

    def get_payment_by_provider_reference(self, reference: str) -> Optional[PaymentRecord]:
        if not reference:
            return None
        return self._latest(
            lambda doc: has_reference(doc.get("response"), reference)
            or has_reference(doc.get("verification"), reference)
        )

    def update_payment(
        self,
        record: PaymentRecord,
        changes: dict[str, Any],
        *,
        stamp: str | None = None,
    ) -> PaymentRecord:
        if record.id is None or record.id not in self.payments:
            raise KeyError(f"unknown payment record {record.id}")
        document = self.payments[record.id]
        for attribute, value in changes.items():
            document[PaymentRecord.document_key(attribute)] = copy.deepcopy(value)
        if stamp:
            document[PaymentRecord.document_key(stamp)] = self._now().isoformat()
        return self._hydrate(record.id)

    def create_registration(self, document: dict[str, Any]) -> str:
        registration_id = uuid4().hex
        stored = copy.deepcopy(document)
        stored["createdAt"] = self._now().isoformat()
        self.registrations[registration_id] = stored
        return registration_id

    def update_registration(
        self,
        registration_id: str,
        changes: dict[str, Any],
        *,
        stamp: str | None = None,
    ) -> None:
        if registration_id not in self.registrations:
            raise KeyError(f"unknown registration {registration_id}")
        document = self.registrations[registration_id]
        document.update(copy.deepcopy(changes))
        if stamp:
            document[stamp] = self._now().isoformat()
