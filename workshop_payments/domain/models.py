from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any

from .statuses import PaymentStatus

# Attribute name -> document key, in the camelCase shape the records are stored in
_DOCUMENT_KEYS = {
    "session_id": "sessionId",
    "merchant_order_id": "merchantOrderId",
    "status": "status",
    "amount": "amount",
    "currency": "currency",
    "order": "order",
    "description": "description",
    "customer_email": "customerEmail",
    "customer_reference": "customerReference",
    "response": "response",
    "verification": "verification",
    "receipt_sent": "receiptSent",
    "receipt_response": "receiptResponse",
    "user": "user",
    "age": "age",
    "meta_data": "metaData",
    "created_at": "createdAt",
    "verified_at": "verifiedAt",
    "emailed_at": "emailedAt",
}

TIMESTAMP_FIELDS = ("created_at", "verified_at", "emailed_at")


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


@dataclass
class PaymentRecord:
    """One payment attempt, keyed by the Kashier session id."""

    session_id: str | None
    merchant_order_id: str | None
    status: str = PaymentStatus.CREATED.value
    id: str | None = None
    amount: str | None = None
    currency: str | None = None
    order: str | None = None
    description: str | None = None
    customer_email: str | None = None
    customer_reference: str | None = None
    response: dict[str, Any] | None = None
    verification: dict[str, Any] | None = None
    receipt_sent: bool = False
    receipt_response: str | None = None
    user: dict[str, Any] | None = None
    age: Any = None
    meta_data: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    verified_at: datetime | None = None
    emailed_at: datetime | None = None

    @staticmethod
    def document_key(attribute: str) -> str:
        return _DOCUMENT_KEYS[attribute]

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {}
        for attribute, key in _DOCUMENT_KEYS.items():
            value = getattr(self, attribute)
            if attribute in TIMESTAMP_FIELDS and value is not None:
                value = value.isoformat()
            doc[key] = value
        return doc

    @classmethod
    def from_document(cls, record_id: str, doc: dict[str, Any]) -> "PaymentRecord":
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for attribute, key in _DOCUMENT_KEYS.items():
            if attribute in known and key in doc:
                values[attribute] = doc[key]
        for attribute in TIMESTAMP_FIELDS:
            values[attribute] = _parse_timestamp(values.get(attribute))
        values["receipt_sent"] = bool(values.get("receipt_sent") or False)
        values["meta_data"] = dict(values.get("meta_data") or {})
        values.setdefault("session_id", None)
        values.setdefault("merchant_order_id", None)
        values["status"] = values.get("status") or PaymentStatus.CREATED.value
        return cls(id=record_id, **values)

    def resolve_email(self) -> str | None:
        """Return the address a receipt should go to, if the stored context has one."""
        candidates = [
            (self.user or {}).get("email"),
            self.customer_email,
            (self.meta_data or {}).get("email"),
        ]
        for candidate in candidates:
            if isinstance(candidate, str) and candidate.strip():
                return candidate.strip()
        return None


@dataclass
class Registration:
    """Workshop registration as stored in ``workshop_registrations``."""

    name: str
    email: str
    workshop_id: str | None = None
    phone: str | None = None
    age: Any = None
    governorate: str | None = None
    program_title: str | None = None
    group_link: str | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "workshopId": self.workshop_id or None,
            "name": self.name,
            "email": self.email,
            "phone": self.phone or None,
            "age": self.age or None,
            "governorate": self.governorate or None,
            "programTitle": self.program_title or None,
            "groupLink": self.group_link or None,
            "emailRequested": True,
            "emailSent": False,
        }

    def to_automation_payload(self) -> dict[str, Any]:
        """Body expected by the Apps Script that renders the welcome email."""
        return {
            "name": self.name or "",
            "email": self.email or "",
            "phone": self.phone or "",
            "age": self.age or "",
            "governorate": self.governorate or "",
            "program_id": self.workshop_id or "",
            "program_title": self.program_title or "",
            "program_name": self.program_title or "",
            "group_link": self.group_link or "",
        }
