from __future__ import annotations

from enum import Enum


class PaymentStatus(str, Enum):
    """Kashier session statuses this service knows about.

    The provider vocabulary is open, so records keep the raw string and this
    enum is only used for comparisons and defaults.
    """

    CREATED = "CREATED"
    PENDING = "PENDING"
    PAID = "PAID"
    CAPTURED = "CAPTURED"
    AUTHORIZED = "AUTHORIZED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


SUCCESS_STATES = frozenset(
    {PaymentStatus.PAID.value, PaymentStatus.CAPTURED.value, PaymentStatus.AUTHORIZED.value}
)


def is_success(status: str | None) -> bool:
    """Return True when ``status`` means the money was received."""
    if not status:
        return False
    return str(status).strip().upper() in SUCCESS_STATES
