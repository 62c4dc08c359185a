"""Resolve a Kashier notification to a session id.

Notifications come in several shapes and do not always carry the session id.
Each strategy takes the notification body and the store and returns a session
id or ``None``; ``resolve_session_id`` walks them in order and stops at the
first match.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, Tuple

from workshop_payments.repositories.base import PROVIDER_REFERENCE_KEYS, PaymentStore

logger = logging.getLogger(__name__)

Strategy = Callable[[Mapping[str, Any], PaymentStore], Optional[str]]

# "_id" is only a session id at the top level; under "data" it names the payment
SESSION_ID_KEYS = ("sessionId", "_id")
NESTED_SESSION_ID_KEYS = ("sessionId",)
MERCHANT_ORDER_KEYS = ("merchantOrderId", "order")


def _first_value(
    notification: Mapping[str, Any],
    keys: Iterable[str],
    nested_keys: Optional[Iterable[str]] = None,
) -> Optional[str]:
    """Look for ``keys`` at the top level, then ``nested_keys`` (default ``keys``) under ``data``."""
    keys = tuple(keys)
    scopes = [(notification, keys)]
    data = notification.get("data")
    if isinstance(data, Mapping):
        scopes.append((data, tuple(nested_keys) if nested_keys is not None else keys))
    for scope, scope_keys in scopes:
        for key in scope_keys:
            value = scope.get(key)
            if isinstance(value, (str, int)) and not isinstance(value, bool) and str(value).strip():
                return str(value).strip()
    return None


def session_id_from_notification(notification: Mapping[str, Any], store: PaymentStore) -> Optional[str]:
    return _first_value(notification, SESSION_ID_KEYS, NESTED_SESSION_ID_KEYS)


def session_id_from_merchant_order(notification: Mapping[str, Any], store: PaymentStore) -> Optional[str]:
    merchant_order_id = _first_value(notification, MERCHANT_ORDER_KEYS)
    if not merchant_order_id:
        return None
    record = store.get_payment_by_merchant_order_id(merchant_order_id)
    return record.session_id if record and record.session_id else None


def session_id_from_provider_reference(notification: Mapping[str, Any], store: PaymentStore) -> Optional[str]:
    reference = _first_value(notification, PROVIDER_REFERENCE_KEYS)
    if not reference:
        return None
    record = store.get_payment_by_provider_reference(reference)
    return record.session_id if record and record.session_id else None


DEFAULT_STRATEGIES: Tuple[Strategy, ...] = (
    session_id_from_notification,
    session_id_from_merchant_order,
    session_id_from_provider_reference,
)


def resolve_session_id(
    notification: Mapping[str, Any],
    store: PaymentStore,
    strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
) -> Optional[str]:
    for strategy in strategies:
        session_id = strategy(notification, store)
        if session_id:
            logger.info(
                "notification correlated",
                extra={"strategy": strategy.__name__, "session_id": session_id},
            )
            return session_id
    return None
