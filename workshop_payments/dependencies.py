from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from workshop_payments.config import settings
from workshop_payments.notifications.appscript import AppsScriptClient
from workshop_payments.providers.kashier import KashierClient
from workshop_payments.repositories.base import PaymentStore
from workshop_payments.repositories.memory_store import InMemoryPaymentStore
from workshop_payments.services.payments_service import PaymentsService
from workshop_payments.services.registration_service import RegistrationService


@lru_cache(maxsize=1)
def get_store() -> PaymentStore:
    """Return the process-wide store selected by ``STORE_BACKEND`` (postgres when a database is configured)."""
    backend = settings.store_kind
    if backend == "postgres":
        from workshop_payments.repositories.pg_store import PgPaymentStore

        return PgPaymentStore()
    if backend == "memory":
        return InMemoryPaymentStore()
    msg = f"Unknown store backend {settings.store_backend}"
    raise ValueError(msg)


def get_gateway() -> KashierClient:
    return KashierClient(settings)


def get_notifier() -> AppsScriptClient:
    return AppsScriptClient(settings)


def get_payments_service(
    store: PaymentStore = Depends(get_store),
    gateway: KashierClient = Depends(get_gateway),
    notifier: AppsScriptClient = Depends(get_notifier),
) -> PaymentsService:
    return PaymentsService(store, gateway, notifier)


def get_registration_service(
    store: PaymentStore = Depends(get_store),
    notifier: AppsScriptClient = Depends(get_notifier),
) -> RegistrationService:
    return RegistrationService(store, notifier)
