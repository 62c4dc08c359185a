from __future__ import annotations

import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from workshop_payments.domain.dtos import (
    FulfillResponse,
    PaymentSessionRequest,
    PaymentSessionResponse,
    PaymentStatusResponse,
    optional_mapping,
    optional_text,
)
from workshop_payments.domain.errors import (
    NotFoundError,
    PaymentNotSuccessfulError,
    UnreconcilableNotificationError,
    ValidationError,
)
from workshop_payments.domain.models import PaymentRecord
from workshop_payments.domain.statuses import PaymentStatus, is_success
from workshop_payments.notifications.appscript import AppsScriptClient
from workshop_payments.providers.kashier import KashierClient
from workshop_payments.repositories.base import PaymentStore
from workshop_payments.utils.side_effects import best_effort

from .correlation import DEFAULT_STRATEGIES, Strategy, resolve_session_id


def _coerce_amount(raw: Any) -> Decimal:
    if isinstance(raw, bool):
        raise ValidationError("invalid amount")
    try:
        amount = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError("invalid amount") from exc
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("invalid amount")
    return amount


def _format_amount(raw: Any, amount: Decimal) -> str:
    if isinstance(raw, str):
        return raw.strip()
    return format(amount.normalize(), "f")


class PaymentsService:
    """Session creation, webhook reconciliation, status polling and fulfillment.

    The gateway is the only source of truth for a payment status. Every
    status written to the store comes from ``verify_session``.
    """

    def __init__(
        self,
        store: PaymentStore,
        gateway: KashierClient,
        notifier: AppsScriptClient,
        strategies: tuple[Strategy, ...] = DEFAULT_STRATEGIES,
    ):
        self.store = store
        self.gateway = gateway
        self.notifier = notifier
        self.strategies = strategies
        self.logger = logging.getLogger(__name__)

    async def create_session(self, request: PaymentSessionRequest) -> PaymentSessionResponse:
        merchant_redirect = optional_text(request.merchant_redirect, "merchantRedirect")
        if request.amount in (None, "", 0) or not merchant_redirect:
            raise ValidationError("missing amount or merchantRedirect")
        amount = _coerce_amount(request.amount)
        order = optional_text(request.order, "order") or f"order-{int(time.time() * 1000)}"
        customer_email = optional_text(request.customer_email, "customerEmail")
        customer_reference = optional_text(request.customer_reference, "customerReference")
        meta_data = optional_mapping(request.meta_data, "metaData")
        user = optional_mapping(request.user, "user")
        payload = self.gateway.build_session_payload(
            amount=_format_amount(request.amount, amount),
            currency=optional_text(request.currency, "currency") or "EGP",
            order=order,
            merchant_redirect=merchant_redirect,
            description=optional_text(request.description, "description"),
            customer_email=customer_email,
            customer_reference=customer_reference,
            meta_data=meta_data,
        )
        self.logger.info(
            "creating payment session",
            extra={"merchant_order_id": order, "amount": amount, "currency": payload["currency"]},
        )
        data = await self.gateway.create_session(payload)

        session_id = data.get("_id") or data.get("sessionId")
        record = PaymentRecord(
            session_id=str(session_id) if session_id else None,
            merchant_order_id=order,
            status=PaymentStatus.CREATED.value,
            amount=payload["amount"],
            currency=payload["currency"],
            order=order,
            description=payload["description"],
            customer_email=customer_email,
            customer_reference=customer_reference,
            response=data,
            user=user,
            age=request.age,
            meta_data=meta_data or {},
        )
        # The provider session already exists; a failed insert is logged, not rolled back
        stored = best_effort("persist payment session", self.store.create_payment, record)
        self.logger.info(
            "payment session created",
            extra={
                "session_id": record.session_id,
                "merchant_order_id": order,
                "status": record.status,
                "record_id": stored.id if stored else None,
            },
        )
        return PaymentSessionResponse(success=True, session_url=data.get("sessionUrl"), raw=data)

    async def _verify(self, session_id: str) -> dict[str, Any]:
        verification = await self.gateway.verify_session(session_id)
        return self.gateway.extract_payment(verification)

    def _apply_verification(self, record: PaymentRecord, payment: dict[str, Any]) -> PaymentRecord:
        """Write a verified status; identical statuses produce no write."""
        status = payment.get("status")
        if not status or status == record.status:
            self.logger.info(
                "status unchanged",
                extra={"session_id": record.session_id, "status": status},
            )
            return record
        updated = self.store.update_payment(
            record,
            {"status": status, "verification": payment},
            stamp="verified_at",
        )
        self.logger.info(
            "status updated",
            extra={
                "session_id": record.session_id,
                "previous_status": record.status,
                "status": status,
            },
        )
        return updated

    def _create_from_verification(self, session_id: str, payment: dict[str, Any]) -> PaymentRecord:
        order_id = payment.get("merchantOrderId") or payment.get("order")
        record = PaymentRecord(
            session_id=session_id,
            merchant_order_id=str(order_id) if order_id else None,
            status=payment.get("status") or PaymentStatus.PENDING.value,
            amount=str(payment["amount"]) if payment.get("amount") is not None else None,
            currency=payment.get("currency"),
            order=str(order_id) if order_id else None,
            verification=payment,
        )
        created = self.store.create_payment(record)
        self.logger.info(
            "payment record created from verification",
            extra={"session_id": session_id, "status": created.status, "record_id": created.id},
        )
        return created

    async def reconcile_notification(self, notification: Mapping[str, Any]) -> PaymentRecord:
        """Verify and apply a webhook notification.

        The notification body only ever provides correlation keys; its own
        ``status`` is ignored.
        """
        session_id = resolve_session_id(notification, self.store, self.strategies)
        if not session_id:
            raise UnreconcilableNotificationError("missing sessionId")
        payment = await self._verify(session_id)
        # No lock: concurrent deliveries for a new session can both miss here and insert twice
        record = self.store.get_payment_by_session_id(session_id)
        if record is None:
            return self._create_from_verification(session_id, payment)
        return self._apply_verification(record, payment)

    def _find(self, merchant_order_id: str | None, session_id: str | None) -> PaymentRecord | None:
        record = None
        if session_id:
            record = self.store.get_payment_by_session_id(session_id)
        if record is None and merchant_order_id:
            record = self.store.get_payment_by_merchant_order_id(merchant_order_id)
        return record

    async def get_status(
        self,
        merchant_order_id: str | None = None,
        session_id: str | None = None,
    ) -> PaymentStatusResponse:
        merchant_order_id = optional_text(merchant_order_id, "merchantOrderId")
        session_id = optional_text(session_id, "sessionId")
        if not merchant_order_id and not session_id:
            raise ValidationError("merchantOrderId or sessionId required")
        record = self._find(merchant_order_id, session_id)
        if record is None:
            if not session_id:
                raise NotFoundError("payment not found")
            payment = await self._verify(session_id)
            record = self._create_from_verification(session_id, payment)
            return PaymentStatusResponse(status=record.status, verified=True, payment=record.to_document())

        if is_success(record.status):
            return PaymentStatusResponse(status=record.status, verified=False, payment=record.to_document())

        verify_id = record.session_id or session_id
        if not verify_id:
            self.logger.info(
                "status without session id",
                extra={"merchant_order_id": record.merchant_order_id, "status": record.status},
            )
            return PaymentStatusResponse(status=record.status, verified=False, payment=record.to_document())
        payment = await self._verify(verify_id)
        record = self._apply_verification(record, payment)
        return PaymentStatusResponse(status=record.status, verified=True, payment=record.to_document())

    def _receipt_payload(self, record: PaymentRecord, email: str) -> dict[str, Any]:
        user = record.user or {}
        meta = record.meta_data or {}
        return {
            "name": user.get("name") or meta.get("name") or "",
            "email": email,
            "phone": user.get("phone") or meta.get("phone") or "",
            "age": record.age or user.get("age") or "",
            "amount": record.amount or "",
            "currency": record.currency or "",
            "order": record.order or record.merchant_order_id or "",
            "merchantOrderId": record.merchant_order_id or "",
            "sessionId": record.session_id or "",
            "status": record.status,
            "program_id": meta.get("workshopId") or meta.get("program_id") or "",
            "program_title": meta.get("program_title") or meta.get("programTitle") or "",
            "group_link": meta.get("group_link") or meta.get("groupLink") or "",
        }

    async def fulfill(
        self,
        merchant_order_id: str | None = None,
        session_id: str | None = None,
    ) -> FulfillResponse:
        merchant_order_id = optional_text(merchant_order_id, "merchantOrderId")
        session_id = optional_text(session_id, "sessionId")
        if not merchant_order_id and not session_id:
            raise ValidationError("merchantOrderId or sessionId required")
        record = self._find(merchant_order_id, session_id)
        if record is None:
            raise NotFoundError("payment not found")
        if record.receipt_sent:
            self.logger.info(
                "receipt already sent",
                extra={"session_id": record.session_id, "merchant_order_id": record.merchant_order_id},
            )
            return FulfillResponse(
                status=record.status,
                receipt_sent=True,
                receipt_response=record.receipt_response,
            )

        verify_id = record.session_id or session_id
        if not verify_id:
            raise ValidationError("payment has no session id to verify")
        payment = await self._verify(verify_id)
        record = self._apply_verification(record, payment)
        if not is_success(record.status):
            raise PaymentNotSuccessfulError(record.status)

        email = record.resolve_email()
        if not email:
            self.logger.info(
                "no email for receipt",
                extra={"session_id": record.session_id, "status": record.status},
            )
            return FulfillResponse(status=record.status, receipt_sent=False, receipt_response=None)

        # Dispatch errors propagate with receiptSent still false so a retry dispatches again
        receipt_response = await self.notifier.send_receipt(self._receipt_payload(record, email))
        self.logger.info(
            "receipt sent",
            extra={
                "session_id": record.session_id,
                "merchant_order_id": record.merchant_order_id,
                "receipt_response": receipt_response,
            },
        )
        # The email is out; a failed flag write is logged and answered as sent.
        # A later fulfill for the same record still sees receiptSent false and resends.
        updated = best_effort(
            "mark receipt sent",
            self.store.update_payment,
            record,
            {"receipt_sent": True, "receipt_response": receipt_response},
            stamp="emailed_at",
        )
        if updated is not None:
            record = updated
        return FulfillResponse(
            status=record.status,
            receipt_sent=True,
            receipt_response=receipt_response,
        )
