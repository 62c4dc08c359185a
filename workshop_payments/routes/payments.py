from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse

from workshop_payments.dependencies import get_payments_service
from workshop_payments.domain.dtos import (
    FulfillRequest,
    FulfillResponse,
    PaymentSessionRequest,
    PaymentSessionResponse,
    PaymentStatusResponse,
)
from workshop_payments.domain.errors import (
    ConfigurationError,
    DispatchError,
    GatewayError,
    NotFoundError,
    PaymentNotSuccessfulError,
    UnreconcilableNotificationError,
    ValidationError,
)
from workshop_payments.services.payments_service import PaymentsService

router = APIRouter(prefix="/api/payment")
logger = logging.getLogger(__name__)


@router.post("/session", response_model=PaymentSessionResponse)
async def create_session(
    request: PaymentSessionRequest,
    service: PaymentsService = Depends(get_payments_service),
) -> PaymentSessionResponse:
    logger.info(
        "create_session received",
        extra={
            "endpoint": "/api/payment/session",
            "method": "POST",
            "merchant_order_id": request.order or "",
            "currency": request.currency,
        },
    )
    try:
        return await service.create_session(request)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except GatewayError as exc:
        logger.info(
            "create_session provider rejected",
            extra={"endpoint": "/api/payment/session", "response_code": exc.status_code, "error": str(exc)},
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": exc.body if exc.body is not None else str(exc)},
        ) from exc


@router.post("/webhook", response_class=PlainTextResponse)
async def payment_webhook(
    request: Request,
    service: PaymentsService = Depends(get_payments_service),
) -> PlainTextResponse:
    """Reconcile a Kashier server webhook.

    The body is only used to find the session; the status written comes
    from a fresh verification call. Failed payments still answer 200.
    """
    try:
        notification = await request.json()
    except ValueError as exc:
        logger.info(
            "webhook invalid json",
            extra={"endpoint": "/api/payment/webhook", "error": str(exc)},
        )
        return PlainTextResponse("invalid payload", status_code=status.HTTP_400_BAD_REQUEST)
    if not isinstance(notification, dict):
        return PlainTextResponse("invalid payload", status_code=status.HTTP_400_BAD_REQUEST)

    try:
        record = await service.reconcile_notification(notification)
    except UnreconcilableNotificationError:
        logger.info(
            "webhook missing sessionId",
            extra={"endpoint": "/api/payment/webhook", "event": str(notification.get("event") or "")},
        )
        return PlainTextResponse("missing sessionId", status_code=status.HTTP_400_BAD_REQUEST)
    except GatewayError as exc:
        logger.info(
            "webhook verification failed",
            extra={"endpoint": "/api/payment/webhook", "response_code": exc.status_code, "error": str(exc)},
        )
        return PlainTextResponse("verification failed", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    logger.info(
        "webhook reconciled",
        extra={"endpoint": "/api/payment/webhook", "session_id": record.session_id, "status": record.status},
    )
    return PlainTextResponse("OK", status_code=status.HTTP_200_OK)


@router.get("/status", response_model=PaymentStatusResponse)
async def payment_status(
    merchant_order_id: str | None = Query(None, alias="merchantOrderId"),
    session_id: str | None = Query(None, alias="sessionId"),
    service: PaymentsService = Depends(get_payments_service),
) -> PaymentStatusResponse:
    if not merchant_order_id and not session_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="merchantOrderId or sessionId required",
        )
    try:
        return await service.get_status(merchant_order_id=merchant_order_id, session_id=session_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except GatewayError as exc:
        logger.info(
            "status verification failed",
            extra={"endpoint": "/api/payment/status", "session_id": session_id, "error": str(exc)},
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="verification failed"
        ) from exc


@router.post("/fulfill", response_model=FulfillResponse)
async def fulfill_payment(
    request: FulfillRequest,
    service: PaymentsService = Depends(get_payments_service),
) -> FulfillResponse:
    if not request.merchant_order_id and not request.session_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="merchantOrderId or sessionId required",
        )
    try:
        return await service.fulfill(
            merchant_order_id=request.merchant_order_id,
            session_id=request.session_id,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (ValidationError, PaymentNotSuccessfulError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except GatewayError as exc:
        logger.info(
            "fulfill verification failed",
            extra={"endpoint": "/api/payment/fulfill", "session_id": request.session_id, "error": str(exc)},
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="verification failed"
        ) from exc
    except (DispatchError, ConfigurationError) as exc:
        logger.info(
            "receipt dispatch failed",
            extra={"endpoint": "/api/payment/fulfill", "session_id": request.session_id, "error": str(exc)},
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"receipt dispatch failed: {exc}"
        ) from exc
