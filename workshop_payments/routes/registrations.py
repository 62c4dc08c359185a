from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from workshop_payments.dependencies import get_registration_service
from workshop_payments.domain.dtos import RegistrationRequest
from workshop_payments.domain.errors import (
    ConfigurationError,
    DispatchError,
    DispatchRejectedError,
    ValidationError,
)
from workshop_payments.services.registration_service import RegistrationService

router = APIRouter(prefix="/api")
logger = logging.getLogger(__name__)


@router.post("/register")
async def register(
    request: RegistrationRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> Response:
    """Save a workshop registration and forward it to the email automation.

    Errors answer in plain text, which is what the landing page shows.
    """
    logger.info(
        "register received",
        extra={"endpoint": "/api/register", "method": "POST", "workshop_id": request.workshop_id},
    )
    try:
        text = await service.register(request)
    except ValidationError as exc:
        return PlainTextResponse(str(exc), status_code=status.HTTP_400_BAD_REQUEST)
    except ConfigurationError as exc:
        return PlainTextResponse(str(exc), status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    except DispatchRejectedError as exc:
        return PlainTextResponse(str(exc) or "apps script error", status_code=status.HTTP_502_BAD_GATEWAY)
    except DispatchError as exc:
        return PlainTextResponse(str(exc), status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return JSONResponse({"success": True, "data": text})
