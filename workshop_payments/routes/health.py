from __future__ import annotations

from fastapi import APIRouter

from workshop_payments.config import settings
from workshop_payments.domain.dtos import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Simple health check endpoint for load balancers."""
    return HealthResponse(ok=True, apps_script_configured=settings.appscript_configured)
