from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from workshop_payments.config import settings
from workshop_payments.db.client import close_pool
from workshop_payments.logging import setup_logging
from workshop_payments.routes import health, payments, registrations

setup_logging()
logger = logging.getLogger(__name__)

if not settings.appscript_configured:
    logger.warning("APPSCRIPT_URL not set; /api/register will return 500 until configured")


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    close_pool()


app = FastAPI(title="Workshop Payments API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(health.router)
app.include_router(registrations.router)
app.include_router(payments.router)


def run() -> None:
    """Start the API with uvicorn on the configured host and port."""
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="info")


if __name__ == "__main__":
    run()
