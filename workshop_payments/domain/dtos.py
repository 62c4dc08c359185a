from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from workshop_payments.domain.errors import ValidationError


def optional_text(value: Any, field: str) -> str | None:
    """Read a JSON scalar as stripped text; blank is ``None``, objects and arrays are rejected."""
    if value is None:
        return None
    if isinstance(value, (dict, list, bool)):
        raise ValidationError(f"invalid {field}")
    text = str(value).strip()
    return text or None


def optional_mapping(value: Any, field: str) -> dict[str, Any] | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValidationError(f"invalid {field}")
    return value


class PaymentSessionRequest(BaseModel):
    """Request body for creating a Kashier payment session.

    Fields are untyped at the schema level so the service can answer 400
    with a readable message instead of a 422.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    amount: Any = None
    currency: Any = "EGP"
    order: Any = None
    merchant_redirect: Any = Field(default=None, alias="merchantRedirect")
    description: Any = None
    customer_email: Any = Field(default=None, alias="customerEmail")
    customer_reference: Any = Field(default=None, alias="customerReference")
    meta_data: Any = Field(default=None, alias="metaData")
    age: Any = None
    user: Any = None


class PaymentSessionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    session_url: str | None = Field(default=None, alias="sessionUrl")
    raw: dict[str, Any] = Field(default_factory=dict)


class PaymentStatusResponse(BaseModel):
    """Response of the status poll."""

    status: str | None
    verified: bool
    payment: dict[str, Any]


class FulfillRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    merchant_order_id: Any = Field(default=None, alias="merchantOrderId")
    session_id: Any = Field(default=None, alias="sessionId")


class FulfillResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    status: str | None
    receipt_sent: bool = Field(alias="receiptSent")
    receipt_response: str | None = Field(default=None, alias="receiptResponse")


class RegistrationRequest(BaseModel):
    """Workshop registration submitted by the landing page."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    workshop_id: Any = Field(default=None, alias="workshopId")
    name: Any = None
    email: Any = None
    phone: Any = None
    age: Any = None
    governorate: Any = None
    program_title: Any = None
    group_link: Any = None


class HealthResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    apps_script_configured: bool = Field(alias="appsScriptConfigured")
