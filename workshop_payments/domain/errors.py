from __future__ import annotations

from typing import Any


class PaymentsError(Exception):
    """Base class for errors raised by the services."""


class ValidationError(PaymentsError):
    """Missing or invalid request fields."""


class ConfigurationError(PaymentsError):
    """A required environment dependency is not configured."""


class NotFoundError(PaymentsError):
    """No record matches the given identifiers."""


class UnreconcilableNotificationError(PaymentsError):
    """A webhook notification cannot be tied to any session."""


class PaymentNotSuccessfulError(PaymentsError):
    """Fulfillment was requested for a payment that is not in a success state."""

    def __init__(self, status: str | None):
        super().__init__(f"payment not successful (status={status})")
        self.status = status


class GatewayError(PaymentsError):
    """Kashier answered with a non-success status or could not be reached."""

    def __init__(self, message: str, *, status_code: int | None = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class DispatchError(PaymentsError):
    """The notification collaborator (Apps Script) could not be reached."""

    def __init__(self, message: str, *, response_text: str | None = None):
        super().__init__(message)
        self.response_text = response_text


class DispatchRejectedError(DispatchError):
    """The notification collaborator answered with an error."""


class SideEffectError(PaymentsError):
    """A non-critical side effect failed.

    Only ever logged; callers never see it.
    """

    def __init__(self, action: str, cause: BaseException):
        super().__init__(f"{action} failed: {cause}")
        self.action = action
        self.cause = cause
