from __future__ import annotations

import logging

from workshop_payments.domain.dtos import RegistrationRequest, optional_text
from workshop_payments.domain.errors import (
    ConfigurationError,
    DispatchError,
    DispatchRejectedError,
    ValidationError,
)
from workshop_payments.domain.models import Registration
from workshop_payments.notifications.appscript import AppsScriptClient
from workshop_payments.repositories.base import PaymentStore
from workshop_payments.utils.side_effects import best_effort


class RegistrationService:
    """Records workshop registrations and forwards them to the email automation.

    Every store write here is bookkeeping: it is attempted, logged on failure
    and never changes the response.
    """

    def __init__(self, store: PaymentStore, notifier: AppsScriptClient):
        self.store = store
        self.notifier = notifier
        self.logger = logging.getLogger(__name__)

    def _annotate(self, registration_id: str | None, changes: dict, *, stamp: str | None = None) -> None:
        if registration_id is None:
            return
        best_effort(
            "annotate registration",
            self.store.update_registration,
            registration_id,
            changes,
            stamp=stamp,
        )

    async def register(self, request: RegistrationRequest) -> str:
        """Return the automation's raw response text on success."""
        name = optional_text(request.name, "name")
        email = optional_text(request.email, "email")
        if not email or not name:
            raise ValidationError("missing required fields")
        registration = Registration(
            name=name,
            email=email,
            workshop_id=optional_text(request.workshop_id, "workshopId"),
            phone=optional_text(request.phone, "phone"),
            age=request.age,
            governorate=optional_text(request.governorate, "governorate"),
            program_title=optional_text(request.program_title, "program_title"),
            group_link=optional_text(request.group_link, "group_link"),
        )
        registration_id = best_effort(
            "save registration", self.store.create_registration, registration.to_document()
        )
        self.logger.info(
            "registration saved",
            extra={"registration_id": registration_id, "workshop_id": registration.workshop_id},
        )

        if not self.notifier.configured:
            self.logger.info("APPSCRIPT_URL not configured; cannot forward registration")
            self._annotate(registration_id, {"emailError": "APPSCRIPT_URL not set", "emailRequested": False})
            raise ConfigurationError("server misconfiguration: APPSCRIPT_URL not set")

        try:
            text = await self.notifier.forward_registration(registration.to_automation_payload())
        except DispatchRejectedError as exc:
            self._annotate(
                registration_id,
                {"emailSent": False, "emailResponse": exc.response_text, "emailRequested": False},
            )
            raise
        except DispatchError as exc:
            self._annotate(
                registration_id,
                {"emailSent": False, "emailError": str(exc), "emailRequested": False},
            )
            raise

        self._annotate(
            registration_id,
            {"emailSent": True, "emailResponse": text, "emailRequested": False},
            stamp="emailedAt",
        )
        self.logger.info(
            "registration forwarded",
            extra={"registration_id": registration_id, "workshop_id": registration.workshop_id},
        )
        return text
