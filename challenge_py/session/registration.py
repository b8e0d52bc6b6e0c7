"""Registration resolver: reconciles a verified phone with backend registration."""

import asyncio
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..client.errors import ApiError, message_from_payload
from ..client.models import RegistrationResult, parse_datetime
from ..config.state import AccessCodeStore
from .state import SessionEvent, SessionMachine, SessionState


logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class RegistrationOutcome(str, Enum):
    NEEDS_DETAILS = "details_required"
    REGISTERED = "registered"
    NEEDS_REGISTRATION = "needs_registration"


@dataclass
class SessionIdentity:
    """Who the session belongs to; filled in as lookups succeed."""

    phone: str = ""
    user_id: Optional[int] = None
    registration_id: Optional[int] = None
    user_name: Optional[str] = None
    access_code: Optional[str] = None

    @property
    def complete(self) -> bool:
        return bool(self.user_id and self.registration_id)


class RegistrationDetails(BaseModel):
    """Registration form, validated before anything is sent."""

    name: str
    phone: str = Field(..., min_length=1)
    challenge_id: int
    email: Optional[str] = None
    college_name: Optional[str] = None
    qualification: Optional[str] = None
    address: Optional[str] = None
    year_of_passing: Optional[int] = Field(None, ge=1950, le=2100)
    utm_src: str = "organic"
    utm_medium: Optional[str] = None
    utm_term: Optional[str] = None
    utm_campaign: Optional[str] = None

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Name is required")
        return v.strip()

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        if not EMAIL_PATTERN.match(v.strip()):
            raise ValueError("Please enter a valid email address")
        return v.strip()

    @field_validator(
        "college_name", "qualification", "address", "utm_medium", "utm_term", "utm_campaign",
        "year_of_passing",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def to_payload(self) -> dict:
        return self.model_dump(exclude_none=True)


def first_error(error: ValidationError) -> str:
    """First readable message of a pydantic ValidationError."""
    errors = error.errors()
    if not errors:
        return "Invalid registration details"
    message = errors[0].get("msg", "Invalid registration details")
    return message.removeprefix("Value error, ")


def already_registered_message(data: dict) -> str:
    """Message for a duplicate registration, naming the start time if known."""
    start = parse_datetime(data.get("challenge_start_at"))
    if start is None:
        return data.get("message") or "You have already registered for this challenge."
    local = start.astimezone()
    hour = local.hour % 12 or 12
    return (
        "You have already registered for this challenge. "
        f"The challenge will be on {local:%B} {local.day} at {hour}:{local:%M %p}."
    )


class RegistrationResolver:
    """Drives the step after phone verification: form, auto-register or enter."""

    def __init__(
        self,
        client,
        access_codes: AccessCodeStore,
        machine: Optional[SessionMachine] = None,
        identity: Optional[SessionIdentity] = None,
    ):
        self.client = client
        self.access_codes = access_codes
        self.machine = machine or SessionMachine(SessionState.VERIFIED)
        self.identity = identity or SessionIdentity()
        self.error: Optional[str] = None
        self.loading = False

    def _advance(self, event: SessionEvent) -> None:
        if self.machine.state in (SessionState.VERIFIED, SessionState.NEEDS_DETAILS):
            if (self.machine.state, event) == (
                SessionState.NEEDS_DETAILS,
                SessionEvent.DETAILS_REQUIRED,
            ):
                return
            self.machine.apply(event)

    async def resolve(self, challenge_id: Any, phone: str) -> Optional[RegistrationOutcome]:
        """Look up registration for (challenge, phone) and act on it.

        Returns None (with ``error`` set) when the lookup or the automatic
        registration fails.
        """
        self.error = None
        self.identity.phone = phone
        self.loading = True
        try:
            status = await asyncio.to_thread(
                self.client.check_registration_status, challenge_id, phone
            )
        except ApiError as e:
            self.error = e.message or "Failed to check registration status. Please try again."
            return None
        finally:
            self.loading = False

        if status.user_name:
            self.identity.user_name = status.user_name
        if status.user_id:
            self.identity.user_id = status.user_id
        self.identity.access_code = self.access_codes.get(phone, challenge_id)

        if status.details_required:
            self._advance(SessionEvent.DETAILS_REQUIRED)
            return RegistrationOutcome.NEEDS_DETAILS

        if status.is_registered and status.registration_id:
            self.identity.registration_id = status.registration_id
            self._advance(SessionEvent.REGISTERED)
            return RegistrationOutcome.REGISTERED

        if not status.user_name:
            self._advance(SessionEvent.DETAILS_REQUIRED)
            return RegistrationOutcome.NEEDS_DETAILS

        logger.info("Registering %s for challenge %s", status.user_name, challenge_id)
        result = await self.register(
            {"name": status.user_name, "phone": phone, "challenge_id": challenge_id}
        )
        if result is None:
            return None
        return RegistrationOutcome.NEEDS_REGISTRATION

    async def register(self, details: dict) -> Optional[RegistrationResult]:
        """Validate details and register; returns None with ``error`` on failure."""
        self.error = None
        try:
            form = RegistrationDetails(**details)
        except ValidationError as e:
            self.error = first_error(e)
            return None

        self.loading = True
        try:
            result = await asyncio.to_thread(self.client.register, form.to_payload())
        except ApiError as e:
            if e.data.get("already_registered"):
                self.error = already_registered_message(e.data)
            else:
                self.error = message_from_payload(
                    e.data, e.message or "Registration failed. Please try again."
                )
            return None
        finally:
            self.loading = False

        if not result.success:
            self.error = result.message or "Registration failed"
            return None

        self.identity.phone = form.phone
        self.identity.user_name = form.name
        if result.user_id:
            self.identity.user_id = result.user_id
        if result.registration_id:
            self.identity.registration_id = result.registration_id
        if result.access_code:
            self.identity.access_code = result.access_code
            self.access_codes.put(form.phone, form.challenge_id, result.access_code)

        if not self.identity.complete and not await self._confirm(form.challenge_id, form.phone):
            return None
        self._advance(SessionEvent.REGISTERED)
        return result

    async def _confirm(self, challenge_id: Any, phone: str) -> bool:
        """Fetch user and registration ids the register response did not carry."""
        try:
            status = await asyncio.to_thread(
                self.client.check_registration_status, challenge_id, phone
            )
        except ApiError as e:
            logger.debug("Registration status after register failed: %s", e)
            status = None

        if status is not None:
            self.identity.user_id = status.user_id or self.identity.user_id
            self.identity.registration_id = (
                status.registration_id or self.identity.registration_id
            )
        if not self.identity.complete:
            self.error = "Failed to verify registration. Please try again."
            return False
        return True
