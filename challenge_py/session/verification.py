"""Phone verification gate: phone entry, OTP dispatch and confirmation."""

import asyncio
import logging
import math
import re
import time
from typing import Any, Callable, Optional

from ..client.errors import PhoneAuthError
from ..config.state import VerificationStore
from .phone import DEFAULT_COUNTRY_CODE, format_phone_number
from .state import SessionEvent, SessionMachine, SessionState


logger = logging.getLogger(__name__)

RESEND_COOLDOWN = 60

SEND_ERRORS = {
    "auth/billing-not-enabled": (
        "Phone authentication requires billing to be enabled in Firebase. "
        "Please contact administrator or use a test phone number for development."
    ),
    "auth/invalid-phone-number": "Invalid phone number format. Please check and try again.",
    "auth/too-many-requests": "Too many requests. Please wait a few minutes and try again.",
    "auth/quota-exceeded": "SMS quota exceeded. Please try again later.",
    "auth/captcha-check-failed": (
        "reCAPTCHA verification failed. Please refresh the page and try again."
    ),
    "auth/session-expired": "Session expired. Please try again.",
}

CONFIRM_ERRORS = {
    "auth/invalid-verification-code": "Invalid OTP code. Please check and try again.",
    "auth/code-expired": "OTP code has expired. Please request a new one.",
    "auth/session-expired": "OTP session expired. Please request a new OTP.",
}


class VerificationGate:
    """Gates a challenge session behind a verified phone number.

    Every public coroutine returns ``True``/``False`` and leaves a readable
    message in ``error`` on failure; nothing propagates to the caller.
    """

    def __init__(
        self,
        provider,
        store: VerificationStore,
        challenge_id: Any,
        machine: Optional[SessionMachine] = None,
        country_code: str = DEFAULT_COUNTRY_CODE,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.provider = provider
        self.store = store
        self.challenge_id = challenge_id
        self.machine = machine or SessionMachine()
        self.country_code = country_code
        self.monotonic = monotonic

        self.phone = ""
        self.verified_phone: Optional[str] = None
        self.error: Optional[str] = None
        self.loading = False
        self._confirmation = None
        self._cooldown_until = 0.0

    @property
    def state(self) -> SessionState:
        return self.machine.state

    @property
    def is_verified(self) -> bool:
        return self.verified_phone is not None

    def cooldown_remaining(self) -> int:
        """Seconds left before a resend is allowed."""
        return max(0, math.ceil(self._cooldown_until - self.monotonic()))

    def _validate_phone(self, phone: str) -> str:
        trimmed = str(phone or "").strip()
        if not trimmed:
            raise ValueError("Please enter your phone number")

        formatted = format_phone_number(trimmed, self.country_code)
        if not formatted:
            raise ValueError(
                "Please enter a valid phone number (minimum 10 digits). "
                f'You entered: "{trimmed}"'
            )
        if not formatted.startswith("+"):
            raise ValueError("Invalid phone number format. Please include country code.")

        digits = re.sub(r"\D", "", formatted[1:])
        if len(digits) < 10:
            raise ValueError(
                "Phone number is too short. Please enter at least 10 digits. "
                f"Current: {len(digits)} digits"
            )
        if len(formatted) < 12:
            raise ValueError(
                "Phone number is too short. Please enter a valid phone number. "
                f"Current length: {len(formatted)}"
            )
        return formatted

    async def request_code(self, phone: str) -> bool:
        """Validate and normalize a phone, then ask the provider to send an OTP."""
        self.error = None
        if self.machine.ended:
            self.error = "The challenge has ended."
            return False
        self._confirmation = None
        if self.state not in (SessionState.PHONE_ENTRY, SessionState.AWAITING_OTP):
            self.change_phone(phone)

        try:
            formatted = self._validate_phone(phone)
        except ValueError as e:
            self.error = str(e)
            return False

        self.phone = formatted
        self.loading = True
        try:
            self._confirmation = await asyncio.to_thread(self.provider.send_code, formatted)
        except PhoneAuthError as e:
            logger.debug("send_code failed: %s (%s)", e.code, e.message)
            self.error = (
                SEND_ERRORS.get(e.code) or e.message or "Failed to send OTP. Please try again."
            )
            return False
        except Exception as e:
            logger.debug("send_code failed: %s", e)
            self.error = str(e) or "Failed to send OTP. Please try again."
            return False
        finally:
            self.loading = False

        self._cooldown_until = self.monotonic() + RESEND_COOLDOWN
        self.machine.apply(SessionEvent.CODE_SENT)
        logger.info("OTP sent to %s", formatted)
        return True

    async def confirm_code(self, code: str) -> bool:
        """Confirm a 6-digit OTP; on success write a verification grant."""
        self.error = None
        code = str(code or "").strip()
        if not re.fullmatch(r"\d{6}", code):
            self.error = "Please enter a valid 6-digit OTP code"
            return False
        if self._confirmation is None or self.state is not SessionState.AWAITING_OTP:
            self.error = "OTP session expired. Please request a new OTP."
            return False

        self.loading = True
        try:
            confirmed = await asyncio.to_thread(self._confirmation.confirm, code)
        except PhoneAuthError as e:
            logger.debug("confirm failed: %s (%s)", e.code, e.message)
            self.error = (
                CONFIRM_ERRORS.get(e.code) or e.message or "Invalid OTP code. Please try again."
            )
            return False
        except Exception as e:
            logger.debug("confirm failed: %s", e)
            self.error = str(e) or "Invalid OTP code. Please try again."
            return False
        finally:
            self.loading = False

        if not confirmed:
            self.error = "Invalid OTP code. Please try again."
            return False

        self.verified_phone = self.phone
        self._confirmation = None
        self.store.store(self.phone, self.challenge_id)
        self.machine.apply(SessionEvent.CODE_CONFIRMED)
        return True

    async def resend(self) -> bool:
        """Send the OTP again once the cooldown has elapsed."""
        remaining = self.cooldown_remaining()
        if remaining > 0:
            self.error = f"Please wait {remaining} seconds before requesting a new OTP."
            return False
        if not self.phone:
            self.error = "Phone number is required to resend OTP."
            return False
        return await self.request_code(self.phone)

    def change_phone(self, phone: str = "") -> None:
        """Reset to phone entry, dropping any pending code and stored grant."""
        old_phone = self.verified_phone or self.phone
        if old_phone:
            self.store.clear(old_phone, self.challenge_id)
        self.phone = format_phone_number(phone, self.country_code) if phone else ""
        self.verified_phone = None
        self.error = None
        self._confirmation = None
        self._cooldown_until = 0.0
        if self.state not in (SessionState.PHONE_ENTRY, SessionState.ENDED):
            self.machine.apply(SessionEvent.PHONE_CHANGED)

    def restore(self, preferred_phone: Optional[str] = None) -> Optional[str]:
        """Skip phone and OTP steps when a valid grant is already stored."""
        candidates = []
        if preferred_phone:
            candidates.append(format_phone_number(preferred_phone, self.country_code))
        candidates.extend(self.store.phones_for_challenge(self.challenge_id))

        for phone in candidates:
            if phone and self.store.is_verified_for_challenge(phone, self.challenge_id):
                self.phone = phone
                self.verified_phone = phone
                if self.state is SessionState.PHONE_ENTRY:
                    self.machine.apply(SessionEvent.GRANT_RESTORED)
                logger.debug("Restored verification for %s", phone)
                return phone
        return None

    def is_phone_consistent(self, form_phone: str) -> bool:
        """
        Check the phone about to be used still matches the verified one.
        A mismatch forces re-verification.
        """
        formatted = format_phone_number(form_phone, self.country_code)
        if self.verified_phone and formatted == self.verified_phone:
            return True
        self.change_phone(form_phone)
        self.error = "The phone number has changed. Please re-verify with OTP."
        return False
