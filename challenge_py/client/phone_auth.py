"""Phone number verification through Firebase Authentication.

The browser SDK needs an invisible reCAPTCHA widget; from a terminal we talk to
the Identity Toolkit REST API directly and pass the reCAPTCHA token (or rely
on a project configured with test phone numbers).
"""

import logging
from dataclasses import dataclass
from typing import Optional

import requests

from .errors import PhoneAuthError


logger = logging.getLogger(__name__)

# Identity Toolkit error strings mapped to the web SDK's error codes.
PROVIDER_ERROR_CODES = {
    "INVALID_PHONE_NUMBER": "auth/invalid-phone-number",
    "MISSING_PHONE_NUMBER": "auth/invalid-phone-number",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "auth/too-many-requests",
    "QUOTA_EXCEEDED": "auth/quota-exceeded",
    "CAPTCHA_CHECK_FAILED": "auth/captcha-check-failed",
    "MISSING_RECAPTCHA_TOKEN": "auth/captcha-check-failed",
    "BILLING_NOT_ENABLED": "auth/billing-not-enabled",
    "SESSION_EXPIRED": "auth/session-expired",
    "INVALID_SESSION_INFO": "auth/session-expired",
    "INVALID_CODE": "auth/invalid-verification-code",
    "MISSING_CODE": "auth/invalid-verification-code",
    "CODE_EXPIRED": "auth/code-expired",
}


@dataclass
class PhoneConfirmation:
    """Handle returned by send_code; confirms the code later."""

    provider: "FirebasePhoneAuth"
    phone: str
    session_info: str

    def confirm(self, code: str) -> bool:
        """Verify the code sent to the phone."""
        return self.provider.confirm(self.session_info, code)


class FirebasePhoneAuth:
    """Phone OTP provider backed by the Identity Toolkit REST API."""

    BASE_URL = "https://identitytoolkit.googleapis.com/v1"

    def __init__(
        self,
        api_key: str,
        recaptcha_token: Optional[str] = None,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.recaptcha_token = recaptcha_token
        self.timeout = timeout
        self.session = session or requests.Session()

    def _call(self, method: str, body: dict) -> dict:
        if not self.api_key:
            raise PhoneAuthError(
                "auth/invalid-api-key", "Phone verification is not configured."
            )
        try:
            response = self.session.post(
                f"{self.BASE_URL}/accounts:{method}",
                params={"key": self.api_key},
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise PhoneAuthError("auth/network-request-failed", str(e)) from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.ok:
            raw = (data.get("error") or {}).get("message") or f"HTTP {response.status_code}"
            key = raw.split(":")[0].strip()
            code = PROVIDER_ERROR_CODES.get(key, "auth/internal-error")
            logger.debug("Phone auth %s failed: %s", method, raw)
            raise PhoneAuthError(code, raw)
        return data

    def send_code(self, phone: str) -> PhoneConfirmation:
        """Send an OTP to an E.164 phone number."""
        body = {"phoneNumber": phone}
        if self.recaptcha_token:
            body["recaptchaToken"] = self.recaptcha_token
        data = self._call("sendVerificationCode", body)
        session_info = data.get("sessionInfo")
        if not session_info:
            raise PhoneAuthError("auth/internal-error", "No verification session returned.")
        return PhoneConfirmation(provider=self, phone=phone, session_info=session_info)

    def confirm(self, session_info: str, code: str) -> bool:
        """Exchange the verification session and code for a signed-in user."""
        data = self._call("signInWithPhoneNumber", {"sessionInfo": session_info, "code": code})
        return bool(data.get("localId") or data.get("idToken"))
