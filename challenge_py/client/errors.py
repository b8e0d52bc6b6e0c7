"""Exceptions raised at the transport boundary."""

from typing import Any, Optional


class ApiError(Exception):
    """A failed call to the challenge API."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Optional[Any] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload if payload is not None else {}

    @property
    def data(self) -> dict:
        """Response body as a dict (empty when the body was not JSON)."""
        return self.payload if isinstance(self.payload, dict) else {}


class PhoneAuthError(Exception):
    """A failure reported by the phone verification provider."""

    def __init__(self, code: str, message: str = ""):
        super().__init__(message or code)
        self.code = code
        self.message = message


def message_from_payload(payload: Any, fallback: str) -> str:
    """Pull a human-readable message out of an error response body."""
    if isinstance(payload, dict):
        for key in ("message", "detail", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value
        errors = payload.get("errors")
        if isinstance(errors, list) and errors:
            return str(errors[0])
    return fallback
