"""Phone number validation and formatting."""

import re

DEFAULT_COUNTRY_CODE = "+91"


def _digits(value: str) -> str:
    return re.sub(r"\D", "", value)


def validate_phone_number(phone: str) -> bool:
    """Check that a phone number has between 10 and 15 digits."""
    if not phone:
        return False
    cleaned = re.sub(r"[^\d+]", "", phone)
    return 10 <= len(_digits(cleaned)) <= 15


def format_phone_number(phone, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """
    Format a phone number to E.164 (+[country code][number]).
    Returns an empty string when the number is too short or invalid.
    """
    if not phone:
        return ""

    phone_str = str(phone).strip()
    cleaned = re.sub(r"[^\d+]", "", phone_str)
    if not cleaned:
        return ""

    if cleaned.startswith("+"):
        digits = _digits(cleaned[1:])
        if len(digits) == 10:
            return f"{country_code}{digits}"
        if len(digits) >= 10:
            return f"+{digits}"
        return ""

    cleaned = _digits(cleaned)
    if not cleaned:
        return ""

    # Keep at least one digit when stripping leading zeros
    cleaned = cleaned.lstrip("0") or cleaned
    cc_digits = country_code.replace("+", "")

    # Exactly 10 digits is always a local number, even if it starts with 91
    if len(cleaned) == 10:
        return f"{country_code}{cleaned}"
    if len(cleaned) == 12 and cleaned.startswith("91"):
        return f"+{cleaned}"
    if len(cleaned) > 12:
        if cleaned.startswith(cc_digits):
            return f"+{cleaned}"
        return f"{country_code}{cleaned}"
    if len(cleaned) == 11 and cleaned.startswith(cc_digits):
        return f"+{cleaned}"
    if len(cleaned) < 10:
        return ""
    if len(cleaned) <= 15:
        return f"{country_code}{cleaned}"
    return ""


def format_phone_for_display(phone: str) -> str:
    """Format a phone number for display, e.g. ``+91 98765 43210``."""
    if not phone:
        return ""
    cleaned = _digits(phone)
    if len(cleaned) == 10:
        return f"{cleaned[:5]} {cleaned[5:]}"
    if len(cleaned) > 10:
        code, number = cleaned[:-10], cleaned[-10:]
        return f"+{code} {number[:5]} {number[5:]}"
    return cleaned

