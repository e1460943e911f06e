"""Shared validation utilities"""

import re
from typing import Optional

from ..config import PHONE_COUNTRY_CODE, PHONE_TRUNK_PREFIX


def normalize_phone(
    phone: Optional[str],
    country_code: str = PHONE_COUNTRY_CODE,
    trunk_prefix: str = PHONE_TRUNK_PREFIX,
) -> str:
    """
    Normalize a locally-formatted phone number to E.164.

    Never raises: anything that is not a digit is dropped and the remainder is
    coerced into ``+<country code><subscriber>``. Applying it to its own output
    returns the same value.

    Args:
        phone: Phone number string in any format ("050-123-4567", "+972 50 ...")
        country_code: Country calling code without "+"
        trunk_prefix: National trunk prefix replaced by the country code

    Returns:
        Phone number in E.164 format (+972501234567)
    """
    digits = re.sub(r"\D", "", phone or "")

    if trunk_prefix and digits.startswith(trunk_prefix):
        return f"+{country_code}{digits[len(trunk_prefix):]}"

    if digits.startswith(country_code):
        return f"+{digits}"

    return f"+{country_code}{digits}"


def validate_template_body(body: Optional[str]) -> str:
    """Template bodies must contain visible text."""
    if body is None or not body.strip():
        raise ValueError("Template body cannot be empty")
    return body
