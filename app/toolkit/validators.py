"""
Validators for customer contact details.

This module provides normalize_msisdn, the canonical M-Pesa subscriber
number (2547XXXXXXXX).

M-Pesa only accepts Kenyan mobile numbers in international format without
the leading "+". Customers type them in every local variant, so numbers are
normalised once at the edge and stored canonically.

Usage:
    from toolkit.validators import normalize_msisdn

    normalize_msisdn("0712 345 678")   # "254712345678"
    normalize_msisdn("+254712345678")  # "254712345678"
"""

from __future__ import annotations

import re

from django.core.exceptions import ValidationError

KENYA_COUNTRY_CODE = "254"

# Safaricom/Airtel mobile ranges: 7XX XXX XXX and 1XX XXX XXX
MSISDN_PATTERN = re.compile(r"^254[17]\d{8}$")


def normalize_msisdn(value: str) -> str:
    """
    Convert a Kenyan mobile number to international format without "+".

    Accepts formats:
    - 0712345678 / 0112345678
    - 712345678
    - +254712345678 / 254712345678
    - any of the above with spaces, dashes or parentheses

    Args:
        value: Phone number as entered

    Returns:
        Normalised MSISDN, e.g. "254712345678"

    Raises:
        ValidationError: If the number is not a Kenyan mobile number
    """
    cleaned = re.sub(r"[\s\-\(\)]", "", str(value or ""))
    cleaned = cleaned.removeprefix("+")

    if cleaned.startswith("0") and len(cleaned) == 10:
        cleaned = KENYA_COUNTRY_CODE + cleaned[1:]
    elif len(cleaned) == 9 and cleaned[0] in "17":
        cleaned = KENYA_COUNTRY_CODE + cleaned

    if not MSISDN_PATTERN.match(cleaned):
        raise ValidationError(
            "Enter a valid Kenyan mobile number. "
            "Format: 0712345678 or +254712345678."
        )

    return cleaned
