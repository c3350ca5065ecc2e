"""
Helper functions for handling customer PII in logs and responses.

Payment flows log every step with structured context; these helpers keep
email addresses and phone numbers recognisable to an operator without
writing them to log files in full.

Usage:
    from toolkit.helpers import mask_email, mask_phone

    logger.info(
        "Initiating push",
        extra={"email": mask_email(email), "phone": mask_phone(phone)},
    )
"""

from __future__ import annotations

import re


def mask_email(email: str) -> str:
    """
    Mask email for display.

    Keeps first character and domain visible.

    Example:
        masked = mask_email("john.doe@example.com")  # "j***@example.com"
    """
    if not email or "@" not in email:
        return "***"

    local, domain = email.rsplit("@", 1)

    if len(local) > 1:
        masked_local = local[0] + "***"
    else:
        masked_local = "***"

    return f"{masked_local}@{domain}"


def mask_phone(phone: str) -> str:
    """
    Mask phone number for display.

    Keeps the country code and last 3 digits visible.

    Example:
        mask_phone("254712345678")  # "254***678"
        mask_phone("+254 712 345 678")  # "254***678"
    """
    digits_only = re.sub(r"\D", "", phone or "")

    if len(digits_only) < 6:
        return "***"

    return f"{digits_only[:3]}***{digits_only[-3:]}"
