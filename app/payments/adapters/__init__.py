"""
Payment adapters for external services.

All M-Pesa API calls should go through MpesaAdapter to ensure consistent
error handling, timeouts, token handling and observability.

Usage:
    from payments.adapters import MpesaAdapter, StkPushParams

    result = MpesaAdapter.initiate_push(
        StkPushParams(
            phone_number="254712345678",
            amount=Decimal("500"),
            account_reference="ADCLEANBASIC",
            description="AdClean KE basic Plan",
            callback_url=settings.MPESA_CALLBACK_URL,
        )
    )
"""

from payments.adapters.mpesa_adapter import (
    AccessToken,
    AccessTokenCache,
    MpesaAdapter,
    StkPushParams,
    StkPushResult,
    StkQueryResult,
    build_password,
    build_timestamp,
)

__all__ = [
    "AccessToken",
    "AccessTokenCache",
    "MpesaAdapter",
    "StkPushParams",
    "StkPushResult",
    "StkQueryResult",
    "build_password",
    "build_timestamp",
]
