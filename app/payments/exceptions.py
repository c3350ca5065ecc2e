"""
Payment-specific exceptions for payment operations.

This module provides a hierarchy of exceptions for payment operations,
covering payment domain errors and M-Pesa gateway errors.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── PaymentNotFoundError - Payment lookup failures
    ├── MalformedConfirmationError - Unparseable gateway callback
    └── PaymentProcessingError - Payment processing failures
        └── GatewayError - Base for all M-Pesa gateway errors
            ├── GatewayRejectedError - Gateway declined the push (permanent)
            └── GatewayUnavailableError - Network/auth/server failure (transient, retry)
                └── GatewayTimeoutError - No response in time (outcome undetermined)

Usage:
    from payments.exceptions import GatewayRejectedError, GatewayTimeoutError

    try:
        result = MpesaAdapter.initiate_push(params)
    except GatewayTimeoutError:
        # The push may still reach the phone; keep the payment pending
        ...
    except GatewayRejectedError as e:
        logger.warning(f"Push declined: {e.reason}")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for all payment operations.

    All payment-specific exceptions inherit from this class,
    which itself inherits from BaseApplicationError for
    consistent API error responses.
    """

    default_error_code: str = "PAYMENT_ERROR"


class PaymentNotFoundError(PaymentError):
    """
    Raised when a payment cannot be found by any of its references.

    Example:
        payment = PaymentLedger.find_by_reference(reference)
        if payment is None:
            raise PaymentNotFoundError(
                "Transaction not found",
                details={"reference": reference}
            )
    """

    default_error_code: str = "PAYMENT_NOT_FOUND"


class MalformedConfirmationError(PaymentError):
    """
    Raised when a gateway confirmation cannot be parsed.

    Covers missing structure, a non-numeric result code, or a success
    callback without a receipt number. Such events must never mutate the
    ledger. The webhook still acknowledges them with 200 because the
    gateway would otherwise keep redelivering an event that can never
    be processed.
    """

    default_error_code: str = "MALFORMED_CONFIRMATION"


class PaymentProcessingError(PaymentError):
    """
    Raised when payment processing fails.

    Use for:
    - Payment gateway failures
    - Processing timeouts
    """

    default_error_code: str = "PAYMENT_PROCESSING_ERROR"


# =============================================================================
# Gateway Exceptions
# =============================================================================


class GatewayError(PaymentProcessingError):
    """
    Base exception for all M-Pesa gateway errors.

    Provides common attributes for gateway error handling:
    - gateway_code: Daraja error code (e.g. "400.002.02"), if any
    """

    default_error_code: str = "GATEWAY_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        gateway_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if gateway_code:
            details["gateway_code"] = gateway_code
        super().__init__(message, error_code=error_code, details=details)
        self.gateway_code = gateway_code


class GatewayRejectedError(GatewayError):
    """
    The gateway refused to dispatch the push.

    Raised when Daraja answers the push request with a non-zero
    ResponseCode or a 4xx error body (invalid phone number, invalid
    amount, wrong shortcode...). The gateway's description is kept in
    `reason` for diagnostics.
    """

    default_error_code: str = "GATEWAY_REJECTED"

    def __init__(
        self,
        reason: str,
        error_code: str | None = None,
        gateway_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        details["reason"] = reason
        super().__init__(
            "Payment request was declined by M-Pesa",
            error_code=error_code,
            gateway_code=gateway_code,
            details=details,
        )
        self.reason = reason


class GatewayUnavailableError(GatewayError):
    """
    The gateway could not be reached or did not answer usefully.

    This covers:
    - Network connectivity issues
    - OAuth token failures
    - Gateway server errors (5xx)
    - Unparseable responses

    The periodic workers pick affected payments up again on their next run.
    """

    default_error_code: str = "GATEWAY_UNAVAILABLE"


class GatewayTimeoutError(GatewayUnavailableError):
    """
    A gateway call timed out.

    IMPORTANT: The request may have been received. For a push this means
    the customer's phone may still show the prompt and a confirmation may
    still arrive, so the payment must stay pending and the caller is told
    the outcome is undetermined.
    """

    default_error_code: str = "GATEWAY_TIMEOUT"
