"""
State enums for payment models.

This module defines all state enums used by payment models with django-fsm.
These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Payment States:
    pending → completed (gateway or direct confirmation)
    pending → failed (gateway-reported failure or synchronous rejection)
    pending → cancelled (administrative / expiry path)
    completed, failed and cancelled are terminal

Subscription States:
    active → inactive / cancelled

GatewayCallback Statuses (audit only):
    received → processed | duplicate | unmatched | rejected | failed
    unmatched → processed (replayed after the payment was rebound)
"""

from django.db import models


class PaymentStatus(models.TextChoices):
    """
    States for the Payment model lifecycle.

    Terminal states: COMPLETED, FAILED, CANCELLED

    A payment leaves PENDING exactly once. Every transition is a
    conditional update on status = 'pending', so concurrent or repeated
    confirmations can never move a payment out of a terminal state.
    """

    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    CANCELLED = "cancelled", "Cancelled"

    @classmethod
    def terminal_states(cls) -> list[str]:
        """Return list of terminal state values."""
        return [cls.COMPLETED, cls.FAILED, cls.CANCELLED]


class PaymentMethod(models.TextChoices):
    """
    How a payment was made.

    MPESA: Push gateway (STK push), confirmed asynchronously by callback
    PAYPAL: Direct capture, confirmed synchronously by the client
    """

    MPESA = "mpesa", "M-Pesa"
    PAYPAL = "paypal", "PayPal"

    @classmethod
    def direct_methods(cls) -> list[str]:
        """Methods whose confirmation arrives with the client request."""
        return [cls.PAYPAL]


class SubscriptionStatus(models.TextChoices):
    """States for the Subscription model."""

    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"
    CANCELLED = "cancelled", "Cancelled"


class CallbackStatus(models.TextChoices):
    """
    Processing outcome of a stored gateway callback.

    RECEIVED: Stored, not yet processed
    PROCESSED: Drove a payment transition
    DUPLICATE: Payment was already resolved, no-op
    UNMATCHED: No payment carries this reference (yet)
    REJECTED: Payload was malformed
    FAILED: Unexpected error while processing
    """

    RECEIVED = "received", "Received"
    PROCESSED = "processed", "Processed"
    DUPLICATE = "duplicate", "Duplicate"
    UNMATCHED = "unmatched", "Unmatched"
    REJECTED = "rejected", "Rejected"
    FAILED = "failed", "Failed"
