"""
Payment services.

This module provides:
- PaymentInitiationService: Starts STK push payments
- ReconciliationEngine: Resolves payments from confirmations, exactly-once activation
- SubscriptionActivator: Applies a confirmed plan to a customer

Usage:
    from payments.services import PaymentInitiationService

    result = PaymentInitiationService.initiate_push(
        name="Jane", email="jane@example.com", phone="0712345678",
        plan="basic", amount=Decimal("500"),
    )

    from payments.services import ReconciliationEngine

    result = ReconciliationEngine.handle_confirmation(confirmation)
"""

from payments.services.activation import (
    SubscriptionActivator,
    add_months,
    compute_expiry,
)
from payments.services.initiation import (
    InitiationResult,
    PaymentInitiationService,
)
from payments.services.reconciliation import (
    ReconciliationEngine,
    ReconciliationOutcome,
    ReconciliationResult,
)

__all__ = [
    # Activation
    "SubscriptionActivator",
    "add_months",
    "compute_expiry",
    # Initiation
    "InitiationResult",
    "PaymentInitiationService",
    # Reconciliation
    "ReconciliationEngine",
    "ReconciliationOutcome",
    "ReconciliationResult",
]
