"""
Payment domain models.

This module contains all payment-related models:
- Payment: Ledger record of a payment attempt and its single resolution
- Subscription: Customer plan periods written by the activator
- GatewayCallback: Audit trail of gateway callback deliveries
"""

from payments.models.gateway_callback import GatewayCallback
from payments.models.payment import Payment
from payments.models.subscription import Subscription

__all__ = [
    "GatewayCallback",
    "Payment",
    "Subscription",
]
