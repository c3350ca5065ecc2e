"""
State machine enums for payment models.

This module defines the state enums used by payment models with django-fsm.
"""

from payments.state_machines.states import (
    CallbackStatus,
    PaymentMethod,
    PaymentStatus,
    SubscriptionStatus,
)

__all__ = [
    "CallbackStatus",
    "PaymentMethod",
    "PaymentStatus",
    "SubscriptionStatus",
]
