"""
Ledger - durable record of payment attempts.

Public API:
    PaymentLedger - creation, rebind, lookups and guarded transitions

Usage:
    from payments.ledger import PaymentLedger

    payment = PaymentLedger.create_pending(customer, amount, method, plan)
    PaymentLedger.rebind(payment.local_reference, checkout_request_id)
    payment = PaymentLedger.find_for_confirmation(checkout_request_id)
"""

from .services import PaymentLedger

__all__ = [
    "PaymentLedger",
]
