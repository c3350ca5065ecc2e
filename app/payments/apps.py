"""
Payments app configuration.

This app provides the payment reconciliation core:
- Payment ledger with guarded state transitions
- M-Pesa STK push gateway adapter
- Callback reconciliation and subscription activation
- Periodic trial expiry and stale payment workers
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
