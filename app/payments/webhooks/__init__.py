"""
Webhook handling for M-Pesa payment callbacks.

Callbacks are stored as GatewayCallback records and reconciled
synchronously by the ReconciliationEngine.

Usage:
    # In urls.py
    from payments.webhooks.views import mpesa_callback

    urlpatterns = [
        path("callbacks/mpesa/", mpesa_callback, name="mpesa_callback"),
    ]
"""

from payments.webhooks.parsers import PushConfirmation, parse_stk_callback

__all__ = [
    "PushConfirmation",
    "parse_stk_callback",
]
