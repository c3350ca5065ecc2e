"""
Payments app for M-Pesa subscription payments.

This app handles:
- STK push initiation through the Daraja API
- The payment ledger and its guarded state transitions
- Callback reconciliation and exactly-once subscription activation
- Direct (PayPal-style) payment confirmation
- Trial start and trial expiry

Related apps:
    - customers: Customer model and dashboard
    - toolkit: Email delivery

Usage:
    from payments.services import PaymentInitiationService, ReconciliationEngine

    # Start a push
    result = PaymentInitiationService.initiate_push(name, email, phone, plan, amount)

    # Reconcile a parsed callback
    ReconciliationEngine.handle_confirmation(confirmation)
"""
