"""
Tests for payments app.

This package contains test modules for:
- test_models.py: Payment, Subscription and GatewayCallback model tests
- test_state_transitions.py: Payment state machine tests
- test_views.py: API endpoint tests
- test_tasks.py: Activation task tests
- test_notifications.py: Confirmation and trial email tests
- test_integration.py: End-to-end payment flows

Subpackages carry their own tests (adapters, ledger, services, webhooks,
workers).

Usage:
    pytest app/payments
"""
