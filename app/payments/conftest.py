"""
Pytest fixtures shared by all payments tests.

This module provides M-Pesa settings, customer and payment fixtures in
the states the reconciliation flows care about.

Usage:
    def test_complete(pending_payment):
        assert PaymentLedger.complete(pending_payment, receipt_number="NLJ7RT61SV")
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from customers.models import CustomerStatus, Plan
from customers.tests.factories import CustomerFactory
from payments.adapters import MpesaAdapter
from payments.state_machines import PaymentStatus
from payments.tests.factories import PaymentFactory


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture(autouse=True)
def mpesa_settings(settings):
    """Sandbox credentials and no callback token unless a test sets one."""
    settings.MPESA_ENVIRONMENT = "sandbox"
    settings.MPESA_CONSUMER_KEY = "test-consumer-key"
    settings.MPESA_CONSUMER_SECRET = "test-consumer-secret"
    settings.MPESA_SHORTCODE = "174379"
    settings.MPESA_PASSKEY = "test-passkey"
    settings.MPESA_CALLBACK_URL = "https://example.com/api/v1/payments/callbacks/mpesa/"
    settings.MPESA_CALLBACK_TOKEN = ""
    settings.BASE_URL = "https://adclean.co.ke"
    return settings


@pytest.fixture(autouse=True)
def _reset_token_cache():
    """Each test starts without a cached access token."""
    MpesaAdapter.token_cache.invalidate()
    yield
    MpesaAdapter.token_cache.invalidate()


# =============================================================================
# Customers
# =============================================================================


@pytest.fixture
def customer(db):
    """Inactive customer with a phone number."""
    return CustomerFactory(
        name="Jane Wanjiku",
        email="jane@example.com",
        phone="254712345678",
    )


@pytest.fixture
def trial_customer(db):
    """Customer in the middle of a trial."""
    return CustomerFactory(
        status=CustomerStatus.TRIAL,
        plan=Plan.TRIAL,
        expires_at=timezone.now() + timedelta(days=3),
    )


@pytest.fixture
def active_customer(db):
    """Customer with a paid plan."""
    return CustomerFactory(
        status=CustomerStatus.ACTIVE,
        plan=Plan.BASIC,
        expires_at=timezone.now() + timedelta(days=20),
    )


# =============================================================================
# Payments
# =============================================================================


@pytest.fixture
def pending_payment(db, customer):
    """Pending M-Pesa payment bound to its CheckoutRequestID."""
    return PaymentFactory(
        customer=customer,
        external_reference="ws_CO_191220191020363925",
    )


@pytest.fixture
def unbound_payment(db, customer):
    """Pending payment whose push has not been accepted yet."""
    return PaymentFactory(customer=customer, external_reference=None)


@pytest.fixture
def completed_payment(db, customer):
    """Completed payment that has not been activated."""
    return PaymentFactory(
        customer=customer,
        status=PaymentStatus.COMPLETED,
        receipt_number="NLJ7RT61SV",
        completed_at=timezone.now(),
    )
