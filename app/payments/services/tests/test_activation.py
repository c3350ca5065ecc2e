"""
Tests for subscription activation.

Tests cover:
- Renewal arithmetic (calendar months, trial length)
- SubscriptionActivator.activate upserting the effective subscription
- SubscriptionActivator.start_trial
"""

from datetime import datetime, timedelta, timezone as dt_timezone

import pytest
from django.core import mail
from django.utils import timezone
from freezegun import freeze_time

from core.exceptions import ConflictError, ValidationError
from customers.models import Customer, CustomerStatus, Plan
from customers.tests.factories import CustomerFactory
from payments.models import Subscription
from payments.services.activation import (
    SubscriptionActivator,
    add_months,
    compute_expiry,
)
from payments.state_machines import SubscriptionStatus
from payments.tests.factories import SubscriptionFactory

UTC = dt_timezone.utc


# =============================================================================
# Expiry Arithmetic Tests
# =============================================================================


class TestComputeExpiry:
    """Tests for compute_expiry() and add_months()."""

    def test_paid_plan_adds_one_calendar_month(self):
        now = datetime(2024, 3, 15, 10, 30, tzinfo=UTC)

        assert compute_expiry(Plan.BASIC, now) == datetime(2024, 4, 15, 10, 30, tzinfo=UTC)

    def test_end_of_month_clamps_in_leap_year(self):
        now = datetime(2024, 1, 31, 9, 0, tzinfo=UTC)

        assert compute_expiry(Plan.GAMER, now) == datetime(2024, 2, 29, 9, 0, tzinfo=UTC)

    def test_end_of_month_clamps_in_common_year(self):
        now = datetime(2023, 1, 31, tzinfo=UTC)

        assert compute_expiry(Plan.VENUE, now) == datetime(2023, 2, 28, tzinfo=UTC)

    def test_december_rolls_over_year(self):
        now = datetime(2024, 12, 15, tzinfo=UTC)

        assert compute_expiry(Plan.BASIC, now) == datetime(2025, 1, 15, tzinfo=UTC)

    def test_trial_adds_seven_days(self):
        now = datetime(2024, 2, 26, tzinfo=UTC)

        assert compute_expiry(Plan.TRIAL, now) == datetime(2024, 3, 4, tzinfo=UTC)

    def test_unknown_plan(self):
        with pytest.raises(ValueError, match="Unknown plan"):
            compute_expiry("platinum", datetime(2024, 1, 1, tzinfo=UTC))

    @pytest.mark.parametrize(
        "start, months, expected",
        [
            (datetime(2024, 5, 31), 1, datetime(2024, 6, 30)),
            (datetime(2024, 11, 30), 3, datetime(2025, 2, 28)),
            (datetime(2024, 1, 10), 12, datetime(2025, 1, 10)),
        ],
    )
    def test_add_months(self, start, months, expected):
        assert add_months(start, months) == expected


# =============================================================================
# Activation Tests
# =============================================================================


@pytest.mark.django_db
class TestActivate:
    """Tests for SubscriptionActivator.activate()."""

    def test_first_activation_creates_subscription(self, customer):
        now = datetime(2024, 1, 31, 12, 0, tzinfo=UTC)

        subscription = SubscriptionActivator.activate(customer, Plan.BASIC, now=now)

        customer = Customer.objects.get(pk=customer.pk)
        assert customer.status == CustomerStatus.ACTIVE
        assert customer.plan == Plan.BASIC
        assert customer.expires_at == datetime(2024, 2, 29, 12, 0, tzinfo=UTC)

        assert subscription.customer_id == customer.id
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.start_date == now
        assert subscription.end_date == customer.expires_at

    def test_renewal_updates_effective_subscription_in_place(self, customer):
        existing = SubscriptionFactory(customer=customer, plan=Plan.BASIC)
        now = timezone.now()

        subscription = SubscriptionActivator.activate(customer, Plan.GAMER, now=now)

        assert subscription.pk == existing.pk
        assert Subscription.objects.filter(customer=customer).count() == 1
        subscription = Subscription.objects.get(pk=existing.pk)
        assert subscription.plan == Plan.GAMER
        assert subscription.start_date == now

    def test_renewal_counts_from_now(self, active_customer):
        """Time left on the previous period is not carried over."""
        now = timezone.now()

        SubscriptionActivator.activate(active_customer, Plan.BASIC, now=now)

        customer = Customer.objects.get(pk=active_customer.pk)
        assert customer.expires_at == add_months(now, 1)

    def test_only_latest_subscription_is_updated(self, customer):
        now = timezone.now()
        old = SubscriptionFactory(
            customer=customer,
            start_date=now - timedelta(days=90),
            end_date=now - timedelta(days=60),
        )
        latest = SubscriptionFactory(
            customer=customer,
            start_date=now - timedelta(days=30),
            end_date=now - timedelta(days=1),
        )

        subscription = SubscriptionActivator.activate(customer, Plan.BASIC, now=now)

        assert subscription.pk == latest.pk
        assert Subscription.objects.get(pk=old.pk).end_date == now - timedelta(days=60)

    def test_trial_plan_sets_trial_status(self, customer):
        SubscriptionActivator.activate(customer, Plan.TRIAL)

        assert Customer.objects.get(pk=customer.pk).status == CustomerStatus.TRIAL


# =============================================================================
# Trial Start Tests
# =============================================================================


@pytest.mark.django_db
class TestStartTrial:
    """Tests for SubscriptionActivator.start_trial()."""

    @freeze_time("2024-06-01 08:00:00")
    def test_new_customer_starts_trial(self, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            customer = SubscriptionActivator.start_trial(
                name="Otieno",
                email="Otieno@Example.com",
            )

        assert customer.email == "otieno@example.com"
        assert customer.status == CustomerStatus.TRIAL
        assert customer.plan == Plan.TRIAL
        assert customer.expires_at == datetime(2024, 6, 8, 8, 0, tzinfo=UTC)
        assert not Subscription.objects.filter(customer=customer).exists()

        assert len(mail.outbox) == 1
        assert mail.outbox[0].to == ["otieno@example.com"]
        assert mail.outbox[0].subject == "AdClean KE - Free Trial Started"

    def test_records_requested_plan(self, db):
        customer = SubscriptionActivator.start_trial(
            name="Otieno", email="otieno@example.com", plan=Plan.GAMER
        )

        assert customer.plan == Plan.GAMER
        assert customer.status == CustomerStatus.TRIAL

    def test_expired_customer_can_restart_trial(self, db):
        customer = CustomerFactory(status=CustomerStatus.EXPIRED)

        customer = SubscriptionActivator.start_trial(name=customer.name, email=customer.email)

        assert customer.status == CustomerStatus.TRIAL

    def test_lapsed_paid_customer_can_start_trial(self, db):
        customer = CustomerFactory(
            status=CustomerStatus.ACTIVE,
            plan=Plan.BASIC,
            expires_at=timezone.now() - timedelta(days=60),
        )

        customer = SubscriptionActivator.start_trial(name=customer.name, email=customer.email)

        assert customer.status == CustomerStatus.TRIAL
        assert customer.expires_at > timezone.now()

    def test_active_customer_is_rejected(self, active_customer):
        with pytest.raises(ConflictError) as exc_info:
            SubscriptionActivator.start_trial(
                name=active_customer.name, email=active_customer.email
            )

        assert exc_info.value.error_code == "ALREADY_ACTIVE"
        customer = Customer.objects.get(pk=active_customer.pk)
        assert customer.status == CustomerStatus.ACTIVE
        assert len(mail.outbox) == 0

    def test_invalid_plan(self, db):
        with pytest.raises(ValidationError) as exc_info:
            SubscriptionActivator.start_trial(name="A", email="a@example.com", plan="gold")

        assert "plan" in exc_info.value.details
        assert not Customer.objects.exists()

    def test_missing_email(self, db):
        with pytest.raises(ValidationError) as exc_info:
            SubscriptionActivator.start_trial(name="A", email="")

        assert exc_info.value.details == {"email": ["This field is required."]}
