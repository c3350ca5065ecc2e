"""
Tests for the trial expiry sweeper.
"""

from datetime import datetime, timedelta, timezone as dt_timezone

import pytest
from freezegun import freeze_time

from customers.models import Customer, CustomerStatus, Plan
from customers.tests.factories import CustomerFactory
from payments.workers import expire_trials, sweep_expired_trials

NOW = datetime(2024, 6, 10, 2, 0, tzinfo=dt_timezone.utc)


@pytest.fixture
def lapsed_trial(db):
    return CustomerFactory(
        status=CustomerStatus.TRIAL,
        plan=Plan.TRIAL,
        expires_at=NOW - timedelta(hours=1),
    )


@pytest.mark.django_db
class TestSweepExpiredTrials:
    """Tests for sweep_expired_trials()."""

    def test_expires_lapsed_trials(self, lapsed_trial):
        assert sweep_expired_trials(now=NOW) == 1

        customer = Customer.objects.get(pk=lapsed_trial.pk)
        assert customer.status == CustomerStatus.EXPIRED
        assert customer.plan == Plan.TRIAL

    def test_leaves_running_trials(self, db):
        running = CustomerFactory(
            status=CustomerStatus.TRIAL,
            expires_at=NOW + timedelta(days=2),
        )

        assert sweep_expired_trials(now=NOW) == 0
        assert Customer.objects.get(pk=running.pk).status == CustomerStatus.TRIAL

    def test_ignores_paid_customers_past_expiry(self, db):
        """Paid periods are not swept; only trials expire here."""
        paid = CustomerFactory(
            status=CustomerStatus.ACTIVE,
            plan=Plan.BASIC,
            expires_at=NOW - timedelta(days=1),
        )

        sweep_expired_trials(now=NOW)

        assert Customer.objects.get(pk=paid.pk).status == CustomerStatus.ACTIVE

    def test_is_idempotent(self, lapsed_trial):
        assert sweep_expired_trials(now=NOW) == 1
        assert sweep_expired_trials(now=NOW) == 0


@pytest.mark.django_db
class TestExpireTrialsTask:
    """Tests for the expire_trials periodic task."""

    def test_returns_count(self, lapsed_trial):
        with freeze_time(NOW):
            result = expire_trials.delay().get()

        assert result == {"expired_count": 1}
        assert Customer.objects.get(pk=lapsed_trial.pk).status == CustomerStatus.EXPIRED
