"""
Subscription activation.

compute_expiry() holds the renewal arithmetic as a pure function.
SubscriptionActivator applies it: it moves the customer to its new
status and upserts the customer's effective subscription row.

The activator does not guard against being invoked twice for the same
payment; the reconciliation engine only calls it after winning the
activation claim on the payment.

Usage:
    from payments.services.activation import SubscriptionActivator, compute_expiry

    compute_expiry(Plan.BASIC, datetime(2024, 1, 31, tzinfo=UTC))
    # datetime(2024, 2, 29, tzinfo=UTC)

    subscription = SubscriptionActivator.activate(customer, Plan.BASIC)
"""

from __future__ import annotations

import calendar
from datetime import datetime, timedelta

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from core.exceptions import ConflictError, ValidationError
from core.services import BaseService
from customers.models import Customer, CustomerStatus, Plan
from customers.services import CustomerService
from payments import notifications
from payments.models import Subscription
from payments.state_machines import SubscriptionStatus
from toolkit.helpers import mask_email

TRIAL_PERIOD = timedelta(days=7)


def add_months(moment: datetime, months: int) -> datetime:
    """
    Add calendar months, clamping the day to the target month's length.

    Jan 31 + 1 month is Feb 28 (Feb 29 in leap years).
    """
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def compute_expiry(plan: str, now: datetime) -> datetime:
    """
    Compute when a period starting at `now` ends.

    Trial: now + 7 days. Paid plans: now + 1 calendar month.

    Raises:
        ValueError: For an unknown plan
    """
    if plan == Plan.TRIAL:
        return now + TRIAL_PERIOD
    if plan in Plan.paid():
        return add_months(now, 1)
    raise ValueError(f"Unknown plan: {plan!r}")


class SubscriptionActivator(BaseService):
    """
    Applies a confirmed plan to a customer.

    Methods:
        activate: Move a customer onto a paid (or trial) plan
        start_trial: Start the free trial for a new or lapsed customer
    """

    @classmethod
    def activate(
        cls,
        customer: Customer,
        plan: str,
        now: datetime | None = None,
    ) -> Subscription:
        """
        Activate `plan` for `customer`.

        Sets customer status (active, or trial for the trial plan), plan
        and expiry, then updates the effective subscription row in place
        or creates one. Renewal counts from `now`, not from the previous
        expiry.

        Callers should hold a row lock on the customer.

        Returns:
            The upserted Subscription
        """
        now = now or timezone.now()
        expires_at = compute_expiry(plan, now)

        customer.status = (
            CustomerStatus.TRIAL if plan == Plan.TRIAL else CustomerStatus.ACTIVE
        )
        customer.plan = plan
        customer.expires_at = expires_at
        customer.save(update_fields=["status", "plan", "expires_at", "updated_at"])

        subscription = (
            Subscription.objects.select_for_update()
            .filter(customer=customer)
            .order_by(F("end_date").desc(nulls_last=True), "-created_at")
            .first()
        )
        if subscription is None:
            subscription = Subscription.objects.create(
                customer=customer,
                plan=plan,
                status=SubscriptionStatus.ACTIVE,
                start_date=now,
                end_date=expires_at,
            )
            created = True
        else:
            subscription.plan = plan
            subscription.status = SubscriptionStatus.ACTIVE
            subscription.start_date = now
            subscription.end_date = expires_at
            subscription.save(
                update_fields=["plan", "status", "start_date", "end_date", "updated_at"]
            )
            created = False

        cls.get_logger().info(
            "Activated subscription",
            extra={
                "customer_id": str(customer.id),
                "subscription_id": str(subscription.id),
                "plan": plan,
                "expires_at": expires_at.isoformat(),
                "created": created,
            },
        )
        return subscription

    @classmethod
    def start_trial(
        cls,
        name: str,
        email: str,
        plan: str = Plan.TRIAL,
        now: datetime | None = None,
    ) -> Customer:
        """
        Start a 7-day trial.

        Creates the customer if needed. The requested plan is recorded
        so the customer can later pay for it; no subscription row is
        written because nothing has been paid.

        Raises:
            ValidationError: Missing name or email, or unknown plan
            ConflictError: If the customer has a paid plan that has not expired
        """
        cls.validate_required(name=name, email=email)
        if plan not in Plan.values:
            raise ValidationError(
                "Invalid plan",
                details={"plan": [f'"{plan}" is not a valid choice.']},
            )

        now = now or timezone.now()

        with cls.storage_errors("start trial"), cls.atomic():
            customer = CustomerService.upsert_contact(name=name, email=email)
            customer = Customer.objects.select_for_update().get(pk=customer.pk)

            # A lapsed paid plan stays ACTIVE until renewed; only time left counts.
            if (
                customer.status == CustomerStatus.ACTIVE
                and customer.expires_at is not None
                and customer.expires_at > now
            ):
                raise ConflictError(
                    "Customer already has an active subscription",
                    error_code="ALREADY_ACTIVE",
                )

            customer.status = CustomerStatus.TRIAL
            customer.plan = plan
            customer.expires_at = compute_expiry(Plan.TRIAL, now)
            customer.save(update_fields=["status", "plan", "expires_at", "updated_at"])

            transaction.on_commit(lambda: notifications.send_trial_started(customer))

        cls.get_logger().info(
            "Started trial",
            extra={
                "customer_id": str(customer.id),
                "email": mask_email(customer.email),
                "expires_at": customer.expires_at.isoformat(),
            },
        )
        return customer
