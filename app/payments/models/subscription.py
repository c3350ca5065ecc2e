"""
Subscription model for customer plan periods.

A Subscription row records a plan period for a customer. Rows are only
written by the SubscriptionActivator after a payment completes; the
activator updates the customer's effective (latest-ending) row in place
or creates one if the customer has none. Historical rows may coexist.

Usage:
    from payments.models import Subscription

    effective = (
        Subscription.objects.filter(customer=customer)
        .order_by(F("end_date").desc(nulls_last=True))
        .first()
    )
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin
from customers.models import Plan

from payments.state_machines import SubscriptionStatus


class Subscription(UUIDPrimaryKeyMixin, BaseModel):
    """
    A customer's plan period.

    Fields:
        customer: Subscribed customer
        plan: Plan for this period
        status: active, inactive or cancelled
        start_date: When the period started
        end_date: When the period ends
        auto_renew: Whether the customer wants to be reminded to renew
    """

    customer = models.ForeignKey(
        "customers.Customer",
        on_delete=models.CASCADE,
        related_name="subscriptions",
        help_text="Subscribed customer",
    )

    plan = models.CharField(
        max_length=20,
        choices=Plan.choices,
        help_text="Subscribed plan",
    )

    status = models.CharField(
        max_length=20,
        choices=SubscriptionStatus.choices,
        default=SubscriptionStatus.ACTIVE,
        db_index=True,
        help_text="Subscription status",
    )

    start_date = models.DateTimeField(
        default=timezone.now,
        help_text="Start of the current period",
    )

    end_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="End of the current period",
    )

    auto_renew = models.BooleanField(
        default=True,
        help_text="Whether the subscription should be renewed",
    )

    class Meta:
        ordering = ["-end_date"]
        verbose_name = "Subscription"
        verbose_name_plural = "Subscriptions"
        indexes = [
            models.Index(fields=["customer", "end_date"]),
        ]

    def __str__(self) -> str:
        """Return string representation with plan, status, and end date."""
        return f"Subscription({self.plan}, {self.status}, ends {self.end_date})"

    @property
    def is_active(self) -> bool:
        """Check if subscription is active and not past its end date."""
        return self.status == SubscriptionStatus.ACTIVE and (
            self.end_date is None or self.end_date > timezone.now()
        )
