"""
Customer model and its choice enums.

A Customer is created on first contact (trial start or payment initiation)
and is mutated by the reconciliation engine, the subscription activator and
the trial expiry sweeper. Application code never deletes customers; removing
one cascades to its payments and subscriptions at the storage layer.

Usage:
    from customers.models import Customer, CustomerStatus, Plan

    customer = Customer.objects.create(
        name="Jane Wanjiku",
        email="jane@example.com",
        phone="254712345678",
        plan=Plan.BASIC,
    )
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class Plan(models.TextChoices):
    """
    Subscription plans.

    TRIAL is the free 7-day plan; the others are paid monthly.
    """

    TRIAL = "trial", "Free Trial"
    BASIC = "basic", "Basic Plan"
    GAMER = "gamer", "Gamer Plan"
    VENUE = "venue", "Business Plan"

    @classmethod
    def paid(cls) -> list[str]:
        """Return the values of all paid plans."""
        return [cls.BASIC, cls.GAMER, cls.VENUE]


class CustomerStatus(models.TextChoices):
    """
    Customer account status.

    State Flow:
        INACTIVE → ACTIVE (payment completed)
        INACTIVE/EXPIRED → TRIAL (trial started)
        TRIAL → ACTIVE (payment completed)
        TRIAL → EXPIRED (trial expiry sweep)
    """

    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"
    TRIAL = "trial", "Trial"
    EXPIRED = "expired", "Expired"


class Customer(UUIDPrimaryKeyMixin, BaseModel):
    """
    A subscriber identified by email address.

    Fields:
        name: Display name
        email: Unique contact and lookup key (stored lower-case)
        phone: Normalised M-Pesa MSISDN (2547XXXXXXXX), blank for trial-only customers
        plan: Current plan
        status: Account status
        expires_at: When the current trial or paid period ends
    """

    # ==========================================================================
    # Identity
    # ==========================================================================

    name = models.CharField(
        max_length=255,
        help_text="Customer display name",
    )

    email = models.EmailField(
        unique=True,
        help_text="Unique email address (lower-case)",
    )

    phone = models.CharField(
        max_length=20,
        blank=True,
        default="",
        db_index=True,
        help_text="Normalised mobile number, e.g. 254712345678",
    )

    # ==========================================================================
    # Subscription State
    # ==========================================================================

    plan = models.CharField(
        max_length=20,
        choices=Plan.choices,
        default=Plan.TRIAL,
        help_text="Current subscription plan",
    )

    status = models.CharField(
        max_length=20,
        choices=CustomerStatus.choices,
        default=CustomerStatus.INACTIVE,
        db_index=True,
        help_text="Account status",
    )

    expires_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the current trial or paid period ends",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Customer"
        verbose_name_plural = "Customers"
        indexes = [
            models.Index(fields=["status", "expires_at"]),
        ]

    def __str__(self) -> str:
        """Return string representation with email and status."""
        return f"Customer({self.email}, {self.status})"

    @property
    def is_active(self) -> bool:
        """Check if customer has an active paid subscription."""
        return self.status == CustomerStatus.ACTIVE

    @property
    def has_expired(self) -> bool:
        """Check if the current period has ended."""
        return self.expires_at is not None and self.expires_at < timezone.now()
