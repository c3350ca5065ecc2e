"""
Payment model: the ledger record of a single payment attempt.

A Payment is created pending when a push is initiated (or already
completed on the direct path) and is resolved exactly once.

References:
    local_reference: Generated by us at initiation, always present
    external_reference: CheckoutRequestID for pushes (bound after the
        gateway accepts the push) or the provider payment id for direct
        payments
    receipt_number: M-Pesa receipt from the success callback

Usage:
    from payments.models import Payment
    from payments.state_machines import PaymentStatus

    payment = Payment.objects.get(external_reference="ws_CO_191220191020363925")

    # State transitions using django-fsm; save() only matches rows that
    # are still in the state the instance was loaded with
    payment.complete(receipt_number="NLJ7RT61SV", confirmed_amount=500)
    payment.save()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import ConcurrentTransitionMixin, FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin
from customers.models import Plan

from payments.state_machines import PaymentMethod, PaymentStatus


class Payment(ConcurrentTransitionMixin, UUIDPrimaryKeyMixin, BaseModel):
    """
    A payment attempt and its single resolution.

    Uses django-fsm for the state machine. ConcurrentTransitionMixin turns
    every save() of a loaded instance into
    ``UPDATE ... WHERE id = X AND status = <status when loaded>``; when
    another writer resolved the payment first, zero rows match and
    ConcurrentTransition is raised instead of overwriting.

    State Flow:
        PENDING -> COMPLETED (confirmation with result code 0, or direct)
        PENDING -> FAILED (non-zero result code, or push rejected)
        PENDING -> CANCELLED (administrative / expiry)

    Fields:
        customer: Paying customer
        plan: Plan being paid for
        amount: Requested amount (KES)
        method: mpesa (push) or paypal (direct)
        status: Current FSM state (protected: use transitions)
        local_reference / external_reference / receipt_number: see module docs
        payer_phone / confirmed_amount / result_code: from the confirmation
        failure_reason: Gateway description or cancellation reason
        completed_at: When the payment reached COMPLETED
        activated_at: When downstream activation ran (exactly-once gate)
    """

    # ==========================================================================
    # References
    # ==========================================================================

    local_reference = models.CharField(
        max_length=40,
        unique=True,
        help_text="Reference generated at initiation (ADC...)",
    )

    external_reference = models.CharField(
        max_length=100,
        unique=True,
        null=True,
        blank=True,
        help_text="Gateway CheckoutRequestID or direct provider payment id",
    )

    receipt_number = models.CharField(
        max_length=40,
        unique=True,
        null=True,
        blank=True,
        help_text="M-Pesa receipt number from the success callback",
    )

    # ==========================================================================
    # Parties & Amount
    # ==========================================================================

    customer = models.ForeignKey(
        "customers.Customer",
        on_delete=models.CASCADE,
        related_name="payments",
        help_text="Customer making the payment",
    )

    plan = models.CharField(
        max_length=20,
        choices=Plan.choices,
        help_text="Plan being paid for",
    )

    amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        help_text="Requested amount in KES",
    )

    method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        help_text="Payment method",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PaymentStatus.PENDING,
        choices=PaymentStatus.choices,
        db_index=True,
        protected=True,  # Prevent direct assignment outside transitions
        help_text="Current state of the payment (managed by FSM)",
    )

    # ==========================================================================
    # Confirmation Details
    # ==========================================================================

    payer_phone = models.CharField(
        max_length=20,
        blank=True,
        default="",
        help_text="Phone number reported by the gateway",
    )

    confirmed_amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Amount reported by the gateway",
    )

    result_code = models.IntegerField(
        null=True,
        blank=True,
        help_text="Gateway result code (0 = success)",
    )

    failure_reason = models.TextField(
        blank=True,
        default="",
        help_text="Why the payment failed or was cancelled",
    )

    # ==========================================================================
    # Timestamps
    # ==========================================================================

    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payment was completed",
    )

    activated_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the subscription was activated for this payment",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["customer", "status"]),
            models.Index(fields=["status", "created_at"]),
            models.Index(fields=["status", "activated_at"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="payment_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation with reference, status, and amount."""
        reference = self.external_reference or self.local_reference
        return f"Payment({reference}, {self.status}, KES {self.amount})"

    @property
    def reference(self) -> str:
        """Reference clients should use: the external one once bound."""
        return self.external_reference or self.local_reference

    @property
    def is_terminal(self) -> bool:
        """Check if the payment has been resolved."""
        return self.status in PaymentStatus.terminal_states()

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.COMPLETED,
    )
    def complete(
        self,
        receipt_number: str | None = None,
        confirmed_amount=None,
        payer_phone: str = "",
        result_code: int | None = 0,
    ):
        """
        Mark payment as completed.

        Transition: PENDING -> COMPLETED
        """
        self.receipt_number = receipt_number or None
        self.confirmed_amount = confirmed_amount
        self.payer_phone = payer_phone or ""
        self.result_code = result_code
        self.completed_at = timezone.now()

    @transition(
        field=status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.FAILED,
    )
    def fail(self, reason: str = "", result_code: int | None = None):
        """
        Mark payment as failed.

        Transition: PENDING -> FAILED
        """
        self.failure_reason = reason or ""
        self.result_code = result_code

    @transition(
        field=status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.CANCELLED,
    )
    def cancel(self, reason: str = ""):
        """
        Cancel a payment that will not be confirmed.

        Transition: PENDING -> CANCELLED
        """
        self.failure_reason = reason or ""
