"""
GatewayCallback model for M-Pesa callback auditing.

Stores every callback delivery received from the gateway, including
malformed and duplicate ones, together with what processing did with it.

This table is an audit trail, not the deduplication mechanism: duplicate
deliveries are made harmless by the conditional status update on Payment.
There is deliberately no unique key on the checkout request id because the
gateway may deliver the same callback several times.

Usage:
    from payments.models import GatewayCallback

    callback = GatewayCallback.objects.create(payload=payload)
    ...
    callback.mark_processed(CallbackStatus.DUPLICATE)
    callback.save()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import CallbackStatus


class GatewayCallback(UUIDPrimaryKeyMixin, BaseModel):
    """
    One delivery of an STK push callback.

    Processing Flow:
        1. Callback arrives, stored as RECEIVED
        2. Payload parsed; malformed -> REJECTED
        3. Reconciliation runs; outcome recorded as PROCESSED,
           DUPLICATE or UNMATCHED
        4. Unexpected error -> FAILED (gateway gets a 500 and retries)
        5. UNMATCHED callbacks are replayed once their payment is bound

    Fields:
        checkout_request_id: Gateway reference cited by the callback
        merchant_request_id: Gateway merchant request id
        result_code: Result code reported by the gateway
        result_description: Gateway's description of the result
        payload: Full JSON payload
        status: Processing status
        payment: Payment the callback resolved to, if any
        processed_at: When processing last finished
        error_message: Error details if rejected or failed
        attempts: Number of processing attempts
    """

    # ==========================================================================
    # Callback Identification
    # ==========================================================================

    checkout_request_id = models.CharField(
        max_length=100,
        blank=True,
        default="",
        db_index=True,
        help_text="CheckoutRequestID cited by the callback",
    )

    merchant_request_id = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="MerchantRequestID cited by the callback",
    )

    result_code = models.IntegerField(
        null=True,
        blank=True,
        help_text="Gateway result code (0 = success)",
    )

    result_description = models.TextField(
        blank=True,
        default="",
        help_text="Gateway result description",
    )

    # ==========================================================================
    # Payload
    # ==========================================================================

    payload = models.JSONField(
        help_text="Full callback payload (JSON)",
    )

    # ==========================================================================
    # Processing Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=CallbackStatus.choices,
        default=CallbackStatus.RECEIVED,
        db_index=True,
        help_text="Current processing status",
    )

    payment = models.ForeignKey(
        "payments.Payment",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="callbacks",
        help_text="Payment this callback resolved to",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When processing last finished",
    )

    error_message = models.TextField(
        blank=True,
        default="",
        help_text="Error message if rejected or failed",
    )

    attempts = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Gateway Callback"
        verbose_name_plural = "Gateway Callbacks"
        indexes = [
            models.Index(fields=["status", "created_at"]),
            models.Index(fields=["checkout_request_id", "status"]),
        ]

    def __str__(self) -> str:
        """Return string representation with reference and status."""
        return f"GatewayCallback({self.checkout_request_id or '-'}, {self.status})"

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def mark_processing(self) -> None:
        """
        Count a processing attempt.

        Note: Does not save - caller must save after calling.
        """
        self.attempts += 1

    def mark_processed(self, status: str, payment=None) -> None:
        """
        Record the reconciliation outcome.

        Args:
            status: PROCESSED, DUPLICATE or UNMATCHED
            payment: Payment the callback resolved to, if any

        Note: Does not save - caller must save after calling.
        """
        self.status = status
        if payment is not None:
            self.payment = payment
        self.processed_at = timezone.now()
        self.error_message = ""

    def mark_rejected(self, error_message: str) -> None:
        """
        Record that the payload could not be parsed.

        Note: Does not save - caller must save after calling.
        """
        self.status = CallbackStatus.REJECTED
        self.processed_at = timezone.now()
        self.error_message = error_message

    def mark_failed(self, error_message: str) -> None:
        """
        Record an unexpected processing failure.

        Note: Does not save - caller must save after calling.
        """
        self.status = CallbackStatus.FAILED
        self.error_message = error_message
