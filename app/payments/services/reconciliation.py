"""
Reconciliation engine.

Consumes payment confirmations (gateway callbacks, status query results
and direct confirmations) and drives downstream activation exactly once
per payment.

Flow for a gateway callback:
    1. Look the payment up by external reference; unknown -> UNMATCHED,
       nothing is mutated
    2. ResultCode 0 -> guarded PENDING -> COMPLETED transition; losing
       the transition means the event is a duplicate -> DUPLICATE
    3. Winning the transition -> activate_payment()
    4. Non-zero ResultCode -> guarded PENDING -> FAILED transition

Exactly-once activation:
    Activation runs only after PaymentLedger.claim_activation() succeeds,
    inside the same transaction as the customer and subscription writes.
    If activation fails the claim is rolled back with it, the error is
    logged and activate_completed_payment is queued; the periodic redrive
    task picks up anything that still slips through.

Usage:
    from payments.services.reconciliation import ReconciliationEngine

    result = ReconciliationEngine.handle_confirmation(confirmation)
    result.outcome  # ReconciliationOutcome.COMPLETED
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from django.db import transaction
from django.utils import timezone

from core.services import BaseService
from customers.models import Customer
from customers.services import CustomerService
from payments import notifications
from payments.exceptions import MalformedConfirmationError
from payments.ledger import PaymentLedger
from payments.models import GatewayCallback, Payment
from payments.services.activation import SubscriptionActivator
from payments.state_machines import CallbackStatus, PaymentStatus
from payments.webhooks.parsers import PushConfirmation, parse_stk_callback

if TYPE_CHECKING:
    from payments.adapters import StkQueryResult


MAX_CALLBACK_ATTEMPTS = 5
CALLBACK_REPLAY_WINDOW = timedelta(hours=24)


class ReconciliationOutcome(str, Enum):
    """What reconciling one event did."""

    COMPLETED = "completed"
    FAILED = "failed"
    DUPLICATE = "duplicate"
    UNMATCHED = "unmatched"
    REJECTED = "rejected"


CALLBACK_STATUS_BY_OUTCOME = {
    ReconciliationOutcome.COMPLETED: CallbackStatus.PROCESSED,
    ReconciliationOutcome.FAILED: CallbackStatus.PROCESSED,
    ReconciliationOutcome.DUPLICATE: CallbackStatus.DUPLICATE,
    ReconciliationOutcome.UNMATCHED: CallbackStatus.UNMATCHED,
    ReconciliationOutcome.REJECTED: CallbackStatus.REJECTED,
}


@dataclass
class ReconciliationResult:
    """
    Result of reconciling one event.

    Attributes:
        outcome: What happened
        payment: Payment the event resolved to, if any
    """

    outcome: ReconciliationOutcome
    payment: Payment | None = None


class ReconciliationEngine(BaseService):
    """
    Drives payment resolution and activation.

    Methods:
        process_callback: Parse and reconcile a stored callback delivery
        handle_confirmation: Reconcile a parsed push confirmation
        apply_status_query: Reconcile the answer of an STK status query
        record_direct_payment: Direct confirmation path
        activate_payment: Exactly-once downstream activation
        replay_unmatched: Re-process callbacks that arrived before rebind
    """

    # =========================================================================
    # Gateway Callbacks
    # =========================================================================

    @classmethod
    def process_callback(cls, callback: GatewayCallback) -> ReconciliationResult:
        """
        Parse a stored callback, reconcile it and record the outcome on it.

        Malformed payloads are marked REJECTED and never touch the
        ledger. Unexpected errors propagate to the caller.
        """
        logger = cls.get_logger()
        callback.mark_processing()

        try:
            confirmation = parse_stk_callback(callback.payload)
        except MalformedConfirmationError as e:
            logger.warning(
                f"Rejected malformed callback: {e.message}",
                extra={"callback_id": str(callback.id), **e.details},
            )
            callback.mark_rejected(e.message)
            callback.save()
            return ReconciliationResult(ReconciliationOutcome.REJECTED)

        callback.checkout_request_id = confirmation.checkout_request_id
        callback.merchant_request_id = confirmation.merchant_request_id
        callback.result_code = confirmation.result_code
        callback.result_description = confirmation.result_description

        result = cls.handle_confirmation(confirmation)

        callback.mark_processed(
            CALLBACK_STATUS_BY_OUTCOME[result.outcome],
            payment=result.payment,
        )
        callback.save()
        return result

    @classmethod
    def handle_confirmation(cls, confirmation: PushConfirmation) -> ReconciliationResult:
        """
        Reconcile a parsed push confirmation against the ledger.

        Safe to call any number of times for the same confirmation: only
        the first call that wins the transition has side effects.
        """
        logger = cls.get_logger()
        reference = confirmation.checkout_request_id
        log_extra = {
            "checkout_request_id": reference,
            "result_code": confirmation.result_code,
        }

        payment = PaymentLedger.find_for_confirmation(reference)
        if payment is None:
            logger.info("Confirmation for unknown payment", extra=log_extra)
            return ReconciliationResult(ReconciliationOutcome.UNMATCHED)

        log_extra["payment_id"] = str(payment.id)

        if not confirmation.is_success:
            won = PaymentLedger.fail(
                payment,
                reason=confirmation.result_description,
                result_code=confirmation.result_code,
            )
            if not won:
                logger.info("Duplicate failure confirmation", extra=log_extra)
                return ReconciliationResult(ReconciliationOutcome.DUPLICATE, payment)

            logger.info(
                f"Payment failed: {confirmation.result_description}",
                extra=log_extra,
            )
            return ReconciliationResult(ReconciliationOutcome.FAILED, payment)

        if confirmation.amount is not None and confirmation.amount != payment.amount:
            logger.warning(
                "Confirmed amount differs from requested amount",
                extra={
                    **log_extra,
                    "requested": str(payment.amount),
                    "confirmed": str(confirmation.amount),
                },
            )

        won = PaymentLedger.complete(
            payment,
            receipt_number=confirmation.receipt_number,
            confirmed_amount=confirmation.amount,
            payer_phone=confirmation.phone_number or "",
            result_code=confirmation.result_code,
        )
        if not won:
            PaymentLedger.attach_receipt(payment, confirmation.receipt_number)
            logger.info("Duplicate success confirmation", extra=log_extra)
            return ReconciliationResult(ReconciliationOutcome.DUPLICATE, payment)

        logger.info(
            "Payment completed",
            extra={**log_extra, "receipt_number": confirmation.receipt_number},
        )
        cls.activate_payment(payment)
        return ReconciliationResult(ReconciliationOutcome.COMPLETED, payment)

    @classmethod
    def replay_unmatched(cls, external_reference: str) -> int:
        """
        Re-process stored callbacks that could not be matched yet.

        Closes the race where the confirmation arrives before the
        initiating request has bound the external reference.

        Returns:
            Number of callbacks that now resolved to a payment
        """
        callbacks = GatewayCallback.objects.filter(
            checkout_request_id=external_reference,
            status__in=[CallbackStatus.UNMATCHED, CallbackStatus.FAILED],
        ).order_by("created_at")
        return cls._replay(callbacks)

    @classmethod
    def replay_recent_unmatched(cls) -> int:
        """Replay every retryable callback received within the replay window."""
        callbacks = GatewayCallback.objects.filter(
            status__in=[CallbackStatus.UNMATCHED, CallbackStatus.FAILED],
            attempts__lt=MAX_CALLBACK_ATTEMPTS,
            created_at__gte=timezone.now() - CALLBACK_REPLAY_WINDOW,
        ).order_by("created_at")
        return cls._replay(callbacks)

    @classmethod
    def _replay(cls, callbacks) -> int:
        logger = cls.get_logger()
        resolved = 0
        for callback in callbacks:
            try:
                result = cls.process_callback(callback)
            except Exception as e:
                logger.error(
                    f"Callback replay failed: {type(e).__name__}",
                    extra={"callback_id": str(callback.id)},
                    exc_info=True,
                )
                callback.mark_failed(str(e))
                callback.save(update_fields=["status", "error_message", "attempts", "updated_at"])
                continue
            if result.outcome != ReconciliationOutcome.UNMATCHED:
                resolved += 1
        if resolved:
            logger.info(f"Replayed {resolved} stored callbacks")
        return resolved

    # =========================================================================
    # Status Queries
    # =========================================================================

    @classmethod
    def apply_status_query(
        cls,
        payment: Payment,
        result: StkQueryResult,
    ) -> ReconciliationOutcome | None:
        """
        Reconcile a pending payment with the answer of a status query.

        Returns:
            The outcome, or None while the gateway is still processing
        """
        if result.is_pending:
            return None

        if result.is_success:
            if not PaymentLedger.complete(payment, result_code=result.result_code):
                return ReconciliationOutcome.DUPLICATE
            cls.get_logger().info(
                "Payment completed from status query",
                extra={"payment_id": str(payment.id)},
            )
            cls.activate_payment(payment)
            return ReconciliationOutcome.COMPLETED

        if not PaymentLedger.fail(
            payment,
            reason=result.result_description,
            result_code=result.result_code,
        ):
            return ReconciliationOutcome.DUPLICATE
        return ReconciliationOutcome.FAILED

    # =========================================================================
    # Direct Payments
    # =========================================================================

    @classmethod
    def record_direct_payment(
        cls,
        name: str,
        email: str,
        phone: str,
        plan: str,
        payment_id: str,
        amount: Decimal,
        method: str,
    ) -> Payment:
        """
        Record a payment the client confirmed directly and activate it.

        Raises:
            ValidationError: Missing fields or bad amount
            ConflictError: payment_id already recorded (replay)
            StorageError: Persistence failure
        """
        cls.validate_required(name=name, email=email, plan=plan, payment_id=payment_id)

        with cls.storage_errors("upsert customer"):
            customer = CustomerService.upsert_contact(name=name, email=email, phone=phone)

        payment = PaymentLedger.record_direct(
            customer=customer,
            amount=amount,
            method=method,
            plan=plan,
            external_reference=payment_id,
        )
        cls.activate_payment(payment)
        return payment

    # =========================================================================
    # Activation
    # =========================================================================

    @classmethod
    def activate_payment(cls, payment: Payment, raise_errors: bool = False) -> bool:
        """
        Run downstream activation for a completed payment, exactly once.

        Args:
            payment: A COMPLETED payment
            raise_errors: Re-raise activation failures instead of queuing
                a retry (used by the retry task itself)

        Returns:
            True if this call activated the payment, False if it was
            already activated or activation failed and was queued
        """
        logger = cls.get_logger()
        try:
            activated = cls._activate(payment)
        except Exception as e:
            logger.error(
                f"Activation failed for completed payment: {type(e).__name__}",
                extra={"payment_id": str(payment.id), "reference": payment.reference},
                exc_info=True,
            )
            if raise_errors:
                raise

            from payments.tasks import activate_completed_payment

            activate_completed_payment.delay(str(payment.id))
            return False

        if not activated:
            logger.info(
                "Payment already activated",
                extra={"payment_id": str(payment.id)},
            )
        return activated

    @classmethod
    def _activate(cls, payment: Payment) -> bool:
        with cls.atomic():
            if not PaymentLedger.claim_activation(payment):
                return False

            customer = Customer.objects.select_for_update().get(pk=payment.customer_id)
            SubscriptionActivator.activate(customer, payment.plan)
            payment.customer = customer

            transaction.on_commit(lambda: notifications.send_payment_confirmation(payment))
        return True

    @staticmethod
    def unactivated_payments():
        """Completed payments whose activation has not run yet."""
        return Payment.objects.filter(
            status=PaymentStatus.COMPLETED,
            activated_at__isnull=True,
        )
