"""
Payment ledger service.

This module provides the PaymentLedger class which owns every write to
the Payment table. All status changes go through its guarded transitions
so that a payment is resolved exactly once no matter how many writers
race for it.

Guarded transitions:
    complete(), fail() and cancel() run the django-fsm transition and
    save() through ConcurrentTransitionMixin, which issues
    ``UPDATE ... WHERE id = X AND status = 'pending'``. Zero affected
    rows (somebody else resolved the payment first) surfaces as
    ConcurrentTransition and the method returns False. No in-process lock
    is ever taken.

Two-phase references:
    A push payment is stored with a generated local reference before the
    gateway has assigned its CheckoutRequestID. rebind() attaches the
    external reference with a single conditional UPDATE once it is known.

Usage:
    from payments.ledger import PaymentLedger

    payment = PaymentLedger.create_pending(customer, Decimal("500"), "mpesa", "basic")
    PaymentLedger.rebind(payment.local_reference, "ws_CO_191220191020363925")

    if PaymentLedger.complete(payment, receipt_number="NLJ7RT61SV"):
        ...  # this caller won the transition
"""

from __future__ import annotations

import secrets
import string
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from django.db import IntegrityError
from django.utils import timezone

from django_fsm import ConcurrentTransition, TransitionNotAllowed

from core.exceptions import ConflictError, StorageError, ValidationError
from core.services import BaseService
from payments.models import Payment
from payments.state_machines import PaymentStatus

if TYPE_CHECKING:
    from customers.models import Customer


LOCAL_REFERENCE_PREFIX = "ADC"
LOCAL_REFERENCE_SUFFIX_LENGTH = 6
MAX_REFERENCE_ATTEMPTS = 5

_BASE36_ALPHABET = string.digits + string.ascii_uppercase


def to_base36(number: int) -> str:
    """Encode a non-negative integer in upper-case base 36."""
    if number < 0:
        raise ValueError("number must be non-negative")
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


class PaymentLedger(BaseService):
    """
    Durable record of payment attempts and their single resolution.

    All methods are class methods - no instance state is maintained.
    """

    # =========================================================================
    # References
    # =========================================================================

    @staticmethod
    def generate_local_reference(now: datetime | None = None) -> str:
        """
        Generate a collision-resistant local reference.

        Format: "ADC" + base-36 millisecond timestamp + random base-36
        suffix, e.g. "ADCM4Z1K8Q0X7F2KQ". The suffix comes from `secrets`
        so concurrent initiations in the same millisecond still differ.
        """
        now = now or timezone.now()
        millis = int(now.timestamp() * 1000)
        suffix = "".join(
            secrets.choice(_BASE36_ALPHABET)
            for _ in range(LOCAL_REFERENCE_SUFFIX_LENGTH)
        )
        return f"{LOCAL_REFERENCE_PREFIX}{to_base36(millis)}{suffix}"

    # =========================================================================
    # Creation
    # =========================================================================

    @classmethod
    def create_pending(
        cls,
        customer: Customer,
        amount: Decimal,
        method: str,
        plan: str,
    ) -> Payment:
        """
        Persist a new pending payment under a fresh local reference.

        Args:
            customer: Paying customer
            amount: Requested amount (must be positive)
            method: PaymentMethod value
            plan: Plan being paid for

        Returns:
            The pending Payment

        Raises:
            ValidationError: If amount is not positive
            StorageError: If the row cannot be written
        """
        cls._validate_amount(amount)
        logger = cls.get_logger()

        with cls.storage_errors("create pending payment"):
            for _ in range(MAX_REFERENCE_ATTEMPTS):
                reference = cls.generate_local_reference()
                try:
                    with cls.atomic():
                        payment = Payment.objects.create(
                            local_reference=reference,
                            customer=customer,
                            amount=amount,
                            method=method,
                            plan=plan,
                        )
                    break
                except IntegrityError:
                    if not Payment.objects.filter(local_reference=reference).exists():
                        raise
                    logger.warning(
                        "Local reference collision, regenerating",
                        extra={"local_reference": reference},
                    )
            else:
                raise StorageError("Could not allocate a unique payment reference")

        logger.info(
            "Recorded pending payment",
            extra={
                "payment_id": str(payment.id),
                "local_reference": payment.local_reference,
                "customer_id": str(customer.id),
                "plan": plan,
                "amount": str(amount),
            },
        )
        return payment

    @classmethod
    def record_direct(
        cls,
        customer: Customer,
        amount: Decimal,
        method: str,
        plan: str,
        external_reference: str,
    ) -> Payment:
        """
        Record a payment that the client has already confirmed directly.

        The payment is inserted pending and completed in the same
        transaction, so it goes through the normal state machine.

        Raises:
            ValidationError: If amount or external_reference is invalid
            ConflictError: If external_reference was already recorded (replay)
            StorageError: On any other persistence failure
        """
        cls._validate_amount(amount)
        cls.validate_required(payment_id=external_reference)

        with cls.storage_errors("record direct payment"):
            try:
                with cls.atomic():
                    payment = Payment.objects.create(
                        local_reference=cls.generate_local_reference(),
                        external_reference=external_reference,
                        customer=customer,
                        amount=amount,
                        method=method,
                        plan=plan,
                    )
                    payment.complete(confirmed_amount=amount, result_code=None)
                    payment.save()
            except IntegrityError as e:
                if Payment.objects.filter(external_reference=external_reference).exists():
                    cls.get_logger().warning(
                        "Rejected replayed direct payment",
                        extra={"external_reference": external_reference},
                    )
                    raise ConflictError(
                        "Payment has already been recorded",
                        error_code="DUPLICATE_PAYMENT",
                        details={"payment_id": external_reference},
                    ) from e
                raise

        cls.get_logger().info(
            "Recorded direct payment",
            extra={
                "payment_id": str(payment.id),
                "external_reference": external_reference,
                "method": method,
            },
        )
        return payment

    # =========================================================================
    # Rebind
    # =========================================================================

    @classmethod
    def rebind(cls, local_reference: str, external_reference: str) -> bool:
        """
        Attach the gateway's reference to a pending payment.

        Single conditional write:
        ``UPDATE ... SET external_reference = E
          WHERE local_reference = L AND external_reference IS NULL``

        Returns:
            True if this call bound the reference, False if the payment
            is unknown or already bound

        Raises:
            ConflictError: If external_reference is bound to another payment
            StorageError: On persistence failure
        """
        with cls.storage_errors("rebind payment"):
            try:
                with cls.atomic():
                    updated = Payment.objects.filter(
                        local_reference=local_reference,
                        external_reference__isnull=True,
                    ).update(
                        external_reference=external_reference,
                        updated_at=timezone.now(),
                    )
            except IntegrityError as e:
                raise ConflictError(
                    "External reference is already bound to another payment",
                    error_code="REFERENCE_CONFLICT",
                    details={"external_reference": external_reference},
                ) from e

        if updated:
            cls.get_logger().info(
                "Bound external reference",
                extra={
                    "local_reference": local_reference,
                    "external_reference": external_reference,
                },
            )
        else:
            cls.get_logger().warning(
                "Rebind matched no unbound payment",
                extra={
                    "local_reference": local_reference,
                    "external_reference": external_reference,
                },
            )
        return bool(updated)

    # =========================================================================
    # Lookups
    # =========================================================================

    @staticmethod
    def find_by_reference(reference: str) -> Payment | None:
        """
        Find a payment by any of its references.

        Tries the external reference first, then the local reference,
        then the M-Pesa receipt number.
        """
        if not reference:
            return None
        queryset = Payment.objects.select_related("customer")
        for field_name in ("external_reference", "local_reference", "receipt_number"):
            payment = queryset.filter(**{field_name: reference}).first()
            if payment is not None:
                return payment
        return None

    @staticmethod
    def find_for_confirmation(external_reference: str) -> Payment | None:
        """Find the payment a gateway confirmation refers to."""
        if not external_reference:
            return None
        return (
            Payment.objects.select_related("customer")
            .filter(external_reference=external_reference)
            .first()
        )

    # =========================================================================
    # Guarded Transitions
    # =========================================================================

    @classmethod
    def complete(
        cls,
        payment: Payment,
        receipt_number: str | None = None,
        confirmed_amount: Decimal | None = None,
        payer_phone: str = "",
        result_code: int | None = 0,
    ) -> bool:
        """
        Transition PENDING -> COMPLETED.

        Returns:
            True if this call resolved the payment, False if it was no
            longer pending. On False the in-memory instance must be
            discarded and re-read.
        """
        return cls._transition(
            payment,
            "complete",
            receipt_number=receipt_number,
            confirmed_amount=confirmed_amount,
            payer_phone=payer_phone,
            result_code=result_code,
        )

    @classmethod
    def fail(
        cls,
        payment: Payment,
        reason: str = "",
        result_code: int | None = None,
    ) -> bool:
        """Transition PENDING -> FAILED. Same contract as complete()."""
        return cls._transition(payment, "fail", reason=reason, result_code=result_code)

    @classmethod
    def cancel(cls, payment: Payment, reason: str = "") -> bool:
        """Transition PENDING -> CANCELLED. Same contract as complete()."""
        return cls._transition(payment, "cancel", reason=reason)

    @classmethod
    def attach_receipt(cls, payment: Payment, receipt_number: str) -> bool:
        """
        Record a receipt on a payment completed without one.

        Payments completed from a status query carry no receipt; a late
        success callback for them still delivers it. Conditional on the
        receipt being unset, so it never overwrites. A receipt already held
        by another payment is logged and left alone.
        """
        with cls.storage_errors("attach receipt"):
            try:
                with cls.atomic():
                    attached = Payment.objects.filter(
                        pk=payment.pk,
                        status=PaymentStatus.COMPLETED,
                        receipt_number__isnull=True,
                    ).update(receipt_number=receipt_number, updated_at=timezone.now())
            except IntegrityError:
                cls.get_logger().warning(
                    "Late receipt already recorded on another payment",
                    extra={"payment_id": str(payment.id), "receipt_number": receipt_number},
                )
                return False

        if attached:
            cls.get_logger().info(
                "Attached late receipt",
                extra={"payment_id": str(payment.id), "receipt_number": receipt_number},
            )
        return bool(attached)

    @classmethod
    def claim_activation(cls, payment: Payment) -> bool:
        """
        Claim the right to run downstream activation for a payment.

        ``UPDATE ... SET activated_at = now
          WHERE id = X AND status = 'completed' AND activated_at IS NULL``

        Exactly one caller ever gets True for a given payment. Run it in
        the same transaction as the activation so a failed activation
        releases the claim on rollback.
        """
        now = timezone.now()
        with cls.storage_errors("claim activation"):
            claimed = Payment.objects.filter(
                pk=payment.pk,
                status=PaymentStatus.COMPLETED,
                activated_at__isnull=True,
            ).update(activated_at=now, updated_at=now)

        if claimed:
            payment.activated_at = now
        return bool(claimed)

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _transition(cls, payment: Payment, name: str, **kwargs) -> bool:
        logger = cls.get_logger()
        log_extra = {
            "payment_id": str(payment.id),
            "reference": payment.reference,
            "transition": name,
        }

        if payment.status != PaymentStatus.PENDING:
            logger.info("Payment already resolved, skipping transition", extra=log_extra)
            return False

        with cls.storage_errors(f"{name} payment"):
            try:
                with cls.atomic():
                    getattr(payment, name)(**kwargs)
                    payment.save()
            except (TransitionNotAllowed, ConcurrentTransition):
                logger.info(
                    "Payment was resolved concurrently, skipping transition",
                    extra=log_extra,
                )
                return False

        logger.info(f"Payment transitioned to {payment.status}", extra=log_extra)
        return True

    @staticmethod
    def _validate_amount(amount) -> None:
        if amount is None or Decimal(amount) <= 0:
            raise ValidationError(
                "Amount must be positive",
                details={"amount": ["Ensure this value is greater than 0."]},
            )
