"""
STK push payment initiation.

PaymentInitiationService.initiate_push runs the initiation flow:
validate -> customer upsert -> pending payment -> gateway push ->
rebind -> replay early callbacks.

Failure policy once the pending payment exists:
    - Gateway timeout: payment stays PENDING (the push may still reach
      the phone); the caller is told the outcome is undetermined
    - Gateway rejected the push: payment is marked FAILED and the
      rejection is raised
    - Gateway unavailable: payment stays PENDING and the error is raised;
      the stale payment worker resolves or cancels it later

The pending payment is never rolled back once written.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from urllib.parse import urlencode

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError

from core.exceptions import ValidationError
from core.services import BaseService
from customers.models import Plan
from customers.services import CustomerService
from payments.adapters import MpesaAdapter, StkPushParams
from payments.exceptions import (
    GatewayRejectedError,
    GatewayTimeoutError,
    GatewayUnavailableError,
)
from payments.ledger import PaymentLedger
from payments.models import Payment
from payments.services.reconciliation import ReconciliationEngine
from payments.state_machines import PaymentMethod
from toolkit.helpers import mask_email, mask_phone
from toolkit.validators import normalize_msisdn

PUSH_SENT_MESSAGE = "M-Pesa prompt sent to your phone"
UNDETERMINED_MESSAGE = (
    "We could not confirm that the M-Pesa prompt was sent. "
    "If it arrives, complete the payment; otherwise check the status shortly."
)


@dataclass
class InitiationResult:
    """
    Result of a push initiation.

    Attributes:
        payment: The pending payment
        undetermined: True if the gateway timed out and the push may or
            may not have been dispatched
        message: Customer-facing message
    """

    payment: Payment
    undetermined: bool = False
    message: str = PUSH_SENT_MESSAGE

    @property
    def reference(self) -> str:
        return self.payment.reference


class PaymentInitiationService(BaseService):
    """Initiates STK push payments."""

    @staticmethod
    def callback_url() -> str:
        """Callback URL sent with each push, carrying the shared token if configured."""
        url = settings.MPESA_CALLBACK_URL
        if settings.MPESA_CALLBACK_TOKEN:
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}{urlencode({'token': settings.MPESA_CALLBACK_TOKEN})}"
        return url

    @classmethod
    def initiate_push(
        cls,
        name: str,
        email: str,
        phone: str,
        plan: str,
        amount: Decimal,
    ) -> InitiationResult:
        """
        Start an STK push payment for a paid plan.

        Raises:
            ValidationError: Missing or invalid fields (no side effects)
            GatewayRejectedError: The gateway declined the push
            GatewayUnavailableError: The gateway could not be reached
            StorageError: Persistence failure
        """
        logger = cls.get_logger()

        cls.validate_required(name=name, email=email, phone=phone, plan=plan, amount=amount)
        phone = cls._normalize_phone(phone)
        amount = cls._validate_amount(amount)
        if plan not in Plan.paid():
            raise ValidationError(
                "Invalid plan",
                details={"plan": [f'"{plan}" is not a payable plan.']},
            )

        with cls.storage_errors("upsert customer"):
            customer = CustomerService.upsert_contact(name=name, email=email, phone=phone)

        payment = PaymentLedger.create_pending(
            customer=customer,
            amount=amount,
            method=PaymentMethod.MPESA,
            plan=plan,
        )
        log_extra = {
            "payment_id": str(payment.id),
            "local_reference": payment.local_reference,
            "email": mask_email(customer.email),
            "phone": mask_phone(phone),
        }

        params = StkPushParams(
            phone_number=phone,
            amount=amount,
            account_reference=f"ADCLEAN{plan.upper()}",
            description=f"AdClean KE {plan} Plan",
            callback_url=cls.callback_url(),
        )

        try:
            push = MpesaAdapter.initiate_push(params)
        except GatewayTimeoutError:
            logger.warning("STK push timed out, outcome undetermined", extra=log_extra)
            return InitiationResult(
                payment=payment,
                undetermined=True,
                message=UNDETERMINED_MESSAGE,
            )
        except GatewayRejectedError as e:
            logger.warning(f"STK push rejected: {e.reason}", extra=log_extra)
            PaymentLedger.fail(payment, reason=e.reason)
            raise
        except GatewayUnavailableError:
            logger.error("STK push failed, payment left pending", extra=log_extra)
            raise

        PaymentLedger.rebind(payment.local_reference, push.checkout_request_id)
        payment.external_reference = push.checkout_request_id

        ReconciliationEngine.replay_unmatched(push.checkout_request_id)

        logger.info(
            "Initiated STK push",
            extra={**log_extra, "checkout_request_id": push.checkout_request_id},
        )
        return InitiationResult(payment=payment, message=PUSH_SENT_MESSAGE)

    @staticmethod
    def _normalize_phone(phone: str) -> str:
        try:
            return normalize_msisdn(phone)
        except DjangoValidationError as e:
            raise ValidationError(
                "Invalid phone number",
                details={"phone": e.messages},
            ) from e

    @staticmethod
    def _validate_amount(amount) -> Decimal:
        try:
            amount = Decimal(str(amount))
        except InvalidOperation as e:
            raise ValidationError(
                "Invalid amount",
                details={"amount": ["A valid number is required."]},
            ) from e
        if amount <= 0 or amount != amount.to_integral_value():
            raise ValidationError(
                "Invalid amount",
                details={"amount": ["Amount must be a positive whole number of shillings."]},
            )
        return amount
