"""
Customer notifications for payment and trial events.

Builds the email context and queues delivery through
EmailService.send_async (toolkit.tasks.send_email_task retries SMTP
failures with backoff). Callers queue these inside
transaction.on_commit so that nothing is sent for a rolled back
activation.

Usage:
    from payments import notifications

    transaction.on_commit(lambda: notifications.send_payment_confirmation(payment))
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from customers.models import Plan
from payments.exceptions import PaymentNotFoundError
from payments.models import Payment
from payments.state_machines import PaymentStatus
from toolkit.helpers import mask_email
from toolkit.services.email import EmailService

if TYPE_CHECKING:
    from datetime import datetime

    from customers.models import Customer

logger = logging.getLogger(__name__)

PAYMENT_CONFIRMATION_TEMPLATE = "emails/payment_confirmation"
TRIAL_STARTED_TEMPLATE = "emails/trial_started"


def _format_date(value: datetime | None) -> str:
    if value is None:
        return ""
    return timezone.localtime(value).strftime("%d %B %Y")


def _base_context(customer: Customer) -> dict:
    base_url = settings.BASE_URL.rstrip("/")
    return {
        "name": customer.name,
        "email": customer.email,
        "dns_server": settings.ADCLEAN_DNS_SERVER,
        "setup_url": f"{base_url}/setup-instructions",
        "support_email": settings.SUPPORT_EMAIL,
        "support_whatsapp": settings.SUPPORT_WHATSAPP,
    }


def send_payment_confirmation(payment: Payment) -> None:
    """Queue the "plan activated" email for a completed payment."""
    customer = payment.customer
    plan_name = Plan(payment.plan).label

    context = _base_context(customer)
    context.update(
        {
            "plan_name": plan_name,
            "amount": str(payment.confirmed_amount or payment.amount),
            "reference": payment.reference,
            "receipt_number": payment.receipt_number or "",
            "expires": _format_date(customer.expires_at),
        }
    )

    EmailService.send_async(
        to=customer.email,
        subject=f"AdClean KE - {plan_name} Activated",
        template_name=PAYMENT_CONFIRMATION_TEMPLATE,
        context=context,
    )
    logger.info(
        "Queued payment confirmation email",
        extra={"payment_id": str(payment.id), "email": mask_email(customer.email)},
    )


def send_trial_started(customer: Customer) -> None:
    """Queue the "trial started" email."""
    context = _base_context(customer)
    context["expires"] = _format_date(customer.expires_at)

    EmailService.send_async(
        to=customer.email,
        subject="AdClean KE - Free Trial Started",
        template_name=TRIAL_STARTED_TEMPLATE,
        context=context,
    )
    logger.info(
        "Queued trial started email",
        extra={"customer_id": str(customer.id), "email": mask_email(customer.email)},
    )


def resend_payment_confirmation(email: str) -> Payment:
    """
    Queue the confirmation email again for a customer's latest activated payment.

    Raises:
        PaymentNotFoundError: If the customer has no activated payment
    """
    payment = (
        Payment.objects.select_related("customer")
        .filter(
            customer__email=email.strip().lower(),
            status=PaymentStatus.COMPLETED,
            activated_at__isnull=False,
        )
        .order_by("-completed_at")
        .first()
    )
    if payment is None:
        raise PaymentNotFoundError(
            "No completed payment found for this email",
            error_code="PAYMENT_NOT_FOUND",
        )

    send_payment_confirmation(payment)
    return payment
