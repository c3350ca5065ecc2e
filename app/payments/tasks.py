"""
Celery tasks for payment processing.

This module provides async tasks for:
- Re-driving activation of completed payments whose activation failed

Periodic tasks live in payments.workers.

Usage:
    from payments.tasks import activate_completed_payment

    activate_completed_payment.delay(str(payment.id))
"""

from __future__ import annotations

import logging

from celery import shared_task

from payments.models import Payment
from payments.state_machines import PaymentStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_ACTIVATION_RETRIES = 5


# =============================================================================
# Activation Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_ACTIVATION_RETRIES},
    acks_late=True,
)
def activate_completed_payment(self, payment_id: str) -> dict:
    """
    Run downstream activation for a completed payment.

    Idempotent: the activation claim on the payment makes repeated runs
    no-ops. Failures are retried with exponential backoff.

    Args:
        payment_id: UUID of the Payment

    Returns:
        Dict with status: activated, already_activated, not_completed
        or not_found
    """
    from payments.services.reconciliation import ReconciliationEngine

    try:
        payment = Payment.objects.select_related("customer").get(id=payment_id)
    except Payment.DoesNotExist:
        logger.error(f"Payment {payment_id} not found for activation")
        return {"status": "not_found", "payment_id": payment_id}

    if payment.status != PaymentStatus.COMPLETED:
        logger.warning(
            "Skipping activation of payment that is not completed",
            extra={"payment_id": payment_id, "status": payment.status},
        )
        return {"status": "not_completed", "payment_id": payment_id}

    activated = ReconciliationEngine.activate_payment(payment, raise_errors=True)

    return {
        "status": "activated" if activated else "already_activated",
        "payment_id": payment_id,
        "attempt": self.request.retries + 1,
    }


# =============================================================================
# Re-exported Worker Tasks
# =============================================================================
# These tasks are defined in payments.workers but re-exported here for
# convenience and to ensure Celery autodiscover finds them.

from payments.workers import (  # noqa: E402, F401
    expire_trials,
    reconcile_stale_payments,
    redrive_unactivated_payments,
    replay_unmatched_callbacks,
)
