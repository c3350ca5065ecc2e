"""
Reconciliation workers for payments that did not resolve on their own.

Callbacks get lost, arrive before their payment is bound, or activation
fails after a payment completed. These periodic tasks close those gaps.
Each one is scheduled independently of the trial expiry sweep.

Tasks:
- reconcile_stale_payments: Query the gateway about old pending pushes,
  cancel payments pending for too long
- redrive_unactivated_payments: Re-queue activation for completed
  payments that were never activated
- replay_unmatched_callbacks: Retry stored callbacks that could not be
  matched to a payment yet

Usage:
    # Typically called via celery-beat schedule (see migration 0002)
    from payments.workers import reconcile_stale_payments

    reconcile_stale_payments.delay()
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from payments.adapters import MpesaAdapter
from payments.exceptions import GatewayError
from payments.ledger import PaymentLedger
from payments.models import Payment
from payments.services.reconciliation import (
    ReconciliationEngine,
    ReconciliationOutcome,
)
from payments.state_machines import PaymentMethod, PaymentStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Maximum payments to process per run (prevents memory issues)
BATCH_SIZE = 100

PENDING_EXPIRED_REASON = "Payment not confirmed in time"


# =============================================================================
# Periodic Task: Stale Pending Payments
# =============================================================================


@shared_task(bind=True)
def reconcile_stale_payments(self) -> dict:
    """
    Resolve push payments stuck in PENDING.

    The task:
    1. Cancels payments pending longer than PAYMENT_PENDING_EXPIRY_HOURS
    2. Queries the gateway for pushes pending longer than
       PAYMENT_STATUS_QUERY_AFTER_MINUTES and applies the answer through
       the guarded transitions

    A gateway error for one payment is logged and the scan moves on; the
    payment is picked up again by the next run.

    Returns:
        Dict with:
        - cancelled_count: Payments cancelled as expired
        - completed_count / failed_count: Payments resolved by query
        - still_pending_count: Payments the gateway is still processing
        - error_count: Queries that failed
    """
    now = timezone.now()
    expiry_cutoff = now - timedelta(hours=settings.PAYMENT_PENDING_EXPIRY_HOURS)
    query_cutoff = now - timedelta(minutes=settings.PAYMENT_STATUS_QUERY_AFTER_MINUTES)

    stats = {
        "cancelled_count": 0,
        "completed_count": 0,
        "failed_count": 0,
        "still_pending_count": 0,
        "error_count": 0,
    }

    expired = Payment.objects.filter(
        status=PaymentStatus.PENDING,
        created_at__lt=expiry_cutoff,
    ).order_by("created_at")[:BATCH_SIZE]

    for payment in expired:
        if PaymentLedger.cancel(payment, reason=PENDING_EXPIRED_REASON):
            stats["cancelled_count"] += 1
            logger.info(
                "Cancelled expired pending payment",
                extra={"payment_id": str(payment.id), "reference": payment.reference},
            )

    stale = Payment.objects.filter(
        status=PaymentStatus.PENDING,
        method=PaymentMethod.MPESA,
        external_reference__isnull=False,
        created_at__lt=query_cutoff,
        created_at__gte=expiry_cutoff,
    ).order_by("created_at")[:BATCH_SIZE]

    for payment in stale:
        try:
            result = MpesaAdapter.query_push_status(payment.external_reference)
        except GatewayError as e:
            stats["error_count"] += 1
            logger.warning(
                f"Status query failed: {e.message}",
                extra={
                    "payment_id": str(payment.id),
                    "reference": payment.external_reference,
                    "error_code": e.error_code,
                },
            )
            continue

        outcome = ReconciliationEngine.apply_status_query(payment, result)
        if outcome is None:
            stats["still_pending_count"] += 1
        elif outcome == ReconciliationOutcome.COMPLETED:
            stats["completed_count"] += 1
        elif outcome == ReconciliationOutcome.FAILED:
            stats["failed_count"] += 1

    logger.info("Stale payment reconciliation complete", extra=stats)
    return stats


# =============================================================================
# Periodic Task: Activation Redrive
# =============================================================================


@shared_task(bind=True)
def redrive_unactivated_payments(self) -> dict:
    """
    Queue activation for completed payments that were never activated.

    Returns:
        Dict with:
        - queued_count: Number of activations queued
    """
    from payments.tasks import activate_completed_payment

    payments = (
        ReconciliationEngine.unactivated_payments()
        .order_by("completed_at")
        .values_list("id", flat=True)[:BATCH_SIZE]
    )

    queued_count = 0
    for payment_id in payments:
        activate_completed_payment.delay(str(payment_id))
        queued_count += 1

    if queued_count:
        logger.warning(
            f"Re-driving activation for {queued_count} completed payments",
            extra={"queued_count": queued_count},
        )
    return {"queued_count": queued_count}


# =============================================================================
# Periodic Task: Unmatched Callback Replay
# =============================================================================


@shared_task(bind=True)
def replay_unmatched_callbacks(self) -> dict:
    """
    Retry stored callbacks that arrived before their payment was bound.

    Returns:
        Dict with:
        - resolved_count: Callbacks that now resolved to a payment
    """
    resolved_count = ReconciliationEngine.replay_recent_unmatched()
    return {"resolved_count": resolved_count}
