"""
Trial expiry sweeper.

Periodic bulk update moving trial customers whose trial has ended to
EXPIRED. A single conditional UPDATE; re-running it changes nothing.

Scheduled daily by celery-beat (see migration 0002).

Usage:
    from payments.workers import expire_trials

    expire_trials.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.utils import timezone

from customers.models import Customer, CustomerStatus

logger = logging.getLogger(__name__)


def sweep_expired_trials(now=None) -> int:
    """
    Expire every trial customer whose expiry is in the past.

    Returns:
        Number of customers expired
    """
    now = now or timezone.now()
    expired = Customer.objects.filter(
        status=CustomerStatus.TRIAL,
        expires_at__lt=now,
    ).update(status=CustomerStatus.EXPIRED, updated_at=now)
    return expired


@shared_task(bind=True)
def expire_trials(self) -> dict:
    """
    Transition time-expired trial customers to expired.

    Returns:
        Dict with:
        - expired_count: Number of customers expired
    """
    logger.info("Starting trial expiry sweep")

    expired_count = sweep_expired_trials()

    logger.info(
        f"Trial expiry sweep complete: expired {expired_count} customers",
        extra={"expired_count": expired_count},
    )
    return {"expired_count": expired_count}
