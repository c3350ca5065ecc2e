"""
Workers for background payment processing.

This module contains Celery tasks for periodic payment operations:
- ExpirySweeper: Expires trial customers whose trial has ended
- ReconciliationWorker: Resolves stale pending payments, re-drives
  activation and replays unmatched callbacks

Usage:
    from payments.workers import (
        expire_trials,
        reconcile_stale_payments,
        redrive_unactivated_payments,
        replay_unmatched_callbacks,
    )

    # Trigger manual processing
    expire_trials.delay()
    reconcile_stale_payments.delay()
"""

from payments.workers.expiry_sweeper import (
    expire_trials,
    sweep_expired_trials,
)
from payments.workers.reconciliation_worker import (
    reconcile_stale_payments,
    redrive_unactivated_payments,
    replay_unmatched_callbacks,
)

__all__ = [
    # Expiry Sweeper
    "expire_trials",
    "sweep_expired_trials",
    # Reconciliation Worker
    "reconcile_stale_payments",
    "redrive_unactivated_payments",
    "replay_unmatched_callbacks",
]
