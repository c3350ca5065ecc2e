"""
Add celery-beat schedules for the payment workers.

Creates one periodic task per worker, each on its own schedule:
- expire_trials: daily at 02:00 UTC
- reconcile_stale_payments: every 10 minutes
- redrive_unactivated_payments: every 15 minutes
- replay_unmatched_callbacks: every 5 minutes
"""

from django.db import migrations

INTERVAL_TASKS = [
    (
        "Reconcile Stale Payments",
        "payments.workers.reconciliation_worker.reconcile_stale_payments",
        10,
        "Queries M-Pesa for old pending pushes and cancels payments pending too long.",
    ),
    (
        "Redrive Unactivated Payments",
        "payments.workers.reconciliation_worker.redrive_unactivated_payments",
        15,
        "Queues activation for completed payments that were never activated.",
    ),
    (
        "Replay Unmatched Callbacks",
        "payments.workers.reconciliation_worker.replay_unmatched_callbacks",
        5,
        "Retries stored callbacks that arrived before their payment was bound.",
    ),
]

TRIAL_EXPIRY_TASK = "Expire Trials"


def create_periodic_tasks(apps, schema_editor):
    """Create the periodic tasks for the payment workers."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for name, task, minutes, description in INTERVAL_TASKS:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=minutes,
            period="minutes",
        )
        PeriodicTask.objects.get_or_create(
            name=name,
            defaults={
                "task": task,
                "interval": schedule,
                "enabled": True,
                "description": description,
            },
        )

    # Daily at 02:00 UTC
    crontab, _ = CrontabSchedule.objects.get_or_create(
        minute="0",
        hour="2",
        day_of_week="*",
        day_of_month="*",
        month_of_year="*",
    )
    PeriodicTask.objects.get_or_create(
        name=TRIAL_EXPIRY_TASK,
        defaults={
            "task": "payments.workers.expiry_sweeper.expire_trials",
            "crontab": crontab,
            "enabled": True,
            "description": "Moves trial customers whose trial has ended to expired.",
        },
    )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    names = [name for name, *_ in INTERVAL_TASKS] + [TRIAL_EXPIRY_TASK]
    PeriodicTask.objects.filter(name__in=names).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
