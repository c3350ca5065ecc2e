"""
Celery configuration for the AdClean KE service.

Celery runs the work that must not block a web request or needs a schedule:
- Confirmation and trial emails
- Activation retries for completed payments
- Periodic trial expiry and stale payment reconciliation

This configuration uses Redis as both the message broker and result backend.
Periodic schedules live in the database (django-celery-beat) and are created
by the payments migrations. Tasks are auto-discovered from all installed apps.

Usage:
    # Queue a task:
    from payments.tasks import activate_completed_payment
    activate_completed_payment.delay(str(payment.id))

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("adclean")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Looks for a tasks.py module in each installed app
app.autodiscover_tasks()
