"""
Celery tasks for toolkit services.

Usage:
    from toolkit.services.email import EmailService

    # Preferred: goes through this task
    EmailService.send_async(to=..., subject=..., template_name=..., context=...)
"""

from __future__ import annotations

import logging

from celery import shared_task

from toolkit.services.email import EmailService

logger = logging.getLogger(__name__)

MAX_EMAIL_RETRIES = 5


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_kwargs={"max_retries": MAX_EMAIL_RETRIES},
    acks_late=True,
)
def send_email_task(
    self,
    to: str | list[str],
    subject: str,
    template_name: str,
    context: dict,
    from_email: str | None = None,
) -> dict:
    """
    Deliver a template email, retrying with backoff on backend failures.

    Returns:
        Dict with delivery status
    """
    sent = EmailService.send(
        to=to,
        subject=subject,
        template_name=template_name,
        context=context,
        from_email=from_email,
    )
    return {"status": "sent" if sent else "not_sent", "template": template_name}
