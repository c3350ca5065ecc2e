"""
Email service for centralized email sending.

This module provides the EmailService class for sending emails with
Django template rendering for HTML and plain text bodies.

Related files:
    - toolkit/tasks.py: Async email task
    - templates/emails/: Email templates

Configuration:
    Email settings are read from Django settings:
    - EMAIL_BACKEND
    - EMAIL_HOST, EMAIL_PORT
    - DEFAULT_FROM_EMAIL

Usage:
    from toolkit.services.email import EmailService

    # Send email with template
    EmailService.send(
        to="customer@example.com",
        subject="Basic Plan Activated",
        template_name="emails/payment_confirmation",
        context={"plan_name": "Basic Plan"},
    )

    # Send async
    EmailService.send_async(
        to="customer@example.com",
        subject="Free Trial Started",
        template_name="emails/trial_started",
        context={"name": "Jane"},
    )
"""

from __future__ import annotations

import logging

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template import TemplateDoesNotExist
from django.template.loader import render_to_string
from django.utils.html import strip_tags

from toolkit.helpers import mask_email

logger = logging.getLogger(__name__)


class EmailService:
    """
    Centralized email sending with template support.

    Features:
        - Template-based emails (HTML + plain text)
        - Async sending via Celery

    Delivery failures propagate to the caller so Celery tasks can retry
    them; nothing is swallowed here.
    """

    @staticmethod
    def send(
        to: str | list[str],
        subject: str,
        template_name: str,
        context: dict,
        from_email: str | None = None,
        reply_to: str | None = None,
    ) -> bool:
        """
        Send email using a template.

        Args:
            to: Recipient email address(es)
            subject: Email subject line
            template_name: Name of template (without extension)
                           Looks for: {template_name}.html and {template_name}.txt
            context: Template context variables
            from_email: Sender email (defaults to DEFAULT_FROM_EMAIL)
            reply_to: Reply-to address

        Returns:
            True if the backend accepted the message

        Raises:
            smtplib.SMTPException / OSError: If the email backend fails
        """
        if isinstance(to, str):
            to = [to]

        from_email = from_email or settings.DEFAULT_FROM_EMAIL

        html_content = render_to_string(f"{template_name}.html", context)
        try:
            text_content = render_to_string(f"{template_name}.txt", context)
        except TemplateDoesNotExist:
            text_content = strip_tags(html_content)

        email = EmailMultiAlternatives(
            subject=subject,
            body=text_content,
            from_email=from_email,
            to=to,
            reply_to=[reply_to] if reply_to else None,
        )
        email.attach_alternative(html_content, "text/html")

        recipients = [mask_email(address) for address in to]
        try:
            sent = email.send(fail_silently=False)
        except Exception:
            logger.error(
                f"Failed to send email: {subject}",
                extra={"to": recipients, "template": template_name},
                exc_info=True,
            )
            raise

        logger.info(
            f"Email sent: {subject}",
            extra={"to": recipients, "template": template_name},
        )
        return sent > 0

    @staticmethod
    def send_async(
        to: str | list[str],
        subject: str,
        template_name: str,
        context: dict,
        from_email: str | None = None,
    ) -> None:
        """
        Queue a template email for delivery by a Celery worker.

        The context must be JSON serialisable.
        """
        from toolkit.tasks import send_email_task

        send_email_task.delay(
            to=to,
            subject=subject,
            template_name=template_name,
            context=context,
            from_email=from_email,
        )
