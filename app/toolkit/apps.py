"""
Toolkit app configuration.

Registered so Celery autodiscovers toolkit.tasks and the email templates
resolve; the app defines no models.
"""

from django.apps import AppConfig


class ToolkitConfig(AppConfig):
    name = "toolkit"
    verbose_name = "Toolkit"
