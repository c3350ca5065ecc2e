"""
Field mixins for domain models.

    UUIDPrimaryKeyMixin: random UUID primary key
"""

from __future__ import annotations

import uuid

from django.db import models


class UUIDPrimaryKeyMixin(models.Model):
    """
    Replace the integer primary key with a random UUID.

    Payment and customer ids travel through Celery task arguments, admin
    URLs and logs, where sequential integers would leak volumes.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Record identifier",
    )

    class Meta:
        abstract = True
