"""
Abstract base model for the domain apps.

Every concrete model combines UUIDPrimaryKeyMixin (core.model_mixins) with
BaseModel, mixin first:

    class GatewayCallback(UUIDPrimaryKeyMixin, BaseModel):
        ...
"""

from __future__ import annotations

from django.db import models


class BaseModel(models.Model):
    """
    Adds ``created_at`` and ``updated_at`` and orders newest first.

    ``updated_at`` only moves on ``Model.save()``. The ledger's conditional
    ``QuerySet.update()`` calls set it themselves.
    """

    # Indexed: the stale-payment and replay sweeps filter on age.
    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="When the record was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the record was last saved",
    )

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{type(self).__name__} {self.pk}"
