"""
Abstract model bases.

Payment and PaymentEvent combine both: ``class Payment(UUIDPrimaryKeyMixin, BaseModel)``.
The mixin goes first so its ``id`` replaces the implicit auto field.
"""

from __future__ import annotations

import uuid

from django.db import models


class UUIDPrimaryKeyMixin(models.Model):
    """Random UUID primary key; safe to hand out in API responses."""

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class BaseModel(models.Model):
    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="When the record was inserted",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the record was last saved",
    )

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{type(self).__name__}(id={self.pk})"
