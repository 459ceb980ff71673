"""
PaymentEvent model for the append-only payment audit trail.

Every creation, provider callback, status poll, capture, refund and
expiry that touches a Payment leaves one PaymentEvent. The ordered
sequence of events is the source of truth for what happened to a
payment, independent of the Payment row's current snapshot.

Usage:
    from payments.ledger import PaymentLedger
    from payments.state_machines import PaymentEventType

    PaymentLedger.append_event(
        payment.id,
        event_type=PaymentEventType.WEBHOOK,
        status=payment.status,
        message="Stripe payment_intent.succeeded",
        data=payload,
        correlation_id=request_id,
    )
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel, UUIDPrimaryKeyMixin

from payments.exceptions import ImmutableEventError
from payments.state_machines import PaymentEventType, PaymentStatus


class PaymentEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Immutable audit entry for a Payment.

    Events are insert-only: saving an existing row or deleting one
    raises ImmutableEventError. Corrections are recorded as new events.

    Fields:
        payment: The Payment this event belongs to
        event_type: Kind of event (CREATED, WEBHOOK, STATUS_QUERY, ...)
        status: Canonical status snapshot at the time of the event
        message: Human-readable summary
        data: Raw provider payload that produced the event
        correlation_id: Request/trace id that produced the event
    """

    payment = models.ForeignKey(
        "payments.Payment",
        on_delete=models.CASCADE,
        related_name="events",
        help_text="Payment this event belongs to",
    )

    event_type = models.CharField(
        max_length=30,
        choices=PaymentEventType.choices,
        db_index=True,
        help_text="Kind of audit event",
    )

    status = models.CharField(
        max_length=30,
        choices=PaymentStatus.choices,
        help_text="Payment status at the time of the event (snapshot)",
    )

    message = models.TextField(
        blank=True,
        default="",
        help_text="Human-readable summary of the event",
    )

    data = models.JSONField(
        default=dict,
        blank=True,
        help_text="Raw provider payload for forensic replay",
    )

    correlation_id = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        db_index=True,
        help_text="Request or trace id that produced this event",
    )

    class Meta:
        ordering = ["created_at"]
        verbose_name = "Payment Event"
        verbose_name_plural = "Payment Events"
        indexes = [
            models.Index(fields=["payment", "created_at"], name="payment_event_timeline_idx"),
        ]

    def __str__(self) -> str:
        return f"PaymentEvent({self.event_type}, {self.status})"

    def save(self, *args, **kwargs):
        """Insert-only save; updates to an existing event are rejected."""
        if not self._state.adding:
            raise ImmutableEventError(
                "Payment events cannot be modified",
                details={"event_id": str(self.pk)},
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableEventError(
            "Payment events cannot be deleted",
            details={"event_id": str(self.pk)},
        )
