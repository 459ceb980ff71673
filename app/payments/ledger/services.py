"""
Payment ledger service: the single owner of Payment and PaymentEvent writes.

Every other component reads and writes payments through PaymentLedger.
Status changes go exclusively through conditional_update_status, a
compare-and-set keyed on the status the caller last observed, so that a
webhook and a status poll racing on the same payment produce exactly one
write and exactly one audit event.

Usage:
    from payments.ledger import PaymentLedger
    from payments.state_machines import PaymentEventType, PaymentStatus

    payment = PaymentLedger.get_by_order_id("ORDER_1", provider="stripe")

    applied = PaymentLedger.conditional_update_status(
        payment.id,
        expected_prior_status=PaymentStatus.PENDING,
        new_fields={"status": PaymentStatus.COMPLETED, "paid_at": timezone.now()},
    )
    if applied:
        PaymentLedger.append_event(
            payment.id,
            PaymentEventType.WEBHOOK,
            PaymentStatus.COMPLETED,
            message="payment_intent.succeeded",
            data=payload,
        )
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING

from django.db import IntegrityError
from django.db.models import DateTimeField, F, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from core.services import BaseService
from payments.exceptions import (
    InvalidStateTransitionError,
    PaymentConflictError,
    PaymentNotFoundError,
    PaymentPermissionError,
    PaymentValidationError,
)
from payments.models import Payment, PaymentEvent
from payments.state_machines import PaymentEventType, PaymentStatus

from .types import (
    IMMUTABLE_PAYMENT_FIELDS,
    UPDATABLE_PAYMENT_FIELDS,
    Pagination,
    PaymentFilter,
    PaymentPage,
)

if TYPE_CHECKING:
    import uuid
    from datetime import datetime
    from decimal import Decimal
    from typing import Any

PROVIDER_DATA_SCHEMA_VERSION = 1


# =============================================================================
# provider_data helpers
# =============================================================================


def merge_provider_data(
    existing: dict[str, Any] | None, updates: dict[str, Any] | None
) -> dict[str, Any]:
    """
    Merge provider payload updates into a payment's provider_data.

    Keys in updates overwrite top-level keys in existing, except
    "refunds", which is append-only and only grows via append_refund.
    """
    merged = copy.deepcopy(existing or {})
    for key, value in (updates or {}).items():
        if key == "refunds":
            continue
        merged[key] = value
    merged["schema_version"] = PROVIDER_DATA_SCHEMA_VERSION
    return merged


def append_refund(existing: dict[str, Any] | None, entry: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of provider_data with entry appended to refunds."""
    merged = merge_provider_data(existing, None)
    merged["refunds"] = [*merged.get("refunds", []), entry]
    return merged


# =============================================================================
# Ledger Service
# =============================================================================


class PaymentLedger(BaseService):
    """
    Service class owning persisted payment state and its audit trail.

    Key features:
    - Unique order_id enforced by the database, surfaced as PaymentConflictError
    - Compare-and-set status writes validated against the FSM graph
    - paid_at written at most once
    - Insert-only audit events

    All methods are classmethods - no instance state is maintained.
    """

    # ==========================================================================
    # Creation
    # ==========================================================================

    @classmethod
    def create(
        cls,
        *,
        order_id: str,
        user,
        amount: Decimal,
        currency: str,
        provider: str,
        payment_method: str,
        description: str = "",
        return_url: str | None = None,
        cancel_url: str | None = None,
        metadata: dict[str, Any] | None = None,
        expires_at: datetime | None = None,
        correlation_id: str | None = None,
    ) -> Payment:
        """
        Insert a PENDING payment together with its CREATED event.

        Raises:
            PaymentValidationError: If amount is not positive
            PaymentConflictError: If order_id already exists (no row is created)
        """
        if amount is None or amount <= 0:
            raise PaymentValidationError(
                "Payment amount must be positive",
                details={"amount": str(amount)},
            )

        try:
            with cls.atomic():
                payment = Payment.objects.create(
                    order_id=order_id,
                    user=user,
                    amount=amount,
                    currency=currency.upper(),
                    provider=provider,
                    payment_method=payment_method,
                    description=description or f"Payment for order {order_id}",
                    return_url=return_url,
                    cancel_url=cancel_url,
                    metadata=metadata or {},
                    provider_data={"schema_version": PROVIDER_DATA_SCHEMA_VERSION},
                    expires_at=expires_at,
                    status=PaymentStatus.PENDING,
                )
                cls.append_event(
                    payment.id,
                    PaymentEventType.CREATED,
                    PaymentStatus.PENDING,
                    message="Payment created",
                    data={
                        "order_id": order_id,
                        "amount": str(amount),
                        "currency": currency.upper(),
                        "provider": provider,
                    },
                    correlation_id=correlation_id,
                )
        except IntegrityError as exc:
            if Payment.objects.filter(order_id=order_id).exists():
                raise PaymentConflictError(
                    f"Payment with order_id {order_id} already exists",
                    details={"order_id": order_id},
                ) from exc
            raise

        cls.get_logger().info(
            "Payment created",
            extra={
                "payment_id": str(payment.id),
                "order_id": order_id,
                "provider": provider,
                "correlation_id": correlation_id,
            },
        )
        return payment

    # ==========================================================================
    # Reads
    # ==========================================================================

    @classmethod
    def get_by_order_id(cls, order_id: str, provider: str | None = None) -> Payment | None:
        queryset = Payment.objects.filter(order_id=order_id)
        if provider is not None:
            queryset = queryset.filter(provider=provider)
        return queryset.first()

    @classmethod
    def get_by_id(cls, payment_id: uuid.UUID | str) -> Payment | None:
        return Payment.objects.filter(pk=payment_id).first()

    @classmethod
    def get_owned(cls, order_id: str, user, action: str = "access") -> Payment:
        """
        Look up a payment on behalf of ``user``.

        Raises:
            PaymentNotFoundError: No payment with this order_id
            PaymentPermissionError: The payment belongs to someone else
        """
        payment = cls.get_by_order_id(order_id)
        if payment is None:
            raise PaymentNotFoundError(
                f"Payment {order_id} not found",
                details={"order_id": order_id},
            )
        if payment.user_id != user.id:
            raise PaymentPermissionError(
                f"You do not have permission to {action} this payment",
                details={"order_id": order_id},
            )
        return payment

    @classmethod
    def list(cls, filter: PaymentFilter, pagination: Pagination | None = None) -> PaymentPage:
        """
        List a user's payments, newest first.

        Args:
            filter: Owner plus optional status/provider/order_id substring
            pagination: Limit/offset window (defaults to first 20)

        Returns:
            PaymentPage with the window's items and the total match count
        """
        pagination = pagination or Pagination()
        queryset = Payment.objects.filter(user_id=filter.user_id)
        if filter.status:
            queryset = queryset.filter(status=filter.status)
        if filter.provider:
            queryset = queryset.filter(provider=filter.provider)
        if filter.order_id_contains:
            queryset = queryset.filter(order_id__icontains=filter.order_id_contains)

        total_count = queryset.count()
        items = [
            *queryset.order_by("-created_at", "-id")[
                pagination.offset : pagination.offset + pagination.limit
            ]
        ]
        return PaymentPage(
            items=items,
            total_count=total_count,
            limit=pagination.limit,
            offset=pagination.offset,
        )

    @classmethod
    def events_for(cls, payment_id: uuid.UUID | str) -> list[PaymentEvent]:
        """Return a payment's audit events in insertion order."""
        return [*PaymentEvent.objects.filter(payment_id=payment_id).order_by("created_at")]

    # ==========================================================================
    # Writes
    # ==========================================================================

    @classmethod
    def conditional_update_status(
        cls,
        payment_id: uuid.UUID | str,
        expected_prior_status: str,
        new_fields: dict[str, Any],
    ) -> bool:
        """
        Compare-and-set write on a payment's status and related fields.

        Issues UPDATE ... WHERE id=<payment_id> AND status=<expected>, so
        exactly one of several concurrent writers that observed the same
        status succeeds. A False return means another writer got there
        first; callers treat it as a no-op, not an error.

        Args:
            payment_id: Payment primary key
            expected_prior_status: Status the caller read before deciding
            new_fields: Columns to write; "status" defaults to unchanged.
                paid_at is only written if currently NULL and the target
                status is COMPLETED.

        Returns:
            True if the row was updated

        Raises:
            ValueError: If new_fields touches immutable or unknown columns
            InvalidStateTransitionError: If the status change is not declared
        """
        forbidden = set(new_fields) & IMMUTABLE_PAYMENT_FIELDS
        if forbidden:
            raise ValueError(f"Cannot update immutable payment fields: {sorted(forbidden)}")
        unknown = set(new_fields) - UPDATABLE_PAYMENT_FIELDS
        if unknown:
            raise ValueError(f"Unknown payment fields: {sorted(unknown)}")

        fields = dict(new_fields)
        target_status = fields.get("status", expected_prior_status)
        if target_status != expected_prior_status and not Payment.can_transition(
            expected_prior_status, target_status
        ):
            raise InvalidStateTransitionError(
                f"Cannot move payment from {expected_prior_status} to {target_status}",
                details={
                    "current_state": expected_prior_status,
                    "target_state": target_status,
                },
            )

        paid_at = fields.pop("paid_at", None)
        if paid_at is not None and target_status == PaymentStatus.COMPLETED:
            # First COMPLETED transition wins; an existing paid_at is kept
            fields["paid_at"] = Coalesce(
                F("paid_at"), Value(paid_at, output_field=DateTimeField())
            )

        fields["updated_at"] = timezone.now()
        rows = Payment.objects.filter(
            pk=payment_id, status=expected_prior_status
        ).update(**fields)

        applied = rows == 1
        cls.get_logger().debug(
            "Conditional status update",
            extra={
                "payment_id": str(payment_id),
                "expected_status": expected_prior_status,
                "target_status": target_status,
                "applied": applied,
            },
        )
        return applied

    @classmethod
    def append_event(
        cls,
        payment_id: uuid.UUID | str,
        event_type: str,
        status: str,
        message: str = "",
        data: dict[str, Any] | None = None,
        correlation_id: str | None = None,
    ) -> PaymentEvent:
        """Insert one audit event; all-or-nothing."""
        with cls.atomic():
            return PaymentEvent.objects.create(
                payment_id=payment_id,
                event_type=event_type,
                status=status,
                message=message,
                data=data or {},
                correlation_id=correlation_id,
            )

    @classmethod
    def update_provider_artifacts(
        cls,
        payment_id: uuid.UUID | str,
        expected_prior_status: str,
        *,
        external_id: str | None = None,
        payment_url: str | None = None,
        provider_data: dict[str, Any] | None = None,
    ) -> bool:
        """
        Store creation artifacts without changing status.

        provider_data is merged into the stored value, never replaced.
        """
        current = cls.get_by_id(payment_id)
        if current is None:
            return False

        fields: dict[str, Any] = {
            "provider_data": merge_provider_data(current.provider_data, provider_data),
        }
        if external_id:
            fields["external_id"] = external_id
        if payment_url:
            fields["payment_url"] = payment_url
        return cls.conditional_update_status(payment_id, expected_prior_status, fields)

    @classmethod
    def expire_stale(cls, now: datetime | None = None, batch_size: int = 500) -> int:
        """
        Move PENDING payments past their expires_at to EXPIRED.

        Each payment goes through conditional_update_status, so a payment
        that completes concurrently is left alone.

        Returns:
            Number of payments expired
        """
        now = now or timezone.now()
        candidates = Payment.objects.filter(
            status=PaymentStatus.PENDING,
            expires_at__isnull=False,
            expires_at__lt=now,
        ).values_list("id", "order_id")[:batch_size]

        expired = 0
        for payment_id, order_id in candidates:
            with cls.atomic():
                applied = cls.conditional_update_status(
                    payment_id,
                    PaymentStatus.PENDING,
                    {
                        "status": PaymentStatus.EXPIRED,
                        "error_code": "PAYMENT_EXPIRED",
                        "error_message": "Payment window expired before completion",
                    },
                )
                if applied:
                    cls.append_event(
                        payment_id,
                        PaymentEventType.EXPIRED,
                        PaymentStatus.EXPIRED,
                        message="Payment expired",
                        data={"expired_at": now.isoformat()},
                    )
                    expired += 1

        if expired:
            cls.get_logger().info(
                "Expired stale payments",
                extra={"expired_count": expired},
            )
        return expired
