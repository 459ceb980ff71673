"""
Reconciliation service: applies provider-reported status to payments.

Webhooks, status polls and capture responses all feed the same
reconcile() call. Provider truth only moves a payment forward: once a
payment is terminal it never changes again because of a provider
payload, and concurrent writers are resolved by compare-and-set at the
ledger so exactly one of them records the change.

Outcomes:
    ignored   - payload carried no actionable status
    discarded - payment is terminal, or the move is not a declared transition
    unchanged - provider agrees with the stored status
    updated   - status written and audit event appended
    conflict  - another writer changed the payment first; nothing written

Usage:
    from payments.services import ReconciliationService
    from payments.state_machines import ReconcileSource

    outcome = ReconciliationService.reconcile(
        payment,
        payload,
        source=ReconcileSource.WEBHOOK,
        correlation_id=request_id,
    )
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from django.utils import timezone

from core.services import BaseService
from payments.ledger import PaymentLedger, merge_provider_data
from payments.models import Payment
from payments.state_machines import (
    FAILURE_STATUSES,
    PROVIDER_IMMUTABLE_STATUSES,
    PaymentEventType,
    PaymentStatus,
    ReconcileSource,
)

from .status_mapping import StatusMapping, map_status

if TYPE_CHECKING:
    from typing import Any


class ReconcileOutcome(str, Enum):
    """Result of applying one provider payload to a payment."""

    IGNORED = "ignored"
    DISCARDED = "discarded"
    UNCHANGED = "unchanged"
    UPDATED = "updated"
    CONFLICT = "conflict"


EVENT_TYPE_BY_SOURCE = {
    ReconcileSource.WEBHOOK: PaymentEventType.WEBHOOK,
    ReconcileSource.POLL: PaymentEventType.STATUS_QUERY,
    ReconcileSource.CAPTURE: PaymentEventType.CAPTURED,
}


class ReconciliationService(BaseService):
    """
    Service that reconciles stored payment state with provider state.

    Concurrency Safety:
        The decision is made against the status read by the caller; the
        write is a compare-and-set on that status. The status write and
        its audit event share one transaction.

    All methods are classmethods - no instance state is maintained.
    """

    @classmethod
    def reconcile(
        cls,
        payment: Payment,
        payload: dict[str, Any],
        source: str,
        correlation_id: str | None = None,
    ) -> ReconcileOutcome:
        """
        Apply one provider payload to a payment.

        Args:
            payment: Payment as read by the caller
            payload: Webhook body, status query response, or capture response
            source: ReconcileSource value
            correlation_id: Request or trace id recorded on events and logs

        Returns:
            ReconcileOutcome
        """
        logger = cls.get_logger()
        log_context = {
            "payment_id": str(payment.id),
            "order_id": payment.order_id,
            "provider": payment.provider,
            "source": source,
            "correlation_id": correlation_id,
        }

        mapping = map_status(payment.provider, source, payload)
        if mapping is None:
            logger.debug("Provider payload carried no actionable status", extra=log_context)
            return ReconcileOutcome.IGNORED

        stored_status = payment.status
        log_context = {
            **log_context,
            "stored_status": stored_status,
            "mapped_status": mapping.status,
        }

        if stored_status in PROVIDER_IMMUTABLE_STATUSES and mapping.status != stored_status:
            logger.info(
                "Discarding provider update for terminal payment",
                extra=log_context,
            )
            return ReconcileOutcome.DISCARDED

        if mapping.status == stored_status:
            if source == ReconcileSource.POLL:
                PaymentLedger.append_event(
                    payment.id,
                    PaymentEventType.STATUS_QUERY,
                    stored_status,
                    message="Status unchanged",
                    data=payload,
                    correlation_id=correlation_id,
                )
            return ReconcileOutcome.UNCHANGED

        if not Payment.can_transition(stored_status, mapping.status):
            logger.info(
                "Discarding provider update with undeclared transition",
                extra=log_context,
            )
            return ReconcileOutcome.DISCARDED

        new_fields = cls._build_update(payment, mapping)

        with cls.atomic():
            applied = PaymentLedger.conditional_update_status(
                payment.id,
                expected_prior_status=stored_status,
                new_fields=new_fields,
            )
            if applied:
                PaymentLedger.append_event(
                    payment.id,
                    EVENT_TYPE_BY_SOURCE[source],
                    mapping.status,
                    message=mapping.message,
                    data=payload,
                    correlation_id=correlation_id,
                )

        if not applied:
            logger.debug("Lost status update race", extra=log_context)
            return ReconcileOutcome.CONFLICT

        logger.info("Payment status reconciled", extra=log_context)
        return ReconcileOutcome.UPDATED

    @classmethod
    def _build_update(cls, payment: Payment, mapping: StatusMapping) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "status": mapping.status,
            "provider_data": merge_provider_data(payment.provider_data, mapping.provider_data),
        }
        if mapping.status == PaymentStatus.COMPLETED and payment.paid_at is None:
            fields["paid_at"] = timezone.now()
        if mapping.status in FAILURE_STATUSES:
            fields["error_code"] = mapping.error_code
            fields["error_message"] = mapping.error_message
        if mapping.external_id and not payment.external_id:
            fields["external_id"] = mapping.external_id
        return fields
