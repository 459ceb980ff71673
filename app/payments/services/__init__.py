"""
Payment services for coordinating payment operations.

This module provides:
- PaymentOrchestrator: Entry point for creating, polling and capturing payments
- ReconciliationService: Applies provider-reported status to payments
- RefundService: Processes refunds to payers

Usage:
    from payments.services import CreatePaymentRequest, PaymentOrchestrator

    result = PaymentOrchestrator.create_payment(
        user,
        CreatePaymentRequest(provider="stripe", amount=Decimal("25.00"), currency="USD"),
    )

    # Create a refund
    from payments.services import RefundService

    result = RefundService.create_refund(order_id, user, amount=Decimal("10.00"))

    # Apply a provider payload
    from payments.services import ReconciliationService

    outcome = ReconciliationService.reconcile(payment, payload, source="webhook")
"""

from payments.services.payment_orchestrator import (
    CaptureOutcome,
    CreatePaymentRequest,
    PaymentCreation,
    PaymentOrchestrator,
    PaymentStatusSnapshot,
    generate_order_id,
)
from payments.services.reconciliation_service import (
    ReconcileOutcome,
    ReconciliationService,
)
from payments.services.refund_service import RefundOutcome, RefundService
from payments.services.status_mapping import (
    STATUS_MAPPERS,
    StatusMapping,
    map_status,
    register_mapper,
)

__all__ = [
    "CaptureOutcome",
    "CreatePaymentRequest",
    "PaymentCreation",
    "PaymentOrchestrator",
    "PaymentStatusSnapshot",
    "ReconcileOutcome",
    "ReconciliationService",
    "RefundOutcome",
    "RefundService",
    "STATUS_MAPPERS",
    "StatusMapping",
    "generate_order_id",
    "map_status",
    "register_mapper",
]
