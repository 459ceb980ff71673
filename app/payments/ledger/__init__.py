"""
Payment Ledger - persisted payment state and its append-only audit trail.

PaymentLedger is the only component that writes Payment and PaymentEvent
rows. Status changes are compare-and-set writes keyed on the status the
caller last observed; losing writers get False back and drop their update.

Public API:
    Service:
        PaymentLedger - create, get_by_order_id, get_by_id,
            conditional_update_status, append_event, list, events_for,
            update_provider_artifacts, expire_stale

    Helpers:
        merge_provider_data - merge payload updates, refunds untouched
        append_refund - append one refund entry to provider_data

    Types:
        PaymentFilter - owner-scoped list filter
        Pagination - limit/offset window
        PaymentPage - one page plus total count

Usage:
    from payments.ledger import PaymentLedger, PaymentFilter, Pagination

    page = PaymentLedger.list(
        PaymentFilter(user_id=user.id, provider="momo"),
        Pagination(limit=10, offset=0),
    )
    for payment in page.items:
        print(payment.order_id, payment.status)
"""

from .services import PaymentLedger, append_refund, merge_provider_data
from .types import Pagination, PaymentFilter, PaymentPage

__all__ = [
    # Service
    "PaymentLedger",
    # Helpers
    "append_refund",
    "merge_provider_data",
    # Types
    "Pagination",
    "PaymentFilter",
    "PaymentPage",
]
