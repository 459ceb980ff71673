"""
Data types for payment ledger operations.

This module defines dataclasses used by PaymentLedger for type-safe
data transfer between the service layer and views.

Types:
    PaymentFilter: Owner-scoped filter for listing payments
    Pagination: Limit/offset window, validated on construction
    PaymentPage: One page of payments plus total count

Usage:
    from payments.ledger.types import PaymentFilter, Pagination

    page = PaymentLedger.list(
        PaymentFilter(user_id=user.id, status="COMPLETED"),
        Pagination(limit=20, offset=0),
    )
    page.total_count, page.has_more
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from payments.models import Payment

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100

# Payment columns that never change after creation
IMMUTABLE_PAYMENT_FIELDS = frozenset({"id", "order_id", "user", "user_id", "amount", "currency"})

# Columns conditional_update_status is allowed to write
UPDATABLE_PAYMENT_FIELDS = frozenset(
    {
        "status",
        "paid_at",
        "error_code",
        "error_message",
        "external_id",
        "payment_url",
        "provider_data",
    }
)


@dataclass
class PaymentFilter:
    """
    Filter for listing a user's payments.

    Required Attributes:
        user_id: Owner whose payments are listed

    Optional Attributes:
        status: Exact canonical status
        provider: Exact provider value
        order_id_contains: Case-insensitive substring of order_id
    """

    user_id: Any
    status: str | None = None
    provider: str | None = None
    order_id_contains: str | None = None


@dataclass
class Pagination:
    """Limit/offset window for list queries."""

    limit: int = DEFAULT_PAGE_LIMIT
    offset: int = 0

    def __post_init__(self) -> None:
        """Validate params after initialization."""
        if not 1 <= self.limit <= MAX_PAGE_LIMIT:
            raise ValueError(f"limit must be between 1 and {MAX_PAGE_LIMIT}")
        if self.offset < 0:
            raise ValueError("offset must be non-negative")


@dataclass
class PaymentPage:
    """One page of payments, newest first."""

    items: list[Payment] = field(default_factory=list)
    total_count: int = 0
    limit: int = DEFAULT_PAGE_LIMIT
    offset: int = 0

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total_count
