"""
Payment model for multi-provider payment lifecycle management.

Payment is the central entity tracking a payment from creation with a
provider (MoMo, ZaloPay, VNPay, Stripe, PayPal) through completion and
refunds. Every status change is written by PaymentLedger through a
compare-and-set update; the FSM transitions below declare which writes
are legal.

Usage:
    from payments.ledger import PaymentLedger
    from payments.state_machines import PaymentProvider

    payment = PaymentLedger.create(
        order_id="ORDER_1700000000000_A1B2C3D4",
        user=user,
        amount=Decimal("100.00"),
        currency="USD",
        provider=PaymentProvider.STRIPE,
        payment_method="card",
    )

    # Read-only helpers
    payment.is_terminal
    payment.remaining_refundable_amount
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models

from django_fsm import FSMField, transition

from core.models import BaseModel, UUIDPrimaryKeyMixin

from payments.state_machines import (
    PROVIDER_IMMUTABLE_STATUSES,
    REFUNDABLE_STATUSES,
    TERMINAL_STATUSES,
    PaymentProvider,
    PaymentStatus,
)

# Minor-unit precision per supported currency
CURRENCY_DECIMALS = {
    "VND": 0,
    "USD": 2,
    "EUR": 2,
    "GBP": 2,
}

# Normalized refund entry statuses that count against the refundable balance
SUCCESSFUL_REFUND_STATUSES = frozenset({"succeeded", "pending"})


def quantize_amount(amount: Decimal, currency: str) -> Decimal:
    """Round an amount to the precision of its currency."""
    decimals = CURRENCY_DECIMALS.get(currency.upper(), 2)
    return amount.quantize(Decimal(1).scaleb(-decimals))


class Payment(UUIDPrimaryKeyMixin, BaseModel):
    """
    A single payment attempt routed through one external provider.

    The status field is an FSMField that is never assigned directly by
    application code; PaymentLedger.conditional_update_status issues an
    UPDATE ... WHERE status=<expected> so concurrent writers (webhook vs
    poll) resolve to exactly one winner. The transition methods exist to
    declare the legal graph, which the ledger consults before writing.

    State Flow:
        PENDING -> PROCESSING -> COMPLETED
        PENDING/PROCESSING -> FAILED/CANCELLED/EXPIRED
        COMPLETED/PARTIALLY_REFUNDED -> PARTIALLY_REFUNDED/REFUNDED

    Fields:
        order_id: Unique order identifier (caller-facing key)
        user: Owning principal
        amount/currency: Original charge amount and ISO 4217 currency
        status: Canonical status
        provider/payment_method: Adapter and provider-specific method
        external_id: Provider-side reference (pi_xxx, PayPal order id, ...)
        payment_url: Redirect URL produced at creation
        provider_data: Provider payloads; "refunds" is an append-only list
        paid_at: Set exactly once, on the first transition to COMPLETED
        expires_at: When a PENDING payment becomes eligible for expiry
    """

    # ==========================================================================
    # Identification & Ownership
    # ==========================================================================

    order_id = models.CharField(
        max_length=64,
        unique=True,
        help_text="Unique order identifier, immutable after creation",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payments",
        help_text="User who owns this payment",
    )

    # ==========================================================================
    # Amount & Currency
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=19,
        decimal_places=4,
        help_text="Original payment amount in major currency units",
    )

    currency = models.CharField(
        max_length=3,
        help_text="ISO 4217 currency code (uppercase)",
    )

    description = models.TextField(
        blank=True,
        default="",
        help_text="Human-readable description shown to the payer",
    )

    # ==========================================================================
    # Provider & State
    # ==========================================================================

    status = FSMField(
        default=PaymentStatus.PENDING,
        choices=PaymentStatus.choices,
        db_index=True,
        help_text="Canonical payment status (written via PaymentLedger only)",
    )

    provider = models.CharField(
        max_length=20,
        choices=PaymentProvider.choices,
        db_index=True,
        help_text="Payment provider handling this payment",
    )

    payment_method = models.CharField(
        max_length=50,
        help_text="Provider-specific payment method (e.g. captureWallet, card)",
    )

    external_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Provider-side reference (Stripe pi_xxx, PayPal order id, ...)",
    )

    payment_url = models.URLField(
        max_length=2048,
        null=True,
        blank=True,
        help_text="Redirect URL returned by the provider at creation",
    )

    return_url = models.URLField(
        max_length=2048,
        null=True,
        blank=True,
        help_text="Where the provider sends the payer after success",
    )

    cancel_url = models.URLField(
        max_length=2048,
        null=True,
        blank=True,
        help_text="Where the provider sends the payer after cancellation",
    )

    # ==========================================================================
    # Provider Payloads & Metadata
    # ==========================================================================

    provider_data = models.JSONField(
        default=dict,
        blank=True,
        help_text="Provider payloads; 'refunds' is an append-only list",
    )

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary caller-supplied JSON metadata",
    )

    # ==========================================================================
    # Error Info & Timestamps
    # ==========================================================================

    error_code = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        help_text="Provider or internal error code on terminal failure",
    )

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Human-readable failure reason",
    )

    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payment first reached COMPLETED",
    )

    expires_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="When a PENDING payment expires",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["user", "created_at"], name="payment_user_created_idx"),
            models.Index(fields=["user", "status"], name="payment_user_status_idx"),
            models.Index(fields=["provider", "order_id"], name="payment_provider_order_idx"),
            models.Index(fields=["status", "expires_at"], name="payment_status_expires_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="payment_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation with order, status, and amount."""
        return f"Payment({self.order_id}, {self.status}, {self.amount} {self.currency})"

    # ==========================================================================
    # Read-only Helpers
    # ==========================================================================

    @property
    def is_terminal(self) -> bool:
        """Whether provider-driven updates are frozen for this payment."""
        return self.status in TERMINAL_STATUSES

    @property
    def accepts_provider_updates(self) -> bool:
        return self.status not in PROVIDER_IMMUTABLE_STATUSES

    @property
    def is_refundable(self) -> bool:
        return self.status in REFUNDABLE_STATUSES

    @property
    def refunds(self) -> list[dict]:
        """Copy of the append-only refund history."""
        return list((self.provider_data or {}).get("refunds", []))

    @property
    def refunded_amount(self) -> Decimal:
        """Sum of refunds that succeeded (or are pending) at the provider."""
        total = Decimal("0")
        for entry in self.refunds:
            if entry.get("status") in SUCCESSFUL_REFUND_STATUSES:
                total += Decimal(str(entry.get("amount", "0")))
        return total

    @property
    def remaining_refundable_amount(self) -> Decimal:
        remaining = self.amount - self.refunded_amount
        return max(quantize_amount(remaining, self.currency), Decimal("0"))

    @classmethod
    def can_transition(cls, source: str, target: str) -> bool:
        """
        Check whether a status write from source to target is declared.

        Builds an unsaved instance in the source state and asks
        django-fsm which transitions it exposes.
        """
        candidate = cls(status=source)
        return any(
            t.target == target for t in candidate.get_available_status_transitions()
        )

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.PROCESSING,
    )
    def start_processing(self):
        """
        Provider accepted the payment and is settling it.

        Transition: PENDING -> PROCESSING
        """

    @transition(
        field=status,
        source=[PaymentStatus.PENDING, PaymentStatus.PROCESSING],
        target=PaymentStatus.COMPLETED,
    )
    def complete(self):
        """
        Provider confirmed the funds were collected.

        Transition: PENDING/PROCESSING -> COMPLETED
        """

    @transition(
        field=status,
        source=[PaymentStatus.PENDING, PaymentStatus.PROCESSING],
        target=PaymentStatus.FAILED,
    )
    def fail(self):
        """Transition: PENDING/PROCESSING -> FAILED"""

    @transition(
        field=status,
        source=[PaymentStatus.PENDING, PaymentStatus.PROCESSING],
        target=PaymentStatus.CANCELLED,
    )
    def cancel(self):
        """Transition: PENDING/PROCESSING -> CANCELLED"""

    @transition(
        field=status,
        source=[PaymentStatus.PENDING, PaymentStatus.PROCESSING],
        target=PaymentStatus.EXPIRED,
    )
    def expire(self):
        """
        Checkout window closed without a provider outcome.

        Transition: PENDING/PROCESSING -> EXPIRED
        """

    @transition(
        field=status,
        source=[PaymentStatus.COMPLETED, PaymentStatus.PARTIALLY_REFUNDED],
        target=PaymentStatus.PARTIALLY_REFUNDED,
    )
    def refund_partial(self):
        """
        Part of the captured amount was returned.

        Transition: COMPLETED/PARTIALLY_REFUNDED -> PARTIALLY_REFUNDED

        Note:
            Multiple partial refunds are allowed; the sum of refund
            entries never exceeds the original amount.
        """

    @transition(
        field=status,
        source=[PaymentStatus.COMPLETED, PaymentStatus.PARTIALLY_REFUNDED],
        target=PaymentStatus.REFUNDED,
    )
    def refund_full(self):
        """
        The remaining balance was returned in full.

        Transition: COMPLETED/PARTIALLY_REFUNDED -> REFUNDED
        """


__all__ = [
    "CURRENCY_DECIMALS",
    "Payment",
    "quantize_amount",
]
