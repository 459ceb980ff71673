"""
State enums for payment models.

This module defines all state enums used by payment models with django-fsm.
These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Payment States:
    PENDING → PROCESSING → COMPLETED (provider-driven)
    PENDING/PROCESSING → FAILED/CANCELLED/EXPIRED (provider-driven, terminal)
    COMPLETED/PARTIALLY_REFUNDED → PARTIALLY_REFUNDED/REFUNDED (refund only)

Event Types:
    CREATED, WEBHOOK, STATUS_QUERY, CAPTURED, REFUND_INITIATED, REFUNDED, EXPIRED
"""

from django.db import models


class PaymentStatus(models.TextChoices):
    """
    Canonical, provider-agnostic states for the Payment lifecycle.

    Terminal (provider-driven): COMPLETED, FAILED, CANCELLED, EXPIRED, REFUNDED
    PARTIALLY_REFUNDED only moves further through refunds.

    State Flow (Success):
        PENDING → PROCESSING → COMPLETED
        PENDING → COMPLETED

    State Flow (Failure):
        PENDING/PROCESSING → FAILED
        PENDING/PROCESSING → CANCELLED
        PENDING/PROCESSING → EXPIRED

    Refund Flow:
        COMPLETED → PARTIALLY_REFUNDED → REFUNDED
        COMPLETED → REFUNDED
    """

    PENDING = "PENDING", "Pending"
    PROCESSING = "PROCESSING", "Processing"
    COMPLETED = "COMPLETED", "Completed"
    FAILED = "FAILED", "Failed"
    CANCELLED = "CANCELLED", "Cancelled"
    EXPIRED = "EXPIRED", "Expired"
    REFUNDED = "REFUNDED", "Refunded"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED", "Partially Refunded"


class PaymentProvider(models.TextChoices):
    """
    External payment networks a Payment can be routed through.

    MOMO, ZALOPAY and VNPAY settle in VND; STRIPE and PAYPAL in
    USD/EUR/GBP.
    """

    MOMO = "momo", "MoMo"
    ZALOPAY = "zalopay", "ZaloPay"
    VNPAY = "vnpay", "VNPay"
    STRIPE = "stripe", "Stripe"
    PAYPAL = "paypal", "PayPal"


class PaymentEventType(models.TextChoices):
    """Kinds of entries in a Payment's append-only audit trail."""

    CREATED = "CREATED", "Created"
    WEBHOOK = "WEBHOOK", "Webhook"
    STATUS_QUERY = "STATUS_QUERY", "Status Query"
    CAPTURED = "CAPTURED", "Captured"
    REFUND_INITIATED = "REFUND_INITIATED", "Refund Initiated"
    REFUNDED = "REFUNDED", "Refunded"
    EXPIRED = "EXPIRED", "Expired"
    FAILED = "FAILED", "Failed"


class ReconcileSource(models.TextChoices):
    """Where a provider status payload came from."""

    WEBHOOK = "webhook", "Webhook"
    POLL = "poll", "Poll"
    CAPTURE = "capture", "Capture"


# Once reached, neither webhooks nor polling may change the status
TERMINAL_STATUSES = frozenset(
    {
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
        PaymentStatus.EXPIRED,
        PaymentStatus.REFUNDED,
    }
)

# Statuses provider-driven reconciliation never touches
PROVIDER_IMMUTABLE_STATUSES = TERMINAL_STATUSES | {PaymentStatus.PARTIALLY_REFUNDED}

REFUNDABLE_STATUSES = frozenset(
    {PaymentStatus.COMPLETED, PaymentStatus.PARTIALLY_REFUNDED}
)

# Statuses that carry error_code/error_message
FAILURE_STATUSES = frozenset(
    {PaymentStatus.FAILED, PaymentStatus.CANCELLED, PaymentStatus.EXPIRED}
)
