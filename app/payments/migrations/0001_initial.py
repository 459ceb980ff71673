import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="When the record was inserted",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="When the record was last saved",
                    ),
                ),
                (
                    "order_id",
                    models.CharField(
                        help_text="Unique order identifier, immutable after creation",
                        max_length=64,
                        unique=True,
                    ),
                ),
                (
                    "amount",
                    models.DecimalField(
                        decimal_places=4,
                        help_text="Original payment amount in major currency units",
                        max_digits=19,
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        help_text="ISO 4217 currency code (uppercase)", max_length=3
                    ),
                ),
                (
                    "description",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Human-readable description shown to the payer",
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("PROCESSING", "Processing"),
                            ("COMPLETED", "Completed"),
                            ("FAILED", "Failed"),
                            ("CANCELLED", "Cancelled"),
                            ("EXPIRED", "Expired"),
                            ("REFUNDED", "Refunded"),
                            ("PARTIALLY_REFUNDED", "Partially Refunded"),
                        ],
                        db_index=True,
                        default="PENDING",
                        help_text="Canonical payment status (written via PaymentLedger only)",
                        max_length=50,
                    ),
                ),
                (
                    "provider",
                    models.CharField(
                        choices=[
                            ("momo", "MoMo"),
                            ("zalopay", "ZaloPay"),
                            ("vnpay", "VNPay"),
                            ("stripe", "Stripe"),
                            ("paypal", "PayPal"),
                        ],
                        db_index=True,
                        help_text="Payment provider handling this payment",
                        max_length=20,
                    ),
                ),
                (
                    "payment_method",
                    models.CharField(
                        help_text="Provider-specific payment method (e.g. captureWallet, card)",
                        max_length=50,
                    ),
                ),
                (
                    "external_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Provider-side reference (Stripe pi_xxx, PayPal order id, ...)",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "payment_url",
                    models.URLField(
                        blank=True,
                        help_text="Redirect URL returned by the provider at creation",
                        max_length=2048,
                        null=True,
                    ),
                ),
                (
                    "return_url",
                    models.URLField(
                        blank=True,
                        help_text="Where the provider sends the payer after success",
                        max_length=2048,
                        null=True,
                    ),
                ),
                (
                    "cancel_url",
                    models.URLField(
                        blank=True,
                        help_text="Where the provider sends the payer after cancellation",
                        max_length=2048,
                        null=True,
                    ),
                ),
                (
                    "provider_data",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Provider payloads; 'refunds' is an append-only list",
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Arbitrary caller-supplied JSON metadata",
                    ),
                ),
                (
                    "error_code",
                    models.CharField(
                        blank=True,
                        help_text="Provider or internal error code on terminal failure",
                        max_length=100,
                        null=True,
                    ),
                ),
                (
                    "error_message",
                    models.TextField(
                        blank=True, help_text="Human-readable failure reason", null=True
                    ),
                ),
                (
                    "paid_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the payment first reached COMPLETED",
                        null=True,
                    ),
                ),
                (
                    "expires_at",
                    models.DateTimeField(
                        blank=True,
                        db_index=True,
                        help_text="When a PENDING payment expires",
                        null=True,
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="User who owns this payment",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["user", "created_at"], name="payment_user_created_idx"
                    ),
                    models.Index(
                        fields=["user", "status"], name="payment_user_status_idx"
                    ),
                    models.Index(
                        fields=["provider", "order_id"], name="payment_provider_order_idx"
                    ),
                    models.Index(
                        fields=["status", "expires_at"], name="payment_status_expires_idx"
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="payment_amount_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentEvent",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="When the record was inserted",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="When the record was last saved",
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        choices=[
                            ("CREATED", "Created"),
                            ("WEBHOOK", "Webhook"),
                            ("STATUS_QUERY", "Status Query"),
                            ("CAPTURED", "Captured"),
                            ("REFUND_INITIATED", "Refund Initiated"),
                            ("REFUNDED", "Refunded"),
                            ("EXPIRED", "Expired"),
                            ("FAILED", "Failed"),
                        ],
                        db_index=True,
                        help_text="Kind of audit event",
                        max_length=30,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("PROCESSING", "Processing"),
                            ("COMPLETED", "Completed"),
                            ("FAILED", "Failed"),
                            ("CANCELLED", "Cancelled"),
                            ("EXPIRED", "Expired"),
                            ("REFUNDED", "Refunded"),
                            ("PARTIALLY_REFUNDED", "Partially Refunded"),
                        ],
                        help_text="Payment status at the time of the event (snapshot)",
                        max_length=30,
                    ),
                ),
                (
                    "message",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Human-readable summary of the event",
                    ),
                ),
                (
                    "data",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Raw provider payload for forensic replay",
                    ),
                ),
                (
                    "correlation_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Request or trace id that produced this event",
                        max_length=64,
                        null=True,
                    ),
                ),
                (
                    "payment",
                    models.ForeignKey(
                        help_text="Payment this event belongs to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="events",
                        to="payments.payment",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment Event",
                "verbose_name_plural": "Payment Events",
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(
                        fields=["payment", "created_at"], name="payment_event_timeline_idx"
                    ),
                ],
            },
        ),
    ]
