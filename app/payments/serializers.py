"""
DRF serializers for payments app.

This module provides serializers for:
- Payment creation, refund and list query validation
- Payment and audit event responses

Related files:
    - models/: Payment, PaymentEvent
    - views.py: Payment API views

Usage:
    serializer = CreatePaymentSerializer(data=request.data)
    serializer.is_valid()
    PaymentSerializer(payment).data
"""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from payments.ledger.types import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from payments.models import Payment, PaymentEvent, quantize_amount
from payments.state_machines import PaymentProvider, PaymentStatus


# =============================================================================
# Request Serializers
# =============================================================================


class CreatePaymentSerializer(serializers.Serializer):
    """
    Payment creation request.

    Provider-specific limits (currency, method, amount range) are
    checked by PaymentOrchestrator; this only validates shape.
    """

    provider = serializers.ChoiceField(choices=PaymentProvider.choices)
    amount = serializers.DecimalField(
        max_digits=19, decimal_places=4, min_value=Decimal("0.0001")
    )
    currency = serializers.CharField(min_length=3, max_length=3)
    payment_method = serializers.CharField(max_length=32, required=False, allow_blank=True)
    description = serializers.CharField(max_length=500, required=False, allow_blank=True)
    order_id = serializers.RegexField(
        r"^[A-Za-z0-9_\-]{1,64}$",
        required=False,
        help_text="Caller-assigned order id; generated when omitted",
    )
    return_url = serializers.URLField(required=False)
    cancel_url = serializers.URLField(required=False)
    metadata = serializers.JSONField(required=False, default=dict)

    def validate_currency(self, value: str) -> str:
        return value.upper()

    def validate_metadata(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError("Must be a JSON object.")
        return value


class RefundRequestSerializer(serializers.Serializer):
    """Refund request; omitting amount refunds the remaining balance."""

    amount = serializers.DecimalField(
        max_digits=19, decimal_places=4, required=False, allow_null=True
    )
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True)
    note = serializers.CharField(max_length=500, required=False, allow_blank=True)


class PaymentListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=PaymentStatus.choices, required=False)
    provider = serializers.ChoiceField(choices=PaymentProvider.choices, required=False)
    order_id = serializers.CharField(max_length=64, required=False, allow_blank=True)
    limit = serializers.IntegerField(
        min_value=1, max_value=MAX_PAGE_LIMIT, default=DEFAULT_PAGE_LIMIT
    )
    offset = serializers.IntegerField(min_value=0, default=0)


# =============================================================================
# Response Serializers
# =============================================================================


class PaymentEventSerializer(serializers.ModelSerializer):
    class Meta:
        model = PaymentEvent
        fields = [
            "id",
            "event_type",
            "status",
            "message",
            "data",
            "correlation_id",
            "created_at",
        ]
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    """
    Payment serializer for API responses.

    Amounts are rendered as strings at the currency's precision.
    Raw provider payloads are not exposed; only the refund history is.
    """

    amount = serializers.SerializerMethodField()
    refunded_amount = serializers.SerializerMethodField()
    remaining_amount = serializers.SerializerMethodField()
    refunds = serializers.SerializerMethodField()

    class Meta:
        model = Payment
        fields = [
            "id",
            "order_id",
            "amount",
            "currency",
            "description",
            "status",
            "provider",
            "payment_method",
            "external_id",
            "payment_url",
            "return_url",
            "cancel_url",
            "error_code",
            "error_message",
            "paid_at",
            "expires_at",
            "created_at",
            "updated_at",
            "refunded_amount",
            "remaining_amount",
            "refunds",
        ]
        read_only_fields = fields

    def get_amount(self, obj: Payment) -> str:
        return str(quantize_amount(obj.amount, obj.currency))

    def get_refunded_amount(self, obj: Payment) -> str:
        return str(quantize_amount(obj.refunded_amount, obj.currency))

    def get_remaining_amount(self, obj: Payment) -> str:
        return str(obj.remaining_refundable_amount)

    def get_refunds(self, obj: Payment) -> list[dict]:
        # Provider payloads stay server-side
        return [
            {key: value for key, value in entry.items() if key != "raw"}
            for entry in obj.refunds
        ]


class PaymentDetailSerializer(PaymentSerializer):
    """Payment with its audit trail."""

    events = serializers.SerializerMethodField()

    class Meta(PaymentSerializer.Meta):
        fields = [*PaymentSerializer.Meta.fields, "events"]
        read_only_fields = fields

    def get_events(self, obj: Payment) -> list[dict]:
        events = self.context.get("events")
        if events is None:
            events = obj.events.order_by("created_at")
        return PaymentEventSerializer(events, many=True).data
