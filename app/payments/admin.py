"""
Payment admin configuration.

Registers Payment with its audit trail inline. Status is read-only:
every status write goes through PaymentLedger.
"""

from django.contrib import admin

from payments.models import Payment, PaymentEvent

__all__ = [
    "PaymentAdmin",
    "PaymentEventInline",
]


class PaymentEventInline(admin.TabularInline):
    """
    Read-only audit trail for a payment.

    Events are immutable, so the inline allows neither adding,
    editing nor deleting rows.
    """

    model = PaymentEvent
    extra = 0
    can_delete = False
    ordering = ["created_at"]
    fields = ["created_at", "event_type", "status", "message", "correlation_id"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """Admin configuration for Payment."""

    list_display = [
        "order_id",
        "user",
        "provider",
        "status",
        "amount",
        "currency",
        "paid_at",
        "created_at",
    ]
    list_filter = ["status", "provider", "currency", "created_at"]
    search_fields = ["order_id", "external_id", "user__email", "user__username"]
    readonly_fields = [
        "id",
        "order_id",
        "user",
        "amount",
        "currency",
        "status",
        "provider",
        "payment_method",
        "external_id",
        "payment_url",
        "provider_data",
        "error_code",
        "error_message",
        "paid_at",
        "expires_at",
        "refunded_amount_display",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    inlines = [PaymentEventInline]

    fieldsets = (
        (
            "Payment",
            {
                "fields": (
                    "id",
                    "order_id",
                    "user",
                    "amount",
                    "currency",
                    "description",
                    "status",
                ),
            },
        ),
        (
            "Provider",
            {
                "fields": (
                    "provider",
                    "payment_method",
                    "external_id",
                    "payment_url",
                    "return_url",
                    "cancel_url",
                    "provider_data",
                ),
            },
        ),
        (
            "Outcome",
            {
                "fields": (
                    "error_code",
                    "error_message",
                    "paid_at",
                    "expires_at",
                    "refunded_amount_display",
                ),
            },
        ),
        (
            "Additional Info",
            {
                "fields": ("metadata", "created_at", "updated_at"),
            },
        ),
    )

    def refunded_amount_display(self, obj: Payment) -> str:
        return f"{obj.refunded_amount} {obj.currency}"

    refunded_amount_display.short_description = "Refunded"

    def has_add_permission(self, request) -> bool:
        """Payments are only created through the API."""
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False
