"""
Payments app configuration.

This app provides multi-provider payment orchestration:
- Provider adapters (MoMo, ZaloPay, VNPay, Stripe, PayPal)
- Payment ledger with compare-and-set status writes
- Webhook reconciliation and refunds
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
