"""
Payment domain models.

This module contains all payment-related models:
- Payment: A single payment routed through one external provider
- PaymentEvent: Append-only audit trail entry for a Payment
"""

from payments.models.payment import CURRENCY_DECIMALS, Payment, quantize_amount
from payments.models.payment_event import PaymentEvent

__all__ = [
    "CURRENCY_DECIMALS",
    "Payment",
    "PaymentEvent",
    "quantize_amount",
]
