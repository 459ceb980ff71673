"""
Payment provider adapters.

One stateless adapter class per external provider, all sharing the
PaymentProviderAdapter contract. Look adapters up by provider value
with get_adapter.

Usage:
    from payments.adapters import get_adapter

    adapter = get_adapter("momo")
    if not adapter.verify_callback(payload):
        ...
"""

from .base import (
    CreatePaymentParams,
    IdempotencyKeyGenerator,
    PaymentProviderAdapter,
    ProviderPaymentResult,
    ProviderRefundResult,
)
from .momo_adapter import MoMoAdapter
from .paypal_adapter import PayPalAdapter
from .registry import ADAPTERS, get_adapter
from .stripe_adapter import StripeAdapter
from .vnpay_adapter import VNPayAdapter
from .zalopay_adapter import ZaloPayAdapter

__all__ = [
    # Registry
    "ADAPTERS",
    "get_adapter",
    # Base
    "PaymentProviderAdapter",
    "CreatePaymentParams",
    "ProviderPaymentResult",
    "ProviderRefundResult",
    "IdempotencyKeyGenerator",
    # Providers
    "MoMoAdapter",
    "ZaloPayAdapter",
    "VNPayAdapter",
    "StripeAdapter",
    "PayPalAdapter",
]
