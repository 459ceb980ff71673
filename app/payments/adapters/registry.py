"""
Provider adapter registry.

The set of providers is closed: every PaymentProvider value maps to
exactly one adapter class.
"""

from __future__ import annotations

from payments.exceptions import UnsupportedProviderError
from payments.state_machines import PaymentProvider

from .base import PaymentProviderAdapter
from .momo_adapter import MoMoAdapter
from .paypal_adapter import PayPalAdapter
from .stripe_adapter import StripeAdapter
from .vnpay_adapter import VNPayAdapter
from .zalopay_adapter import ZaloPayAdapter

ADAPTERS: dict[str, type[PaymentProviderAdapter]] = {
    PaymentProvider.MOMO: MoMoAdapter,
    PaymentProvider.ZALOPAY: ZaloPayAdapter,
    PaymentProvider.VNPAY: VNPayAdapter,
    PaymentProvider.STRIPE: StripeAdapter,
    PaymentProvider.PAYPAL: PayPalAdapter,
}


def get_adapter(provider: str) -> type[PaymentProviderAdapter]:
    """
    Look up the adapter for a provider value.

    Raises:
        UnsupportedProviderError: If provider is not one of PaymentProvider
    """
    try:
        return ADAPTERS[provider]
    except KeyError:
        raise UnsupportedProviderError(
            f"Unsupported payment provider: {provider}",
            details={"provider": provider, "supported": sorted(ADAPTERS)},
        ) from None
