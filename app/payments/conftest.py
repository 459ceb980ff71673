"""
Pytest fixtures for payment tests.

This module provides fixtures for creating payment-related test data and
provider credentials. Fixtures provide payments in the states the
services branch on (PENDING, COMPLETED, PARTIALLY_REFUNDED, terminal).

Usage:
    def test_refund(completed_stripe_payment, user):
        result = RefundService.create_refund(completed_stripe_payment.order_id, user)
        assert result.success
"""

from decimal import Decimal

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from payments.state_machines import PaymentProvider, PaymentStatus
from payments.tests.factories import PaymentFactory, UserFactory


# =============================================================================
# Settings & Cache
# =============================================================================


@pytest.fixture(autouse=True)
def provider_settings(settings):
    """Deterministic sandbox credentials for every provider."""
    settings.MOMO_PARTNER_CODE = "MOMOTEST"
    settings.MOMO_ACCESS_KEY = "momo-access"
    settings.MOMO_SECRET_KEY = "momo-secret"
    settings.MOMO_ENDPOINT = "https://momo.test"
    settings.ZALOPAY_APP_ID = "2553"
    settings.ZALOPAY_KEY1 = "zalo-key1"
    settings.ZALOPAY_KEY2 = "zalo-key2"
    settings.ZALOPAY_ENDPOINT = "https://zalopay.test"
    settings.VNPAY_TMN_CODE = "VNPTEST1"
    settings.VNPAY_HASH_SECRET = "vnpay-secret"
    settings.VNPAY_URL = "https://vnpay.test/paymentv2/vpcpay.html"
    settings.VNPAY_API_URL = "https://vnpay.test/merchant_webapi/api/transaction"
    settings.STRIPE_SECRET_KEY = "sk_test_123"
    settings.STRIPE_PUBLISHABLE_KEY = "pk_test_123"
    settings.STRIPE_WEBHOOK_SECRET = "whsec_test"
    settings.PAYPAL_CLIENT_ID = "paypal-client"
    settings.PAYPAL_CLIENT_SECRET = "paypal-secret"
    settings.PAYPAL_BASE_URL = "https://paypal.test"
    settings.PAYPAL_WEBHOOK_ID = "WH-TEST"
    settings.PAYMENT_WEBHOOK_BASE_URL = "https://api.test/webhooks/payments"
    return settings


@pytest.fixture(autouse=True)
def clear_cache():
    """Locks and the PayPal token live in the cache; start each test empty."""
    cache.clear()
    yield
    cache.clear()


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def user(db):
    """Create a test user."""
    return UserFactory()


@pytest.fixture
def other_user(db):
    """Create a second user who owns nothing."""
    return UserFactory()


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def auth_client(user):
    """API client authenticated with a JWT for `user`."""
    client = APIClient()
    token = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {token.access_token}")
    return client


# =============================================================================
# Payment State Fixtures
# =============================================================================


@pytest.fixture
def pending_stripe_payment(db, user):
    """PENDING Stripe payment with a PaymentIntent id."""
    return PaymentFactory(user=user, external_id="pi_test_pending")


@pytest.fixture
def completed_stripe_payment(db, user):
    """COMPLETED Stripe payment of 100.00 USD."""
    return PaymentFactory(
        user=user,
        external_id="pi_test_completed",
        status=PaymentStatus.COMPLETED,
    )


@pytest.fixture
def pending_momo_payment(db, user):
    """PENDING MoMo wallet payment of 50,000 VND."""
    return PaymentFactory(
        user=user,
        provider=PaymentProvider.MOMO,
        payment_method="captureWallet",
        currency="VND",
        amount=Decimal("50000"),
        external_id=None,
    )


@pytest.fixture
def completed_momo_payment(db, user):
    return PaymentFactory(
        user=user,
        provider=PaymentProvider.MOMO,
        payment_method="captureWallet",
        currency="VND",
        amount=Decimal("50000"),
        external_id="2800000001",
        status=PaymentStatus.COMPLETED,
    )


@pytest.fixture
def pending_paypal_payment(db, user):
    """PENDING PayPal order awaiting capture."""
    return PaymentFactory(
        user=user,
        provider=PaymentProvider.PAYPAL,
        payment_method="paypal",
        external_id="5O190127TN364715T",
        provider_data={"schema_version": 1, "paypalOrderId": "5O190127TN364715T"},
    )
