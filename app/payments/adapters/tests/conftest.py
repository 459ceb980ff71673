"""
Adapter test fixtures.

REST providers (MoMo, ZaloPay, VNPay, PayPal) share one transport,
``payments.adapters.base.requests.request``, which ``mock_http`` patches.
Stripe goes through its SDK, so its resources are patched directly and
answer with ``StripeStub`` objects.
"""

from decimal import Decimal
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import requests
import stripe

from payments.adapters import CreatePaymentParams


@pytest.fixture
def create_params():
    """CreatePaymentParams for a 50,000 VND MoMo wallet order unless overridden."""

    def _create(**overrides) -> CreatePaymentParams:
        values = {
            "order_id": "ORDER_1700000000000_A1B2C3D4",
            "amount": Decimal("50000"),
            "currency": "VND",
            "description": "Payment for order ORDER_1700000000000_A1B2C3D4",
            "payment_method": "captureWallet",
            "return_url": "https://shop.test/return",
            "cancel_url": "https://shop.test/cancel",
            "notify_url": "https://api.test/webhooks/payments/momo",
            **overrides,
        }
        return CreatePaymentParams(**values)

    return _create


def provider_reply(body: Any = None, status_code: int = 200) -> MagicMock:
    reply = MagicMock(spec=requests.Response)
    reply.status_code = status_code
    reply.json.return_value = {} if body is None else body
    if status_code >= 400:
        reply.raise_for_status.side_effect = requests.HTTPError(response=reply)
    return reply


@pytest.fixture
def mock_http():
    """
    Patched provider transport.

    ``mock_http.respond(body, ...)`` queues one reply per call; the last
    request is in ``mock_http.call_args``.
    """
    with patch("payments.adapters.base.requests.request") as transport:

        def respond(*bodies, status_code: int = 200):
            transport.side_effect = [provider_reply(body, status_code) for body in bodies]

        transport.respond = respond
        transport.return_value = provider_reply({})
        yield transport


class StripeStub(dict):
    """Dict with attribute access, standing in for a StripeObject."""

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__"):
            raise AttributeError(name)
        return self.get(name)

    def to_dict(self) -> dict[str, Any]:
        return dict(self)


@pytest.fixture
def mock_payment_intent():
    def _intent(
        id: str = "pi_test123456",
        status: str = "requires_payment_method",
        amount: int = 10000,
        currency: str = "usd",
        client_secret: str = "pi_test123456_secret_abc123",
        metadata: dict | None = None,
    ) -> StripeStub:
        return StripeStub(
            id=id,
            object="payment_intent",
            status=status,
            amount=amount,
            currency=currency,
            client_secret=client_secret,
            metadata=metadata or {},
        )

    return _intent


@pytest.fixture
def mock_refund():
    def _refund(
        id: str = "re_test123456",
        amount: int = 3000,
        currency: str = "usd",
        status: str = "succeeded",
        payment_intent: str = "pi_test_completed",
    ) -> StripeStub:
        return StripeStub(
            id=id,
            object="refund",
            amount=amount,
            currency=currency,
            status=status,
            payment_intent=payment_intent,
        )

    return _refund


# Stripe SDK errors, one per branch of StripeAdapter._handle_stripe_error


@pytest.fixture
def card_error():
    error = stripe.CardError(
        message="Your card was declined.",
        param=None,
        code="card_declined",
    )
    error.decline_code = "generic_decline"
    return error


@pytest.fixture
def invalid_request_error():
    return stripe.InvalidRequestError(
        message="No such payment_intent",
        param="payment_intent",
        code="resource_missing",
    )


@pytest.fixture
def rate_limit_error():
    return stripe.RateLimitError(message="Too many requests")


@pytest.fixture
def api_connection_error():
    return stripe.APIConnectionError(message="Network unreachable")


@pytest.fixture
def authentication_error():
    return stripe.AuthenticationError(message="Invalid API Key provided")


@pytest.fixture
def api_error():
    return stripe.APIError(message="Stripe internal error")


@pytest.fixture
def mock_stripe_payment_intent(mock_payment_intent):
    with patch("stripe.PaymentIntent") as resource:
        resource.create.return_value = mock_payment_intent()
        resource.capture.return_value = mock_payment_intent(status="succeeded")
        resource.retrieve.return_value = mock_payment_intent()
        yield resource


@pytest.fixture
def mock_stripe_refund(mock_refund):
    with patch("stripe.Refund") as resource:
        resource.create.return_value = mock_refund()
        yield resource


@pytest.fixture
def mock_stripe_http_client():
    with patch("stripe.RequestsClient") as client:
        yield client
