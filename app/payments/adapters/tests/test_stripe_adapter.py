"""
Tests for Stripe adapter.

Tests cover:
- PaymentIntent creation, retrieval and capture
- Refund creation with idempotency scoped per refund
- Error translation for each exception type
- Webhook signature verification
"""

from decimal import Decimal

import pytest
import stripe

from payments.adapters import IdempotencyKeyGenerator, StripeAdapter
from payments.exceptions import (
    ProviderCommunicationError,
    ProviderRejectedError,
    ProviderTimeoutError,
)


@pytest.fixture(autouse=True)
def setup_mocks(mock_stripe_http_client):
    """Keep the SDK from building a real HTTP client."""


# =============================================================================
# PaymentIntent Operations
# =============================================================================


class TestCreatePayment:
    def test_success(self, mock_stripe_payment_intent, mock_payment_intent, create_params):
        mock_stripe_payment_intent.create.return_value = mock_payment_intent(
            id="pi_new", client_secret="pi_new_secret_xyz"
        )

        result = StripeAdapter.create_payment(
            create_params(
                order_id="ORDER_S1",
                amount=Decimal("100.00"),
                currency="USD",
                payment_method="card",
                metadata={"cart": 42},
            )
        )

        assert result.external_id == "pi_new"
        assert result.client_secret == "pi_new_secret_xyz"
        assert result.redirect_url is None
        assert result.provider_data == {"paymentIntentId": "pi_new", "status": "requires_payment_method"}

        call_kwargs = mock_stripe_payment_intent.create.call_args.kwargs
        assert call_kwargs["amount"] == 10000
        assert call_kwargs["currency"] == "usd"
        assert call_kwargs["metadata"] == {"orderId": "ORDER_S1", "cart": "42"}
        assert call_kwargs["automatic_payment_methods"] == {"enabled": True}
        assert call_kwargs["idempotency_key"] == IdempotencyKeyGenerator.generate(
            "create_intent", "ORDER_S1"
        )

    def test_sets_api_key(self, mock_stripe_payment_intent, create_params):
        StripeAdapter.create_payment(create_params(currency="USD", amount=Decimal("5")))

        assert stripe.api_key == "sk_test_123"


class TestQueryStatus:
    def test_retrieve_returns_dict(self, mock_stripe_payment_intent, mock_payment_intent, db, pending_stripe_payment):
        mock_stripe_payment_intent.retrieve.return_value = mock_payment_intent(
            id="pi_test_pending", status="succeeded"
        )

        response = StripeAdapter.query_status(pending_stripe_payment)

        mock_stripe_payment_intent.retrieve.assert_called_once_with("pi_test_pending")
        assert response["status"] == "succeeded"

    def test_without_intent_returns_empty(self, mock_stripe_payment_intent, db, pending_stripe_payment):
        pending_stripe_payment.external_id = None

        assert StripeAdapter.query_status(pending_stripe_payment) == {}
        mock_stripe_payment_intent.retrieve.assert_not_called()


class TestCapture:
    def test_capture(self, mock_stripe_payment_intent, db, pending_stripe_payment):
        response = StripeAdapter.capture_payment(pending_stripe_payment)

        assert response["status"] == "succeeded"
        args, kwargs = mock_stripe_payment_intent.capture.call_args
        assert args == ("pi_test_pending",)
        assert kwargs["idempotency_key"].startswith("capture:")


# =============================================================================
# Refunds
# =============================================================================


class TestCreateRefund:
    def test_partial_refund(self, mock_stripe_refund, db, completed_stripe_payment):
        result = StripeAdapter.create_refund(
            completed_stripe_payment,
            reference="pi_test_completed",
            amount=Decimal("30.00"),
            reason="requested_by_customer",
            note="Damaged item",
        )

        assert result.refund_id == "re_test123456"
        assert result.status == "succeeded"
        assert result.amount == Decimal("30")
        assert result.raw["object"] == "refund"

        call_kwargs = mock_stripe_refund.create.call_args.kwargs
        assert call_kwargs["payment_intent"] == "pi_test_completed"
        assert call_kwargs["amount"] == 3000
        assert call_kwargs["reason"] == "requested_by_customer"
        assert call_kwargs["metadata"]["note"] == "Damaged item"
        assert call_kwargs["idempotency_key"] == IdempotencyKeyGenerator.generate(
            "refund", completed_stripe_payment.order_id, 1
        )

    def test_free_text_reason_goes_to_metadata(self, mock_stripe_refund, db, completed_stripe_payment):
        StripeAdapter.create_refund(
            completed_stripe_payment, reference="pi_test_completed", reason="changed mind"
        )

        call_kwargs = mock_stripe_refund.create.call_args.kwargs
        assert "reason" not in call_kwargs
        assert "amount" not in call_kwargs
        assert call_kwargs["metadata"]["reason"] == "changed mind"

    def test_second_refund_uses_new_key(self, mock_stripe_refund, db, completed_stripe_payment):
        completed_stripe_payment.provider_data = {
            "refunds": [{"refundId": "re_1", "status": "succeeded", "amount": "10.00"}]
        }

        StripeAdapter.create_refund(
            completed_stripe_payment, reference="pi_test_completed", amount=Decimal("5")
        )

        key = mock_stripe_refund.create.call_args.kwargs["idempotency_key"]
        assert key.startswith(f"refund:{completed_stripe_payment.order_id}:2:")

    @pytest.mark.parametrize(
        "stripe_status,expected",
        [("pending", "pending"), ("requires_action", "pending"), ("canceled", "failed")],
    )
    def test_status_normalized(
        self, mock_stripe_refund, mock_refund, db, completed_stripe_payment, stripe_status, expected
    ):
        mock_stripe_refund.create.return_value = mock_refund(status=stripe_status)

        result = StripeAdapter.create_refund(
            completed_stripe_payment, reference="pi_test_completed", amount=Decimal("30")
        )

        assert result.status == expected


# =============================================================================
# Error Translation
# =============================================================================


class TestErrorTranslation:
    def test_card_error(self, mock_stripe_payment_intent, card_error, create_params):
        mock_stripe_payment_intent.create.side_effect = card_error

        with pytest.raises(ProviderRejectedError) as exc_info:
            StripeAdapter.create_payment(create_params(currency="USD", amount=Decimal("5")))

        assert exc_info.value.provider == "stripe"
        assert exc_info.value.provider_code == "generic_decline"
        assert exc_info.value.is_retryable is False

    def test_invalid_request_error(
        self, mock_stripe_payment_intent, invalid_request_error, db, pending_stripe_payment
    ):
        mock_stripe_payment_intent.retrieve.side_effect = invalid_request_error

        with pytest.raises(ProviderRejectedError) as exc_info:
            StripeAdapter.query_status(pending_stripe_payment)

        assert exc_info.value.provider_code == "resource_missing"

    def test_rate_limit_error(self, mock_stripe_payment_intent, rate_limit_error, create_params):
        mock_stripe_payment_intent.create.side_effect = rate_limit_error

        with pytest.raises(ProviderTimeoutError):
            StripeAdapter.create_payment(create_params(currency="USD", amount=Decimal("5")))

    @pytest.mark.parametrize(
        "error_fixture,provider_code",
        [
            ("api_connection_error", "api_connection_error"),
            ("authentication_error", "authentication_error"),
        ],
    )
    def test_communication_errors(
        self, request, mock_stripe_payment_intent, create_params, error_fixture, provider_code
    ):
        mock_stripe_payment_intent.create.side_effect = request.getfixturevalue(error_fixture)

        with pytest.raises(ProviderCommunicationError) as exc_info:
            StripeAdapter.create_payment(create_params(currency="USD", amount=Decimal("5")))

        assert exc_info.value.provider_code == provider_code

    def test_generic_stripe_error(self, mock_stripe_refund, api_error, db, completed_stripe_payment):
        mock_stripe_refund.create.side_effect = api_error

        with pytest.raises(ProviderCommunicationError) as exc_info:
            StripeAdapter.create_refund(completed_stripe_payment, reference="pi_test_completed")

        assert exc_info.value.error_code == "PROVIDER_COMMUNICATION_ERROR"

    def test_unknown_error_propagates(self, mock_stripe_payment_intent, create_params):
        mock_stripe_payment_intent.create.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            StripeAdapter.create_payment(create_params(currency="USD", amount=Decimal("5")))


# =============================================================================
# Webhook Verification
# =============================================================================


class TestVerifyCallback:
    def test_valid_signature(self, mocker):
        construct = mocker.patch("stripe.Webhook.construct_event", return_value={"id": "evt_1"})

        assert StripeAdapter.verify_callback(b'{"id": "evt_1"}', "t=1,v1=abc") is True
        construct.assert_called_once_with(b'{"id": "evt_1"}', "t=1,v1=abc", "whsec_test")

    def test_invalid_signature(self, mocker):
        mocker.patch(
            "stripe.Webhook.construct_event",
            side_effect=stripe.SignatureVerificationError("bad", "t=1,v1=bad"),
        )

        assert StripeAdapter.verify_callback(b"{}", "t=1,v1=bad") is False

    def test_missing_header(self, mocker):
        construct = mocker.patch("stripe.Webhook.construct_event")

        assert StripeAdapter.verify_callback(b"{}", None) is False
        construct.assert_not_called()

    def test_malformed_payload_fails_closed(self, mocker):
        mocker.patch("stripe.Webhook.construct_event", side_effect=ValueError("bad json"))

        assert StripeAdapter.verify_callback(b"not json", "t=1,v1=abc") is False
