"""
Tests for payment API views.

Tests cover:
- The {success, data | error, error_code} envelope on every endpoint
- Error code to HTTP status mapping
- Authentication requirements
- Request validation
"""

from decimal import Decimal

import pytest
from django.urls import reverse
from rest_framework import status

from payments.adapters import (
    PayPalAdapter,
    ProviderPaymentResult,
    ProviderRefundResult,
    StripeAdapter,
)
from payments.exceptions import ProviderCommunicationError
from payments.state_machines import PaymentStatus
from payments.tests.factories import PaymentFactory
from payments.views import ERROR_STATUS_CODES


@pytest.fixture
def stripe_create(mocker):
    return mocker.patch.object(
        StripeAdapter,
        "create_payment",
        return_value=ProviderPaymentResult(
            external_id="pi_123",
            client_secret="pi_123_secret_abc",
            provider_data={"paymentIntentId": "pi_123"},
        ),
    )


@pytest.fixture
def stripe_refund(mocker):
    def _refund(payment, reference, amount=None, reason=None, note=None, trace_id=None):
        return ProviderRefundResult(
            refund_id="re_1", status="succeeded", amount=amount, raw={"id": "re_1"}
        )

    return mocker.patch.object(StripeAdapter, "create_refund", side_effect=_refund)


class TestErrorStatusCodes:
    @pytest.mark.parametrize(
        "code,expected",
        [
            ("VALIDATION_ERROR", 400),
            ("INVALID_AMOUNT", 400),
            ("PERMISSION_DENIED", 403),
            ("PAYMENT_NOT_FOUND", 404),
            ("PAYMENT_CONFLICT", 409),
            ("PROVIDER_COMMUNICATION_ERROR", 500),
        ],
    )
    def test_mapping(self, code, expected):
        assert ERROR_STATUS_CODES[code] == expected


@pytest.mark.django_db
class TestAuthentication:
    @pytest.mark.parametrize(
        "name,method,kwargs",
        [
            ("payments:create", "post", {}),
            ("payments:list", "get", {}),
            ("payments:status", "get", {"order_id": "ORDER_1"}),
            ("payments:refund", "post", {"order_id": "ORDER_1"}),
            ("payments:capture", "post", {"order_id": "ORDER_1"}),
        ],
    )
    def test_requires_authentication(self, api_client, name, method, kwargs):
        response = getattr(api_client, method)(reverse(name, kwargs=kwargs))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_config_is_public(self, api_client):
        response = api_client.get(reverse("payments:config"))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["success"] is True


# =============================================================================
# Create
# =============================================================================


@pytest.mark.django_db
class TestCreatePaymentView:
    def test_created(self, auth_client, stripe_create):
        response = auth_client.post(
            reverse("payments:create"),
            {"provider": "stripe", "amount": "100.00", "currency": "usd"},
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        data = response.data["data"]
        assert response.data["success"] is True
        assert data["status"] == PaymentStatus.PENDING
        assert data["amount"] == "100.00"
        assert data["currency"] == "USD"
        assert data["client_secret"] == "pi_123_secret_abc"
        assert data["external_id"] == "pi_123"
        assert data["order_id"].startswith("ORDER_")

    def test_invalid_body(self, auth_client):
        response = auth_client.post(
            reverse("payments:create"),
            {"provider": "bitcoin", "amount": "-1", "currency": "USD"},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["success"] is False
        assert response.data["error_code"] == "VALIDATION_ERROR"
        assert set(response.data["errors"]) == {"provider", "amount"}

    def test_provider_rule_violation(self, auth_client):
        response = auth_client.post(
            reverse("payments:create"),
            {"provider": "momo", "amount": "100", "currency": "VND"},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "VALIDATION_ERROR"

    def test_duplicate_order_id(self, auth_client, stripe_create, pending_stripe_payment):
        response = auth_client.post(
            reverse("payments:create"),
            {
                "provider": "stripe",
                "amount": "10.00",
                "currency": "USD",
                "order_id": pending_stripe_payment.order_id,
            },
            format="json",
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "PAYMENT_CONFLICT"

    def test_provider_down(self, auth_client, mocker):
        mocker.patch.object(
            StripeAdapter,
            "create_payment",
            side_effect=ProviderCommunicationError("Request timed out", provider="stripe"),
        )

        response = auth_client.post(
            reverse("payments:create"),
            {"provider": "stripe", "amount": "10.00", "currency": "USD"},
            format="json",
        )

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.data["error_code"] == "PROVIDER_COMMUNICATION_ERROR"


# =============================================================================
# List / Status
# =============================================================================


@pytest.mark.django_db
class TestPaymentListView:
    def test_lists_own_payments(self, auth_client, user, other_user):
        PaymentFactory.create_batch(3, user=user)
        PaymentFactory(user=other_user)

        response = auth_client.get(reverse("payments:list"), {"limit": 2})

        assert response.status_code == status.HTTP_200_OK
        data = response.data["data"]
        assert len(data["payments"]) == 2
        assert data["pagination"] == {
            "limit": 2,
            "offset": 0,
            "total_count": 3,
            "has_more": True,
        }

    def test_post_body_filters(self, auth_client, user):
        PaymentFactory(user=user, status=PaymentStatus.COMPLETED)
        PaymentFactory(user=user)

        response = auth_client.post(
            reverse("payments:list"), {"status": "COMPLETED"}, format="json"
        )

        payments = response.data["data"]["payments"]
        assert [p["status"] for p in payments] == [PaymentStatus.COMPLETED]

    def test_invalid_limit(self, auth_client):
        response = auth_client.get(reverse("payments:list"), {"limit": 500})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "limit" in response.data["errors"]


@pytest.mark.django_db
class TestPaymentStatusView:
    def test_status_with_events(self, auth_client, pending_stripe_payment, mocker):
        mocker.patch.object(
            StripeAdapter,
            "query_status",
            return_value={"id": "pi_test_pending", "status": "succeeded"},
        )

        response = auth_client.get(
            reverse("payments:status", kwargs={"order_id": pending_stripe_payment.order_id})
        )

        data = response.data["data"]
        assert response.status_code == status.HTTP_200_OK
        assert data["status"] == PaymentStatus.COMPLETED
        assert data["provider_status"]["status"] == "succeeded"
        assert [e["event_type"] for e in data["events"]] == ["STATUS_QUERY"]

    def test_other_users_payment(self, api_client, other_user, pending_stripe_payment):
        api_client.force_authenticate(other_user)

        response = api_client.get(
            reverse("payments:status", kwargs={"order_id": pending_stripe_payment.order_id})
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data == {
            "success": False,
            "error": "You do not have permission to access this payment",
            "error_code": "PERMISSION_DENIED",
        }

    def test_not_found(self, auth_client):
        response = auth_client.get(reverse("payments:status", kwargs={"order_id": "ORDER_NOPE"}))

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data["error_code"] == "PAYMENT_NOT_FOUND"


# =============================================================================
# Refund / Capture
# =============================================================================


@pytest.mark.django_db
class TestRefundView:
    def test_partial_refund(self, auth_client, completed_stripe_payment, stripe_refund):
        response = auth_client.post(
            reverse("payments:refund", kwargs={"order_id": completed_stripe_payment.order_id}),
            {"amount": "40.00", "reason": "requested_by_customer"},
            format="json",
        )

        data = response.data["data"]
        assert response.status_code == status.HTTP_200_OK
        assert data["status"] == PaymentStatus.PARTIALLY_REFUNDED
        assert data["refund_amount"] == "40.00"
        assert data["remaining_amount"] == "60.00"

    def test_exceeding_amount(self, auth_client, completed_stripe_payment, stripe_refund):
        response = auth_client.post(
            reverse("payments:refund", kwargs={"order_id": completed_stripe_payment.order_id}),
            {"amount": "100.01"},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "INVALID_AMOUNT"
        stripe_refund.assert_not_called()

    def test_unsupported_provider(self, auth_client, completed_momo_payment):
        response = auth_client.post(
            reverse("payments:refund", kwargs={"order_id": completed_momo_payment.order_id}),
            {},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "UNSUPPORTED_PROVIDER"

    def test_invalid_amount_format(self, auth_client, completed_stripe_payment):
        response = auth_client.post(
            reverse("payments:refund", kwargs={"order_id": completed_stripe_payment.order_id}),
            {"amount": "abc"},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "VALIDATION_ERROR"


@pytest.mark.django_db
class TestCaptureView:
    def test_paypal_capture(self, auth_client, pending_paypal_payment, mocker):
        mocker.patch.object(
            PayPalAdapter,
            "capture_payment",
            return_value={
                "id": "5O190127TN364715T",
                "status": "COMPLETED",
                "purchase_units": [{"payments": {"captures": [{"id": "3C679366HH908993F"}]}}],
            },
        )

        response = auth_client.post(
            reverse("payments:capture", kwargs={"order_id": pending_paypal_payment.order_id})
        )

        data = response.data["data"]
        assert response.status_code == status.HTTP_200_OK
        assert data["status"] == PaymentStatus.COMPLETED
        assert data["outcome"] == "updated"

    def test_already_completed(self, auth_client, completed_stripe_payment):
        response = auth_client.post(
            reverse("payments:capture", kwargs={"order_id": completed_stripe_payment.order_id})
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "INVALID_STATE"


class TestConfigView:
    def test_catalog(self, client):
        response = client.get(reverse("payments:config"))

        data = response.json()["data"]
        assert data["stripe"] == {"publishableKey": "pk_test_123"}
        assert data["currencies"]["VND"]["decimals"] == 0
        assert data["currencies"]["USD"]["decimals"] == 2
        providers = {entry["id"]: entry for entry in data["paymentMethods"]}
        assert set(providers) == {"momo", "zalopay", "vnpay", "stripe", "paypal"}
        assert providers["stripe"]["supportsRefund"] is True
        assert providers["momo"]["supportsRefund"] is False


def test_refund_amount_is_decimal(completed_stripe_payment, auth_client, stripe_refund):
    auth_client.post(
        reverse("payments:refund", kwargs={"order_id": completed_stripe_payment.order_id}),
        {"amount": "12.5"},
        format="json",
    )

    _, kwargs = stripe_refund.call_args
    assert kwargs["amount"] == Decimal("12.50")
