"""
Tests for PaymentOrchestrator.

Tests cover:
- Payment creation: validation, provider artifacts, conflicts, provider failure
- Status reads with provider polling and graceful degradation
- Manual capture
- Listing and public client configuration
"""

import re
from decimal import Decimal

import pytest

from payments.adapters import (
    MoMoAdapter,
    PayPalAdapter,
    ProviderPaymentResult,
    StripeAdapter,
    VNPayAdapter,
)
from payments.exceptions import ProviderCommunicationError, ProviderRejectedError
from payments.ledger import PaymentLedger
from payments.models import Payment, PaymentEvent
from payments.services import (
    CreatePaymentRequest,
    PaymentOrchestrator,
    ReconcileOutcome,
    generate_order_id,
)
from payments.state_machines import PaymentEventType, PaymentProvider, PaymentStatus
from payments.tests.factories import PaymentFactory


@pytest.fixture
def stripe_create(mocker):
    return mocker.patch.object(
        StripeAdapter,
        "create_payment",
        return_value=ProviderPaymentResult(
            external_id="pi_123",
            client_secret="pi_123_secret_abc",
            provider_data={"paymentIntentId": "pi_123", "status": "requires_payment_method"},
        ),
    )


@pytest.fixture
def momo_create(mocker):
    return mocker.patch.object(
        MoMoAdapter,
        "create_payment",
        return_value=ProviderPaymentResult(
            redirect_url="https://momo.test/pay/abc",
            qr_payload="https://momo.test/qr/abc",
            provider_data={"payUrl": "https://momo.test/pay/abc"},
        ),
    )


class TestGenerateOrderId:
    def test_format(self):
        assert re.fullmatch(r"ORDER_\d{13}_[0-9A-F]{8}", generate_order_id())

    def test_unique(self):
        assert len({generate_order_id() for _ in range(50)}) == 50


# =============================================================================
# Create
# =============================================================================


@pytest.mark.django_db
class TestCreatePayment:
    def test_stripe_payment(self, user, stripe_create):
        result = PaymentOrchestrator.create_payment(
            user,
            CreatePaymentRequest(
                provider="stripe",
                amount=Decimal("100"),
                currency="usd",
                order_id="ORDER_A",
                metadata={"cart": "42"},
            ),
            correlation_id="req-1",
        )

        assert result.success is True
        creation = result.data
        assert creation.client_secret == "pi_123_secret_abc"
        payment = creation.payment
        assert payment.order_id == "ORDER_A"
        assert payment.status == PaymentStatus.PENDING
        assert payment.external_id == "pi_123"
        assert payment.amount == Decimal("100.00")
        assert payment.currency == "USD"
        assert payment.payment_method == "card"
        assert payment.expires_at is not None
        assert "client_secret" not in str(payment.provider_data)

        params = stripe_create.call_args.args[0]
        assert params.order_id == "ORDER_A"
        assert params.notify_url == "https://api.test/webhooks/payments/stripe"
        assert params.user_reference == str(user.pk)
        assert stripe_create.call_args.kwargs["trace_id"] == "req-1"

        events = PaymentLedger.events_for(payment.id)
        assert [e.event_type for e in events] == [PaymentEventType.CREATED]

    def test_wallet_payment_stores_qr_code(self, user, momo_create):
        result = PaymentOrchestrator.create_payment(
            user,
            CreatePaymentRequest(provider="momo", amount=Decimal("50000"), currency="VND"),
        )

        payment = result.data.payment
        assert result.data.qr_code == "https://momo.test/qr/abc"
        assert payment.payment_url == "https://momo.test/pay/abc"
        assert payment.provider_data["qrCode"] == "https://momo.test/qr/abc"
        assert payment.payment_method == "captureWallet"
        assert re.fullmatch(r"ORDER_\d{13}_[0-9A-F]{8}", payment.order_id)

    def test_defaults_redirect_urls(self, user, stripe_create, settings):
        settings.PAYMENT_SUCCESS_URL = "https://shop.test/ok"
        settings.PAYMENT_CANCEL_URL = "https://shop.test/cancel"

        result = PaymentOrchestrator.create_payment(
            user, CreatePaymentRequest(provider="stripe", amount=Decimal("5"), currency="USD")
        )

        assert result.data.payment.return_url == "https://shop.test/ok"
        assert result.data.payment.cancel_url == "https://shop.test/cancel"

    def test_unknown_provider(self, user):
        result = PaymentOrchestrator.create_payment(
            user, CreatePaymentRequest(provider="bitcoin", amount=Decimal("5"), currency="USD")
        )

        assert result.error_code == "UNSUPPORTED_PROVIDER"
        assert not Payment.objects.exists()

    @pytest.mark.parametrize(
        "request_kwargs,field",
        [
            ({"provider": "momo", "amount": Decimal("50000"), "currency": "USD"}, "currency"),
            ({"provider": "momo", "amount": Decimal("5000"), "currency": "VND"}, "amount"),
            ({"provider": "momo", "amount": Decimal("60000000"), "currency": "VND"}, "amount"),
            ({"provider": "stripe", "amount": Decimal("0.49"), "currency": "USD"}, "amount"),
            (
                {"provider": "stripe", "amount": Decimal("5"), "currency": "USD", "payment_method": "paypal"},
                "payment_method",
            ),
            ({"provider": "stripe", "amount": "abc", "currency": "USD"}, "amount"),
        ],
    )
    def test_validation_errors(self, user, request_kwargs, field):
        result = PaymentOrchestrator.create_payment(user, CreatePaymentRequest(**request_kwargs))

        assert result.success is False
        assert result.error_code == "VALIDATION_ERROR"
        assert field in result.errors
        assert not Payment.objects.exists()

    def test_duplicate_order_id(self, user, stripe_create):
        PaymentFactory(order_id="ORDER_DUP")

        result = PaymentOrchestrator.create_payment(
            user,
            CreatePaymentRequest(
                provider="stripe", amount=Decimal("5"), currency="USD", order_id="ORDER_DUP"
            ),
        )

        assert result.error_code == "PAYMENT_CONFLICT"
        stripe_create.assert_not_called()
        assert Payment.objects.filter(order_id="ORDER_DUP").count() == 1

    def test_provider_failure_marks_payment_failed(self, user, mocker):
        mocker.patch.object(
            MoMoAdapter,
            "create_payment",
            side_effect=ProviderRejectedError(
                "Amount out of range", provider="momo", provider_code="22"
            ),
        )

        result = PaymentOrchestrator.create_payment(
            user,
            CreatePaymentRequest(
                provider="momo", amount=Decimal("50000"), currency="VND", order_id="ORDER_F"
            ),
        )

        assert result.error_code == "PROVIDER_COMMUNICATION_ERROR"
        assert result.error == "Payment creation failed at MoMo: Amount out of range"
        payment = Payment.objects.get(order_id="ORDER_F")
        assert payment.status == PaymentStatus.FAILED
        assert payment.error_message == "Amount out of range"

    def test_provider_failure_is_audited(self, user, mocker):
        mocker.patch.object(
            MoMoAdapter,
            "create_payment",
            side_effect=ProviderCommunicationError("MoMo request timed out", provider="momo"),
        )

        PaymentOrchestrator.create_payment(
            user,
            CreatePaymentRequest(
                provider="momo", amount=Decimal("50000"), currency="VND", order_id="ORDER_F2"
            ),
            correlation_id="req-fail",
        )

        payment = Payment.objects.get(order_id="ORDER_F2")
        events = sorted(
            PaymentEvent.objects.filter(payment=payment).values_list("event_type", "status")
        )
        assert events == [
            (PaymentEventType.CREATED, PaymentStatus.PENDING),
            (PaymentEventType.FAILED, PaymentStatus.FAILED),
        ]
        failed = PaymentEvent.objects.get(payment=payment, event_type=PaymentEventType.FAILED)
        assert failed.message == "MoMo request timed out"
        assert failed.correlation_id == "req-fail"
        assert failed.data["error_code"] == "PROVIDER_COMMUNICATION_ERROR"
        assert failed.data["details"] == {"provider": "momo"}

    def test_vnpay_payment_url(self, user, mocker):
        mocker.patch.object(
            VNPayAdapter,
            "create_payment",
            return_value=ProviderPaymentResult(
                redirect_url="https://vnpay.test/pay?vnp_TxnRef=ORDER_V",
                provider_data={"vnp_TxnRef": "ORDER_V", "vnp_CreateDate": "20250310100000"},
            ),
        )

        result = PaymentOrchestrator.create_payment(
            user,
            CreatePaymentRequest(
                provider="vnpay",
                amount=Decimal("100000"),
                currency="VND",
                order_id="ORDER_V",
                client_ip="10.0.0.5",
            ),
        )

        payment = result.data.payment
        assert payment.payment_url.startswith("https://vnpay.test/pay")
        assert payment.provider_data["vnp_CreateDate"] == "20250310100000"
        assert payment.external_id is None


# =============================================================================
# Status
# =============================================================================


@pytest.mark.django_db
class TestGetStatus:
    def test_not_found(self, user):
        assert PaymentOrchestrator.get_status("ORDER_MISSING", user).error_code == "PAYMENT_NOT_FOUND"

    def test_other_user(self, other_user, pending_stripe_payment):
        result = PaymentOrchestrator.get_status(pending_stripe_payment.order_id, other_user)

        assert result.error_code == "PERMISSION_DENIED"

    def test_poll_reconciles(self, user, pending_stripe_payment, mocker):
        mocker.patch.object(
            StripeAdapter,
            "query_status",
            return_value={"id": "pi_test_pending", "status": "succeeded"},
        )

        result = PaymentOrchestrator.get_status(pending_stripe_payment.order_id, user)

        snapshot = result.data
        assert snapshot.payment.status == PaymentStatus.COMPLETED
        assert snapshot.payment.paid_at is not None
        assert snapshot.provider_status["status"] == "succeeded"
        assert [e.event_type for e in snapshot.events] == [PaymentEventType.STATUS_QUERY]

    def test_terminal_payment_not_polled(self, user, completed_stripe_payment, mocker):
        query = mocker.patch.object(StripeAdapter, "query_status")

        result = PaymentOrchestrator.get_status(completed_stripe_payment.order_id, user)

        query.assert_not_called()
        assert result.data.payment.status == PaymentStatus.COMPLETED
        assert result.data.provider_status is None

    def test_provider_failure_returns_stored_state(self, user, pending_stripe_payment, mocker):
        mocker.patch.object(
            StripeAdapter,
            "query_status",
            side_effect=ProviderCommunicationError("Stripe down", provider="stripe"),
        )

        result = PaymentOrchestrator.get_status(pending_stripe_payment.order_id, user)

        assert result.success is True
        assert result.data.payment.status == PaymentStatus.PENDING
        assert result.data.provider_status is None

    def test_empty_provider_response(self, user, pending_momo_payment, mocker):
        mocker.patch.object(MoMoAdapter, "query_status", return_value={})

        result = PaymentOrchestrator.get_status(pending_momo_payment.order_id, user)

        assert result.data.payment.status == PaymentStatus.PENDING
        assert not PaymentEvent.objects.filter(payment=pending_momo_payment).exists()


# =============================================================================
# Capture
# =============================================================================


@pytest.mark.django_db
class TestCapturePayment:
    def test_paypal_capture(self, user, pending_paypal_payment, mocker):
        mocker.patch.object(
            PayPalAdapter,
            "capture_payment",
            return_value={
                "id": "5O190127TN364715T",
                "status": "COMPLETED",
                "purchase_units": [{"payments": {"captures": [{"id": "3C679366HH908993F"}]}}],
            },
        )

        result = PaymentOrchestrator.capture_payment(pending_paypal_payment.order_id, user)

        assert result.success is True
        assert result.data.outcome == ReconcileOutcome.UPDATED
        assert result.data.payment.status == PaymentStatus.COMPLETED
        assert result.data.payment.provider_data["captureId"] == "3C679366HH908993F"

    def test_not_pending(self, user, completed_stripe_payment):
        result = PaymentOrchestrator.capture_payment(completed_stripe_payment.order_id, user)

        assert result.error_code == "INVALID_STATE"

    def test_provider_without_capture(self, user, pending_momo_payment):
        result = PaymentOrchestrator.capture_payment(pending_momo_payment.order_id, user)

        assert result.error_code == "UNSUPPORTED_PROVIDER"

    def test_missing_external_id(self, user):
        payment = PaymentFactory(user=user, external_id=None)

        result = PaymentOrchestrator.capture_payment(payment.order_id, user)

        assert result.error_code == "INVALID_STATE"

    def test_provider_failure(self, user, pending_stripe_payment, mocker):
        mocker.patch.object(
            StripeAdapter,
            "capture_payment",
            side_effect=ProviderCommunicationError("boom", provider="stripe"),
        )

        result = PaymentOrchestrator.capture_payment(pending_stripe_payment.order_id, user)

        pending_stripe_payment.refresh_from_db()
        assert result.error_code == "PROVIDER_COMMUNICATION_ERROR"
        assert pending_stripe_payment.status == PaymentStatus.PENDING


# =============================================================================
# Listing & Config
# =============================================================================


@pytest.mark.django_db
class TestListPayments:
    def test_lists_own_payments(self, user, other_user):
        PaymentFactory.create_batch(3, user=user)
        PaymentFactory(user=other_user)

        result = PaymentOrchestrator.list_payments(user, limit=2)

        assert result.data.total_count == 3
        assert len(result.data.items) == 2
        assert result.data.has_more is True

    def test_invalid_pagination(self, user):
        result = PaymentOrchestrator.list_payments(user, limit=500)

        assert result.error_code == "VALIDATION_ERROR"


class TestClientConfig:
    def test_public_config(self):
        config = PaymentOrchestrator.client_config()

        assert config["stripe"] == {"publishableKey": "pk_test_123"}
        assert config["paypal"] == {"clientId": "paypal-client"}
        assert config["currencies"]["VND"]["decimals"] == 0
        providers = {m["id"]: m for m in config["paymentMethods"]}
        assert set(providers) == {p.value for p in PaymentProvider}
        assert providers["stripe"]["supportsRefund"] is True
        assert providers["momo"]["minAmount"] == "10000"
        assert "sk_test_123" not in str(config)
