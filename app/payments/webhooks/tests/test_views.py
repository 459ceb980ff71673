"""
Tests for the webhook endpoint view.

Tests cover:
- GET endpoint checks (challenge echo and description)
- POST callbacks routed through the pipeline
- VNPay IPN delivered as GET
- Unexpected errors return 500
"""

from unittest.mock import patch

import pytest
from django.urls import reverse

from payments.adapters import MoMoAdapter, VNPayAdapter
from payments.adapters.momo_adapter import IPN_SIGNATURE_FIELDS
from payments.models import PaymentEvent
from payments.state_machines import PaymentProvider, PaymentStatus
from payments.tests.factories import PaymentFactory


def webhook_url(provider):
    return reverse("payment_webhooks:payment_webhook", kwargs={"provider": provider})


class TestEndpointCheck:
    def test_challenge_echoed(self, client):
        response = client.get(webhook_url("stripe"), {"challenge": "abc123"})

        assert response.status_code == 200
        assert response.json() == {"challenge": "abc123"}

    def test_endpoint_description(self, client):
        response = client.get(webhook_url("momo"))

        assert response.json() == {"message": "MoMo webhook endpoint"}

    def test_unknown_provider_description(self, client):
        response = client.get(webhook_url("bitcoin"))

        assert response.json() == {"message": "bitcoin webhook endpoint"}

    def test_other_methods_not_allowed(self, client):
        assert client.put(webhook_url("momo")).status_code == 405


@pytest.mark.django_db
class TestCallbacks:
    def test_momo_ipn(self, client, pending_momo_payment):
        payload = {
            "partnerCode": "MOMOTEST",
            "orderId": pending_momo_payment.order_id,
            "requestId": pending_momo_payment.order_id,
            "amount": 50000,
            "orderInfo": "Payment",
            "orderType": "momo_wallet",
            "transId": 2800000001,
            "resultCode": 0,
            "message": "Successful.",
            "payType": "qr",
            "responseTime": 1700000000123,
            "extraData": "",
        }
        payload["signature"] = MoMoAdapter.sign(payload, IPN_SIGNATURE_FIELDS)

        response = client.post(
            webhook_url("momo"),
            data=payload,
            content_type="application/json",
            headers={"X-Request-ID": "req-42"},
        )

        pending_momo_payment.refresh_from_db()
        assert response.status_code == 200
        assert response.json()["resultCode"] == 0
        assert pending_momo_payment.status == PaymentStatus.COMPLETED
        event = PaymentEvent.objects.get(payment=pending_momo_payment)
        assert event.correlation_id == "req-42"

    def test_invalid_signature(self, client, pending_momo_payment):
        response = client.post(
            webhook_url("momo"),
            data={"orderId": pending_momo_payment.order_id, "resultCode": 0, "signature": "bad"},
            content_type="application/json",
        )

        pending_momo_payment.refresh_from_db()
        assert response.status_code == 400
        assert response.json() == {"resultCode": 1, "message": "Invalid signature"}
        assert pending_momo_payment.status == PaymentStatus.PENDING

    def test_unknown_provider(self, client):
        response = client.post(webhook_url("bitcoin"), data={}, content_type="application/json")

        assert response.status_code == 404
        assert response.json() == {"error": "Unsupported provider: bitcoin"}

    def test_vnpay_ipn_over_get(self, client, user):
        payment = PaymentFactory(
            user=user,
            provider=PaymentProvider.VNPAY,
            payment_method="vnpay",
            currency="VND",
            amount=100000,
            external_id=None,
        )
        params = {
            "vnp_TmnCode": "VNPTEST1",
            "vnp_Amount": "10000000",
            "vnp_TxnRef": payment.order_id,
            "vnp_ResponseCode": "00",
            "vnp_TransactionStatus": "00",
            "vnp_TransactionNo": "14000001",
            "vnp_BankCode": "NCB",
        }
        params["vnp_SecureHash"] = VNPayAdapter.sign(params)

        response = client.get(webhook_url("vnpay"), params)

        payment.refresh_from_db()
        assert response.json() == {"RspCode": "00", "Message": "success"}
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.external_id == "14000001"
        assert payment.provider_data["vnp_BankCode"] == "NCB"

    def test_unexpected_error_returns_500(self, client):
        with patch(
            "payments.webhooks.views.process_webhook",
            side_effect=RuntimeError("database down"),
        ):
            response = client.post(webhook_url("momo"), data={}, content_type="application/json")

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}
