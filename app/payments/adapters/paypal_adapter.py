"""
PayPal Orders v2 adapter.

Uses OAuth2 client credentials; the access token is cached in the
Django cache until shortly before it expires. Payments are created as
CAPTURE-intent orders and must be captured after the payer approves.
Webhooks are verified by PayPal's verify-webhook-signature endpoint.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.core.cache import cache

from payments.exceptions import ProviderRejectedError
from payments.state_machines import PaymentProvider

from .base import (
    CreatePaymentParams,
    IdempotencyKeyGenerator,
    PaymentProviderAdapter,
    ProviderPaymentResult,
    ProviderRefundResult,
)

if TYPE_CHECKING:
    from payments.models import Payment

ACCESS_TOKEN_CACHE_KEY = "paypal:access_token"
TOKEN_EXPIRY_MARGIN_SECONDS = 60

REFUND_STATUS_MAP = {
    "COMPLETED": "succeeded",
    "PENDING": "pending",
    "FAILED": "failed",
    "CANCELLED": "failed",
}

# Headers PayPal sends with each webhook, keyed by verify-API field name
VERIFICATION_HEADERS = {
    "auth_algo": "paypal-auth-algo",
    "cert_url": "paypal-cert-url",
    "transmission_id": "paypal-transmission-id",
    "transmission_sig": "paypal-transmission-sig",
    "transmission_time": "paypal-transmission-time",
}


class PayPalAdapter(PaymentProviderAdapter):
    """Adapter for PayPal checkout orders, captures and refunds."""

    provider = PaymentProvider.PAYPAL
    display_name = "PayPal"
    currencies = ("USD", "EUR", "GBP")
    payment_methods = ("paypal",)
    min_amount = Decimal("0.01")
    max_amount = Decimal("10000")
    supports_refund = True
    supports_capture = True

    # =========================================================================
    # Auth & Transport
    # =========================================================================

    @classmethod
    def get_access_token(cls, trace_id: str | None = None) -> str:
        token = cache.get(ACCESS_TOKEN_CACHE_KEY)
        if token:
            return token

        response = cls._send(
            "POST",
            f"{settings.PAYPAL_BASE_URL}/v1/oauth2/token",
            "oauth_token",
            data={"grant_type": "client_credentials"},
            auth=(settings.PAYPAL_CLIENT_ID, settings.PAYPAL_CLIENT_SECRET),
            headers={"Accept": "application/json"},
            trace_id=trace_id,
        )
        token = response["access_token"]
        ttl = max(int(response.get("expires_in", 0)) - TOKEN_EXPIRY_MARGIN_SECONDS, 1)
        cache.set(ACCESS_TOKEN_CACHE_KEY, token, timeout=ttl)
        return token

    @classmethod
    def _api(
        cls,
        method: str,
        path: str,
        operation: str,
        *,
        json: dict[str, Any] | None = None,
        request_id: str | None = None,
        trace_id: str | None = None,
        log_context: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {cls.get_access_token(trace_id)}",
            "Content-Type": "application/json",
        }
        if request_id:
            headers["PayPal-Request-Id"] = request_id
        return cls._send(
            method,
            f"{settings.PAYPAL_BASE_URL}{path}",
            operation,
            json=json,
            headers=headers,
            trace_id=trace_id,
            log_context=log_context,
        )

    # =========================================================================
    # Core Operations
    # =========================================================================

    @classmethod
    def create_payment(
        cls, params: CreatePaymentParams, trace_id: str | None = None
    ) -> ProviderPaymentResult:
        body = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": params.order_id,
                    "custom_id": params.order_id,
                    "invoice_id": params.order_id,
                    "description": params.description[:127],
                    "amount": {
                        "currency_code": params.currency,
                        "value": f"{params.amount:.2f}",
                    },
                }
            ],
            "application_context": {
                "return_url": params.return_url,
                "cancel_url": params.cancel_url,
                "shipping_preference": "NO_SHIPPING",
                "user_action": "PAY_NOW",
            },
        }

        order = cls._api(
            "POST",
            "/v2/checkout/orders",
            "create_order",
            json=body,
            request_id=IdempotencyKeyGenerator.generate("create_order", params.order_id),
            trace_id=trace_id,
            log_context={"order_id": params.order_id},
        )

        approve_url = next(
            (
                link.get("href")
                for link in order.get("links", [])
                if link.get("rel") in ("approve", "payer-action")
            ),
            None,
        )
        if not order.get("id") or not approve_url:
            raise ProviderRejectedError(
                "PayPal did not return an approvable order",
                provider=cls.provider,
                details={"order_id": params.order_id},
            )

        return ProviderPaymentResult(
            external_id=order["id"],
            redirect_url=approve_url,
            provider_data={"paypalOrderId": order["id"], "status": order.get("status")},
        )

    @classmethod
    def query_status(cls, payment: Payment, trace_id: str | None = None) -> dict[str, Any]:
        if not payment.external_id:
            return {}
        return cls._api(
            "GET",
            f"/v2/checkout/orders/{payment.external_id}",
            "get_order",
            trace_id=trace_id,
            log_context={"order_id": payment.order_id},
        )

    @classmethod
    def capture_payment(cls, payment: Payment, trace_id: str | None = None) -> dict[str, Any]:
        return cls._api(
            "POST",
            f"/v2/checkout/orders/{payment.external_id}/capture",
            "capture_order",
            json={},
            request_id=IdempotencyKeyGenerator.generate("capture", payment.order_id),
            trace_id=trace_id,
            log_context={"order_id": payment.order_id},
        )

    @classmethod
    def refund_reference(cls, payment: Payment) -> str | None:
        """Capture id recorded when the order was captured."""
        return (payment.provider_data or {}).get("captureId")

    @classmethod
    def create_refund(
        cls,
        payment: Payment,
        reference: str,
        amount: Decimal | None = None,
        reason: str | None = None,
        note: str | None = None,
        trace_id: str | None = None,
    ) -> ProviderRefundResult:
        body: dict[str, Any] = {}
        if amount is not None:
            body["amount"] = {"currency_code": payment.currency, "value": f"{amount:.2f}"}
        if note or reason:
            body["note_to_payer"] = (note or reason)[:255]

        attempt = len(payment.refunds) + 1
        response = cls._api(
            "POST",
            f"/v2/payments/captures/{reference}/refund",
            "refund_capture",
            json=body,
            request_id=IdempotencyKeyGenerator.generate("refund", payment.order_id, attempt),
            trace_id=trace_id,
            log_context={"order_id": payment.order_id, "capture_id": reference},
        )

        refunded_value = (response.get("amount") or {}).get("value")
        if refunded_value is not None:
            refunded = Decimal(refunded_value)
        elif amount is not None:
            refunded = amount
        else:
            refunded = payment.remaining_refundable_amount

        return ProviderRefundResult(
            refund_id=response.get("id", ""),
            status=REFUND_STATUS_MAP.get(response.get("status"), "failed"),
            amount=refunded,
            raw=response,
        )

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def _verify_callback(cls, payload: Any, signature_material: Any) -> bool:
        """
        Ask PayPal whether a webhook is authentic.

        Args:
            payload: Parsed webhook event
            signature_material: Request headers (case-insensitive mapping)
        """
        if not isinstance(payload, dict) or not signature_material:
            return False

        body: dict[str, Any] = {}
        for field_name, header in VERIFICATION_HEADERS.items():
            value = signature_material.get(header)
            if not value:
                return False
            body[field_name] = value
        body["webhook_id"] = settings.PAYPAL_WEBHOOK_ID
        body["webhook_event"] = payload

        response = cls._api(
            "POST",
            "/v1/notifications/verify-webhook-signature",
            "verify_webhook",
            json=body,
        )
        return response.get("verification_status") == "SUCCESS"

    @classmethod
    def acknowledge(cls, payload: Any) -> dict[str, Any]:
        return {"status": "SUCCESS"}
