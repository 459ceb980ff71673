"""
MoMo e-wallet adapter.

Requests and IPN callbacks are signed with HMAC-SHA256 over an
alphabetical "key=value&..." string built from a fixed field list.
MoMo has no refund or manual capture API exposed here.
"""

from __future__ import annotations

import base64
import json
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.conf import settings

from payments.exceptions import ProviderRejectedError
from payments.state_machines import PaymentProvider

from .base import (
    CreatePaymentParams,
    PaymentProviderAdapter,
    ProviderPaymentResult,
    hmac_sha256_hex,
    signatures_match,
)

if TYPE_CHECKING:
    from payments.models import Payment


CREATE_SIGNATURE_FIELDS = (
    "accessKey",
    "amount",
    "extraData",
    "ipnUrl",
    "orderId",
    "orderInfo",
    "partnerCode",
    "redirectUrl",
    "requestId",
    "requestType",
)

IPN_SIGNATURE_FIELDS = (
    "accessKey",
    "amount",
    "extraData",
    "message",
    "orderId",
    "orderInfo",
    "orderType",
    "partnerCode",
    "payType",
    "requestId",
    "responseTime",
    "resultCode",
    "transId",
)

QUERY_SIGNATURE_FIELDS = ("accessKey", "orderId", "partnerCode", "requestId")


class MoMoAdapter(PaymentProviderAdapter):
    """Adapter for the MoMo v2 gateway API."""

    provider = PaymentProvider.MOMO
    display_name = "MoMo"
    currencies = ("VND",)
    payment_methods = ("captureWallet", "payWithATM", "payWithCC")
    min_amount = Decimal("10000")
    max_amount = Decimal("50000000")

    @classmethod
    def sign(cls, values: dict[str, Any], fields: tuple[str, ...]) -> str:
        """HMAC-SHA256 over "field=value&..." in the given field order."""
        values = {**values, "accessKey": settings.MOMO_ACCESS_KEY}
        raw = "&".join(f"{name}={_as_text(values.get(name))}" for name in fields)
        return hmac_sha256_hex(settings.MOMO_SECRET_KEY, raw)

    @classmethod
    def create_payment(
        cls, params: CreatePaymentParams, trace_id: str | None = None
    ) -> ProviderPaymentResult:
        extra_data = ""
        if params.metadata:
            extra_data = base64.b64encode(json.dumps(params.metadata).encode()).decode()

        body: dict[str, Any] = {
            "partnerCode": settings.MOMO_PARTNER_CODE,
            "requestId": params.order_id,
            "amount": int(params.amount),
            "orderId": params.order_id,
            "orderInfo": params.description,
            "redirectUrl": params.return_url,
            "ipnUrl": params.notify_url,
            "requestType": params.payment_method,
            "extraData": extra_data,
            "autoCapture": True,
            "lang": "vi",
        }
        body["signature"] = cls.sign(body, CREATE_SIGNATURE_FIELDS)

        response = cls._send(
            "POST",
            f"{settings.MOMO_ENDPOINT}/v2/gateway/api/create",
            "create_payment",
            json=body,
            trace_id=trace_id,
            log_context={"order_id": params.order_id},
        )

        if response.get("resultCode") != 0:
            raise ProviderRejectedError(
                response.get("message") or "MoMo rejected the payment",
                provider=cls.provider,
                provider_code=str(response.get("resultCode")),
                details={"order_id": params.order_id},
            )

        return ProviderPaymentResult(
            redirect_url=response.get("payUrl"),
            qr_payload=response.get("qrCodeUrl"),
            provider_data={
                "requestId": response.get("requestId", params.order_id),
                "payUrl": response.get("payUrl"),
                "deeplink": response.get("deeplink"),
                "qrCodeUrl": response.get("qrCodeUrl"),
            },
        )

    @classmethod
    def query_status(cls, payment: Payment, trace_id: str | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {
            "partnerCode": settings.MOMO_PARTNER_CODE,
            "requestId": payment.order_id,
            "orderId": payment.order_id,
            "lang": "vi",
        }
        body["signature"] = cls.sign(body, QUERY_SIGNATURE_FIELDS)

        return cls._send(
            "POST",
            f"{settings.MOMO_ENDPOINT}/v2/gateway/api/query",
            "query_status",
            json=body,
            trace_id=trace_id,
            log_context={"order_id": payment.order_id},
        )

    @classmethod
    def _verify_callback(cls, payload: Any, signature_material: Any) -> bool:
        if not isinstance(payload, dict):
            return False
        expected = cls.sign(payload, IPN_SIGNATURE_FIELDS)
        return signatures_match(expected, payload.get("signature"))

    @classmethod
    def acknowledge(cls, payload: Any) -> dict[str, Any]:
        payload = payload if isinstance(payload, dict) else {}
        return {
            "partnerCode": payload.get("partnerCode", settings.MOMO_PARTNER_CODE),
            "orderId": payload.get("orderId"),
            "requestId": payload.get("requestId"),
            "amount": payload.get("amount"),
            "responseTime": payload.get("responseTime"),
            "message": "success",
            "resultCode": 0,
        }

    @classmethod
    def reject_signature(cls) -> dict[str, Any]:
        return {"resultCode": 1, "message": "Invalid signature"}

    @classmethod
    def reject_not_found(cls) -> dict[str, Any]:
        return {"resultCode": 1, "message": "Order not found"}


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Decimal):
        return str(int(value)) if value == value.to_integral_value() else str(value)
    return str(value)
