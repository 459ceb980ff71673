"""
VNPay bank gateway adapter.

Payment URLs and callbacks are signed with HMAC-SHA512 over the
alphabetically sorted, URL-encoded vnp_* parameters (spaces as "+").
Amounts travel as integer VND multiplied by 100.
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from urllib.parse import quote_plus, urlencode
from zoneinfo import ZoneInfo

from django.conf import settings
from django.utils import timezone

from payments.state_machines import PaymentProvider

from .base import (
    CreatePaymentParams,
    PaymentProviderAdapter,
    ProviderPaymentResult,
    hmac_sha512_hex,
    signatures_match,
)

if TYPE_CHECKING:
    from payments.models import Payment

VNPAY_VERSION = "2.1.0"
PROVIDER_TIMEZONE = ZoneInfo("Asia/Ho_Chi_Minh")
HASH_FIELDS = frozenset({"vnp_SecureHash", "vnp_SecureHashType"})


class VNPayAdapter(PaymentProviderAdapter):
    """Adapter for VNPay payment URL and querydr APIs."""

    provider = PaymentProvider.VNPAY
    display_name = "VNPay"
    currencies = ("VND",)
    payment_methods = ("vnpay", "VNPAYQR", "VNBANK", "INTCARD")
    min_amount = Decimal("10000")
    max_amount = Decimal("500000000")

    @classmethod
    def canonical_query(cls, params: dict[str, Any]) -> str:
        """Sorted, URL-encoded query string of non-empty vnp_* params."""
        items = sorted(
            (key, str(value))
            for key, value in params.items()
            if key.startswith("vnp_") and key not in HASH_FIELDS and value not in (None, "")
        )
        return urlencode(items, quote_via=quote_plus)

    @classmethod
    def sign(cls, params: dict[str, Any]) -> str:
        return hmac_sha512_hex(settings.VNPAY_HASH_SECRET, cls.canonical_query(params))

    @classmethod
    def _timestamp(cls, offset: timedelta = timedelta(0)) -> str:
        moment = timezone.now() + offset
        return moment.astimezone(PROVIDER_TIMEZONE).strftime("%Y%m%d%H%M%S")

    @classmethod
    def create_payment(
        cls, params: CreatePaymentParams, trace_id: str | None = None
    ) -> ProviderPaymentResult:
        create_date = cls._timestamp()
        expire_date = cls._timestamp(
            timedelta(minutes=getattr(settings, "PAYMENT_EXPIRY_MINUTES", 15))
        )
        vnp_params: dict[str, Any] = {
            "vnp_Version": VNPAY_VERSION,
            "vnp_Command": "pay",
            "vnp_TmnCode": settings.VNPAY_TMN_CODE,
            "vnp_Amount": int(params.amount * 100),
            "vnp_CurrCode": "VND",
            "vnp_TxnRef": params.order_id,
            "vnp_OrderInfo": params.description,
            "vnp_OrderType": "other",
            "vnp_Locale": "vn",
            "vnp_ReturnUrl": params.return_url,
            "vnp_IpAddr": params.client_ip,
            "vnp_CreateDate": create_date,
            "vnp_ExpireDate": expire_date,
        }
        if params.payment_method != "vnpay":
            vnp_params["vnp_BankCode"] = params.payment_method

        query = cls.canonical_query(vnp_params)
        secure_hash = hmac_sha512_hex(settings.VNPAY_HASH_SECRET, query)
        payment_url = f"{settings.VNPAY_URL}?{query}&vnp_SecureHash={secure_hash}"

        cls.get_logger().info(
            "VNPay payment URL built",
            extra={"provider": cls.provider, "order_id": params.order_id, "trace_id": trace_id},
        )
        return ProviderPaymentResult(
            redirect_url=payment_url,
            provider_data={"vnp_TxnRef": params.order_id, "vnp_CreateDate": create_date},
        )

    @classmethod
    def query_status(cls, payment: Payment, trace_id: str | None = None) -> dict[str, Any]:
        provider_data = payment.provider_data or {}
        transaction_date = provider_data.get("vnp_CreateDate")
        if not transaction_date:
            return {}

        body: dict[str, Any] = {
            "vnp_RequestId": uuid.uuid4().hex,
            "vnp_Version": VNPAY_VERSION,
            "vnp_Command": "querydr",
            "vnp_TmnCode": settings.VNPAY_TMN_CODE,
            "vnp_TxnRef": payment.order_id,
            "vnp_OrderInfo": f"Query order {payment.order_id}",
            "vnp_TransactionDate": transaction_date,
            "vnp_CreateDate": cls._timestamp(),
            "vnp_IpAddr": "127.0.0.1",
        }
        body["vnp_SecureHash"] = cls.sign(body)

        return cls._send(
            "POST",
            settings.VNPAY_API_URL,
            "query_status",
            json=body,
            trace_id=trace_id,
            log_context={"order_id": payment.order_id},
        )

    @classmethod
    def _verify_callback(cls, payload: Any, signature_material: Any) -> bool:
        if not isinstance(payload, dict):
            return False
        return signatures_match(cls.sign(payload), payload.get("vnp_SecureHash"))

    @classmethod
    def acknowledge(cls, payload: Any) -> dict[str, Any]:
        return {"RspCode": "00", "Message": "success"}

    @classmethod
    def reject_signature(cls) -> dict[str, Any]:
        return {"RspCode": "97", "Message": "Invalid signature"}

    @classmethod
    def reject_not_found(cls) -> dict[str, Any]:
        return {"RspCode": "01", "Message": "Order not found"}
