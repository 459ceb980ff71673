"""
ZaloPay adapter.

Outbound requests carry a "mac" (HMAC-SHA256 with key1) over a
pipe-joined field list. Callbacks carry a JSON string in "data" and a
mac over that exact string computed with key2.
"""

from __future__ import annotations

import json
import time
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

from django.conf import settings
from django.utils import timezone

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

# app_trans_id date prefix is in Vietnam local time
PROVIDER_TIMEZONE = ZoneInfo("Asia/Ho_Chi_Minh")


class ZaloPayAdapter(PaymentProviderAdapter):
    """Adapter for the ZaloPay v2 open API."""

    provider = PaymentProvider.ZALOPAY
    display_name = "ZaloPay"
    currencies = ("VND",)
    payment_methods = ("zalopayapp", "ATM", "CC")
    min_amount = Decimal("1000")
    max_amount = Decimal("100000000")

    @classmethod
    def build_app_trans_id(cls, order_id: str, now=None) -> str:
        now = (now or timezone.now()).astimezone(PROVIDER_TIMEZONE)
        return f"{now:%y%m%d}_{order_id}"

    @classmethod
    def create_payment(
        cls, params: CreatePaymentParams, trace_id: str | None = None
    ) -> ProviderPaymentResult:
        app_id = str(settings.ZALOPAY_APP_ID)
        app_trans_id = cls.build_app_trans_id(params.order_id)
        app_user = params.user_reference or "user"
        app_time = int(time.time() * 1000)
        amount = int(params.amount)
        embed_data = json.dumps(
            {"redirecturl": params.return_url, "orderId": params.order_id},
            separators=(",", ":"),
        )
        item = json.dumps(
            [
                {
                    "itemid": params.order_id,
                    "itemname": params.description,
                    "itemprice": amount,
                    "itemquantity": 1,
                }
            ],
            separators=(",", ":"),
        )

        mac_input = "|".join(
            [app_id, app_trans_id, app_user, str(amount), str(app_time), embed_data, item]
        )
        form = {
            "app_id": app_id,
            "app_trans_id": app_trans_id,
            "app_user": app_user,
            "app_time": app_time,
            "amount": amount,
            "item": item,
            "embed_data": embed_data,
            "description": params.description,
            "bank_code": "" if params.payment_method == "zalopayapp" else params.payment_method,
            "callback_url": params.notify_url,
            "mac": hmac_sha256_hex(settings.ZALOPAY_KEY1, mac_input),
        }

        response = cls._send(
            "POST",
            f"{settings.ZALOPAY_ENDPOINT}/v2/create",
            "create_payment",
            data=form,
            trace_id=trace_id,
            log_context={"order_id": params.order_id, "app_trans_id": app_trans_id},
        )

        if response.get("return_code") != 1:
            raise ProviderRejectedError(
                response.get("return_message") or "ZaloPay rejected the payment",
                provider=cls.provider,
                provider_code=str(response.get("sub_return_code", response.get("return_code"))),
                details={"order_id": params.order_id},
            )

        return ProviderPaymentResult(
            external_id=app_trans_id,
            redirect_url=response.get("order_url"),
            qr_payload=response.get("qr_code"),
            provider_data={
                "app_trans_id": app_trans_id,
                "zp_trans_token": response.get("zp_trans_token"),
                "order_url": response.get("order_url"),
            },
        )

    @classmethod
    def query_status(cls, payment: Payment, trace_id: str | None = None) -> dict[str, Any]:
        app_trans_id = (payment.provider_data or {}).get("app_trans_id") or payment.external_id
        if not app_trans_id:
            return {}

        app_id = str(settings.ZALOPAY_APP_ID)
        form = {
            "app_id": app_id,
            "app_trans_id": app_trans_id,
            "mac": hmac_sha256_hex(
                settings.ZALOPAY_KEY1,
                f"{app_id}|{app_trans_id}|{settings.ZALOPAY_KEY1}",
            ),
        }
        return cls._send(
            "POST",
            f"{settings.ZALOPAY_ENDPOINT}/v2/query",
            "query_status",
            data=form,
            trace_id=trace_id,
            log_context={"order_id": payment.order_id, "app_trans_id": app_trans_id},
        )

    @classmethod
    def _verify_callback(cls, payload: Any, signature_material: Any) -> bool:
        if not isinstance(payload, dict):
            return False
        data = payload.get("data")
        if not isinstance(data, str):
            return False
        expected = hmac_sha256_hex(settings.ZALOPAY_KEY2, data)
        return signatures_match(expected, payload.get("mac"))

    @classmethod
    def acknowledge(cls, payload: Any) -> dict[str, Any]:
        return {"return_code": 1, "return_message": "success"}

    @classmethod
    def reject_signature(cls) -> dict[str, Any]:
        return {"return_code": -1, "return_message": "Invalid signature"}

    @classmethod
    def reject_not_found(cls) -> dict[str, Any]:
        return {"return_code": -1, "return_message": "Order not found"}
