"""
Provider payload to canonical status mapping.

Each (provider, source) pair has one mapper registered in STATUS_MAPPERS.
A mapper reads an opaque provider payload (a webhook body, a status
query response, or a capture response) and returns a StatusMapping, or
None when the payload carries no actionable status.

Usage:
    from payments.services.status_mapping import map_status

    mapping = map_status("momo", "webhook", {"resultCode": 0, ...})
    if mapping is not None:
        mapping.status  # PaymentStatus.COMPLETED
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable

from payments.state_machines import PaymentProvider, PaymentStatus, ReconcileSource


@dataclass
class StatusMapping:
    """
    Canonical interpretation of one provider payload.

    Attributes:
        status: Canonical PaymentStatus
        paid: Whether the payload confirms money was taken
        error_code: Provider error code for failure statuses
        error_message: Human-readable failure reason
        message: Summary recorded on the audit event
        provider_data: Payload fields worth merging into provider_data
        external_id: Provider transaction reference, if the payload carries one
    """

    status: str
    paid: bool = False
    error_code: str | None = None
    error_message: str | None = None
    message: str = ""
    provider_data: dict[str, Any] = field(default_factory=dict)
    external_id: str | None = None


Mapper = Callable[[dict[str, Any]], "StatusMapping | None"]

STATUS_MAPPERS: dict[tuple[str, str], Mapper] = {}


def register_mapper(provider: str, *sources: str) -> Callable[[Mapper], Mapper]:
    """Decorator to register a mapper for one provider and one or more sources."""

    def decorator(func: Mapper) -> Mapper:
        for source in sources:
            STATUS_MAPPERS[(provider, source)] = func
        return func

    return decorator


def map_status(provider: str, source: str, payload: dict[str, Any] | None) -> StatusMapping | None:
    """Map a payload to a StatusMapping; None if unmapped or not actionable."""
    if not payload:
        return None
    mapper = STATUS_MAPPERS.get((provider, source))
    if mapper is None:
        return None
    return mapper(payload)


def _completed(message: str, **kwargs: Any) -> StatusMapping:
    return StatusMapping(status=PaymentStatus.COMPLETED, paid=True, message=message, **kwargs)


def _failed(status: str, code: Any, message: str, **kwargs: Any) -> StatusMapping:
    return StatusMapping(
        status=status,
        error_code=str(code) if code is not None else None,
        error_message=message,
        message=message,
        **kwargs,
    )


# =============================================================================
# MoMo
# =============================================================================

MOMO_FAILURE_MESSAGES = {
    9000: "Transaction rejected by user",
    8000: "Transaction timeout",
    7000: "Transaction rejected by system",
    1000: "Transaction rejected by issuer",
}


def _momo_details(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        key: payload[key]
        for key in ("transId", "payType", "resultCode", "responseTime")
        if payload.get(key) is not None
    }


def _momo_trans_id(payload: dict[str, Any]) -> str | None:
    trans_id = payload.get("transId")
    return str(trans_id) if trans_id not in (None, "", 0) else None


@register_mapper(PaymentProvider.MOMO, ReconcileSource.WEBHOOK)
def map_momo_webhook(payload: dict[str, Any]) -> StatusMapping | None:
    if "resultCode" not in payload:
        return None
    result_code = int(payload["resultCode"])
    details = _momo_details(payload)
    if result_code == 0:
        return _completed(
            "MoMo payment successful",
            provider_data=details,
            external_id=_momo_trans_id(payload),
        )
    message = MOMO_FAILURE_MESSAGES.get(
        result_code, f"MoMo payment failed with code {result_code}"
    )
    return _failed(PaymentStatus.FAILED, result_code, message, provider_data=details)


@register_mapper(PaymentProvider.MOMO, ReconcileSource.POLL)
def map_momo_query(payload: dict[str, Any]) -> StatusMapping | None:
    if "resultCode" not in payload:
        return None
    result_code = int(payload["resultCode"])
    details = _momo_details(payload)
    if result_code == 0:
        return _completed(
            "MoMo payment successful",
            provider_data=details,
            external_id=_momo_trans_id(payload),
        )
    if result_code == 1000:
        return _failed(
            PaymentStatus.FAILED,
            result_code,
            MOMO_FAILURE_MESSAGES[1000],
            provider_data=details,
        )
    return None


# =============================================================================
# ZaloPay
# =============================================================================


@register_mapper(PaymentProvider.ZALOPAY, ReconcileSource.WEBHOOK)
def map_zalopay_callback(payload: dict[str, Any]) -> StatusMapping | None:
    # A verified callback is only sent for successful payments
    data = payload.get("data")
    if isinstance(data, str):
        data = json.loads(data)
    if not isinstance(data, dict):
        return None
    zp_trans_id = data.get("zp_trans_id")
    return _completed(
        "ZaloPay payment successful",
        provider_data={
            "zp_trans_id": zp_trans_id,
            "app_trans_id": data.get("app_trans_id"),
        },
    )


@register_mapper(PaymentProvider.ZALOPAY, ReconcileSource.POLL)
def map_zalopay_query(payload: dict[str, Any]) -> StatusMapping | None:
    return_code = payload.get("return_code")
    if return_code == 1:
        return _completed(
            "ZaloPay payment successful",
            provider_data={"zp_trans_id": payload.get("zp_trans_id")},
        )
    if return_code == 2:
        return _failed(
            PaymentStatus.FAILED,
            payload.get("sub_return_code", return_code),
            payload.get("return_message") or "ZaloPay payment failed",
        )
    return None


# =============================================================================
# VNPay
# =============================================================================

VNPAY_RESPONSE_MESSAGES = {
    "07": "Transaction deducted but suspected of fraud",
    "09": "Card or account not registered for internet banking",
    "10": "Customer entered wrong card information more than 3 times",
    "11": "Payment deadline expired",
    "12": "Customer account is locked",
    "13": "Customer entered wrong OTP",
    "24": "Customer cancelled transaction",
    "51": "Customer account does not have enough balance",
    "65": "Customer account has exceeded daily transaction limit",
    "75": "Bank is under maintenance",
    "79": "Customer entered wrong payment password too many times",
}


def _vnpay_details(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        key: payload[key]
        for key in (
            "vnp_TransactionNo",
            "vnp_BankCode",
            "vnp_CardType",
            "vnp_PayDate",
            "vnp_ResponseCode",
            "vnp_TransactionStatus",
        )
        if payload.get(key) not in (None, "")
    }


def _vnpay_failure(code: str, payload: dict[str, Any]) -> StatusMapping:
    message = VNPAY_RESPONSE_MESSAGES.get(code, f"VNPay payment failed with code {code}")
    return _failed(PaymentStatus.FAILED, code, message, provider_data=_vnpay_details(payload))


def _vnpay_success(payload: dict[str, Any]) -> StatusMapping:
    return _completed(
        "VNPay payment successful",
        provider_data=_vnpay_details(payload),
        external_id=payload.get("vnp_TransactionNo") or None,
    )


@register_mapper(PaymentProvider.VNPAY, ReconcileSource.WEBHOOK)
def map_vnpay_ipn(payload: dict[str, Any]) -> StatusMapping | None:
    response_code = payload.get("vnp_ResponseCode")
    if response_code is None:
        return None
    transaction_status = payload.get("vnp_TransactionStatus")

    if response_code == "00":
        if transaction_status and transaction_status != "00":
            return _vnpay_failure(transaction_status, payload)
        return _vnpay_success(payload)
    if response_code == "24":
        return _failed(
            PaymentStatus.CANCELLED,
            response_code,
            VNPAY_RESPONSE_MESSAGES["24"],
            provider_data=_vnpay_details(payload),
        )
    if response_code == "11":
        return _failed(
            PaymentStatus.EXPIRED,
            response_code,
            VNPAY_RESPONSE_MESSAGES["11"],
            provider_data=_vnpay_details(payload),
        )
    return _vnpay_failure(response_code, payload)


@register_mapper(PaymentProvider.VNPAY, ReconcileSource.POLL)
def map_vnpay_query(payload: dict[str, Any]) -> StatusMapping | None:
    transaction_status = payload.get("vnp_TransactionStatus")
    if transaction_status:
        if transaction_status == "00":
            return _vnpay_success(payload)
        if transaction_status == "01":
            return None
        return _vnpay_failure(transaction_status, payload)

    response_code = payload.get("vnp_ResponseCode")
    if response_code is None or response_code == "02":
        return None
    if response_code == "00":
        return _vnpay_success(payload)
    return _vnpay_failure(response_code, payload)


# =============================================================================
# Stripe
# =============================================================================


def _map_payment_intent(intent: dict[str, Any]) -> StatusMapping | None:
    intent_id = intent.get("id")
    intent_status = intent.get("status")
    details = {"paymentIntentId": intent_id, "status": intent_status}

    if intent_status == "succeeded":
        return _completed("Stripe payment succeeded", provider_data=details, external_id=intent_id)
    if intent_status == "processing":
        return StatusMapping(
            status=PaymentStatus.PROCESSING,
            message="Stripe payment processing",
            provider_data=details,
            external_id=intent_id,
        )
    if intent_status == "canceled":
        return _failed(
            PaymentStatus.CANCELLED,
            intent.get("cancellation_reason") or "canceled",
            "Stripe payment canceled",
            provider_data=details,
            external_id=intent_id,
        )
    if intent_status == "requires_payment_method":
        last_error = intent.get("last_payment_error")
        if not last_error:
            return None
        return _failed(
            PaymentStatus.FAILED,
            last_error.get("decline_code") or last_error.get("code"),
            last_error.get("message") or "Stripe payment failed",
            provider_data=details,
            external_id=intent_id,
        )
    return None


@register_mapper(PaymentProvider.STRIPE, ReconcileSource.WEBHOOK)
def map_stripe_event(payload: dict[str, Any]) -> StatusMapping | None:
    event_type = payload.get("type", "")
    intent = (payload.get("data") or {}).get("object") or {}
    if not event_type.startswith("payment_intent.") or intent.get("object") not in (
        None,
        "payment_intent",
    ):
        return None

    mapping = _map_payment_intent(intent)
    if mapping is not None:
        mapping.message = event_type
    return mapping


@register_mapper(PaymentProvider.STRIPE, ReconcileSource.POLL, ReconcileSource.CAPTURE)
def map_stripe_intent(payload: dict[str, Any]) -> StatusMapping | None:
    return _map_payment_intent(payload)


# =============================================================================
# PayPal
# =============================================================================


def _paypal_capture_id(order: dict[str, Any]) -> str | None:
    try:
        return order["purchase_units"][0]["payments"]["captures"][0]["id"]
    except (KeyError, IndexError, TypeError):
        return None


@register_mapper(PaymentProvider.PAYPAL, ReconcileSource.WEBHOOK)
def map_paypal_event(payload: dict[str, Any]) -> StatusMapping | None:
    event_type = payload.get("event_type")
    resource = payload.get("resource") or {}

    if event_type == "PAYMENT.CAPTURE.COMPLETED":
        return _completed(event_type, provider_data={"captureId": resource.get("id")})
    if event_type == "PAYMENT.CAPTURE.DENIED":
        return _failed(
            PaymentStatus.FAILED,
            "CAPTURE_DENIED",
            "PayPal capture denied",
            provider_data={"captureId": resource.get("id")},
        )
    if event_type == "PAYMENT.CAPTURE.PENDING":
        return StatusMapping(
            status=PaymentStatus.PROCESSING,
            message=event_type,
            provider_data={"captureId": resource.get("id")},
        )
    if event_type == "CHECKOUT.ORDER.VOIDED":
        return _failed(PaymentStatus.CANCELLED, "ORDER_VOIDED", "PayPal order voided")
    if event_type == "CHECKOUT.ORDER.APPROVED":
        return StatusMapping(status=PaymentStatus.PENDING, message=event_type)
    return None


@register_mapper(PaymentProvider.PAYPAL, ReconcileSource.POLL, ReconcileSource.CAPTURE)
def map_paypal_order(payload: dict[str, Any]) -> StatusMapping | None:
    order_status = payload.get("status")
    if order_status == "COMPLETED":
        capture_id = _paypal_capture_id(payload)
        provider_data = {"status": order_status}
        if capture_id:
            provider_data["captureId"] = capture_id
        return _completed("PayPal order completed", provider_data=provider_data)
    if order_status == "VOIDED":
        return _failed(PaymentStatus.CANCELLED, "ORDER_VOIDED", "PayPal order voided")
    return None
