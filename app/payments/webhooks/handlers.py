"""
Webhook handlers for provider payment callbacks.

Each provider has one WebhookHandler registered in WEBHOOK_HANDLERS. A
handler only knows how to parse its provider's callback format; the
shared pipeline in process_webhook verifies, looks up and reconciles.

Pipeline:
    1. parse         - extract order id, payload and signature material
    2. verify        - adapter.verify_callback; failure never touches the DB
    3. lookup        - PaymentLedger.get_by_order_id
    4. reconcile     - ReconciliationService.reconcile(source=webhook)
    5. acknowledge   - provider-specific success body

Usage:
    from payments.webhooks.handlers import process_webhook

    response = process_webhook("momo", request, correlation_id="abc123")
    return JsonResponse(response.body, status=response.status_code)
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, ClassVar

from payments.adapters import get_adapter
from payments.exceptions import (
    PaymentNotFoundError,
    SignatureVerificationError,
    WebhookPayloadError,
)
from payments.ledger import PaymentLedger
from payments.services import ReconciliationService
from payments.state_machines import PaymentProvider, ReconcileSource

if TYPE_CHECKING:
    from django.http import HttpRequest

    from payments.adapters import PaymentProviderAdapter
    from payments.models import Payment


logger = logging.getLogger(__name__)


# =============================================================================
# Types
# =============================================================================


@dataclass
class ParsedWebhook:
    """
    Provider callback reduced to what the pipeline needs.

    Attributes:
        order_id: Order the callback refers to, None if it is not about a payment
        payload: Parsed callback body (stored on the audit event)
        signature_material: Header value(s) the adapter verifies against
        signed_payload: What the signature covers, when it is not payload
    """

    order_id: str | None
    payload: dict[str, Any]
    signature_material: Any = None
    signed_payload: Any = None

    def verification_payload(self) -> Any:
        return self.payload if self.signed_payload is None else self.signed_payload


@dataclass
class WebhookResponse:
    status_code: int
    body: dict[str, Any]


class WebhookHandler(ABC):
    """Parses one provider's callback format."""

    provider: ClassVar[str]

    @classmethod
    def adapter(cls) -> type[PaymentProviderAdapter]:
        return get_adapter(cls.provider)

    @classmethod
    @abstractmethod
    def parse(cls, request: HttpRequest) -> ParsedWebhook:
        """
        Raises:
            WebhookPayloadError: Body cannot be parsed
        """


# =============================================================================
# Handler Registry
# =============================================================================


# Maps provider values to handler classes
WEBHOOK_HANDLERS: dict[str, type[WebhookHandler]] = {}


def register_handler(provider: str) -> Callable:
    """
    Decorator to register a webhook handler for a provider.

    Usage:
        @register_handler(PaymentProvider.MOMO)
        class MoMoWebhookHandler(WebhookHandler):
            ...
    """

    def decorator(handler_cls: type[WebhookHandler]) -> type[WebhookHandler]:
        handler_cls.provider = provider
        WEBHOOK_HANDLERS[provider] = handler_cls
        logger.debug(f"Registered webhook handler for {provider}")
        return handler_cls

    return decorator


def _json_body(request: HttpRequest) -> dict[str, Any]:
    try:
        payload = json.loads(request.body or b"{}")
    except (TypeError, ValueError) as e:
        raise WebhookPayloadError("Webhook body is not valid JSON") from e
    if not isinstance(payload, dict):
        raise WebhookPayloadError("Webhook body must be a JSON object")
    return payload


# =============================================================================
# Provider Handlers
# =============================================================================


@register_handler(PaymentProvider.MOMO)
class MoMoWebhookHandler(WebhookHandler):
    """MoMo IPN: JSON body signed with HMAC-SHA256."""

    @classmethod
    def parse(cls, request: HttpRequest) -> ParsedWebhook:
        payload = _json_body(request)
        order_id = payload.get("orderId")
        if not order_id:
            raise WebhookPayloadError("MoMo IPN missing orderId")
        return ParsedWebhook(order_id=str(order_id), payload=payload)


@register_handler(PaymentProvider.ZALOPAY)
class ZaloPayWebhookHandler(WebhookHandler):
    """ZaloPay callback: {data, mac, type} with data a JSON string."""

    @classmethod
    def parse(cls, request: HttpRequest) -> ParsedWebhook:
        payload = _json_body(request)
        data = payload.get("data")
        if not isinstance(data, str):
            raise WebhookPayloadError("ZaloPay callback missing data")
        try:
            app_trans_id = json.loads(data).get("app_trans_id", "")
        except (AttributeError, ValueError) as e:
            raise WebhookPayloadError("ZaloPay callback data is not valid JSON") from e

        # app_trans_id is "<yymmdd>_<order_id>"
        _, _, order_id = str(app_trans_id).partition("_")
        if not order_id:
            raise WebhookPayloadError("ZaloPay callback missing app_trans_id")
        return ParsedWebhook(order_id=order_id, payload=payload)


@register_handler(PaymentProvider.VNPAY)
class VNPayWebhookHandler(WebhookHandler):
    """VNPay IPN: vnp_* parameters in the query string, form or JSON body."""

    @classmethod
    def parse(cls, request: HttpRequest) -> ParsedWebhook:
        if "vnp_TxnRef" in request.GET:
            payload = request.GET.dict()
        elif "vnp_TxnRef" in request.POST:
            payload = request.POST.dict()
        else:
            payload = _json_body(request)

        order_id = payload.get("vnp_TxnRef")
        if not order_id:
            raise WebhookPayloadError("VNPay IPN missing vnp_TxnRef")
        return ParsedWebhook(order_id=str(order_id), payload=payload)


@register_handler(PaymentProvider.STRIPE)
class StripeWebhookHandler(WebhookHandler):
    """Stripe event: signature covers the raw body."""

    @classmethod
    def parse(cls, request: HttpRequest) -> ParsedWebhook:
        payload = _json_body(request)
        data_object = (payload.get("data") or {}).get("object") or {}
        order_id = (data_object.get("metadata") or {}).get("orderId")
        return ParsedWebhook(
            order_id=order_id,
            payload=payload,
            signature_material=request.headers.get("Stripe-Signature"),
            signed_payload=request.body,
        )


@register_handler(PaymentProvider.PAYPAL)
class PayPalWebhookHandler(WebhookHandler):
    """PayPal event: verified by PayPal from the paypal-* headers."""

    @classmethod
    def parse(cls, request: HttpRequest) -> ParsedWebhook:
        payload = _json_body(request)
        return ParsedWebhook(
            order_id=cls._order_id(payload.get("resource") or {}),
            payload=payload,
            signature_material=request.headers,
        )

    @staticmethod
    def _order_id(resource: dict[str, Any]) -> str | None:
        order_id = resource.get("custom_id") or resource.get("invoice_id")
        if order_id:
            return order_id
        units = resource.get("purchase_units") or []
        if units:
            return units[0].get("custom_id") or units[0].get("reference_id")
        return None


# =============================================================================
# Pipeline
# =============================================================================


def _authenticated(
    handler: type[WebhookHandler], adapter: type[PaymentProviderAdapter], request: HttpRequest
) -> ParsedWebhook:
    """Parse and verify a callback; raises before any ledger access."""
    parsed = handler.parse(request)
    if not adapter.verify_callback(parsed.verification_payload(), parsed.signature_material):
        raise SignatureVerificationError(
            f"Invalid {adapter.display_name} callback signature",
            details={"order_id": parsed.order_id},
        )
    return parsed


def _payment_for(order_id: str, provider: str) -> Payment:
    payment = PaymentLedger.get_by_order_id(order_id, provider=provider)
    if payment is None:
        raise PaymentNotFoundError(
            f"Payment {order_id} not found",
            details={"order_id": order_id, "provider": provider},
        )
    return payment


def process_webhook(
    provider: str, request: HttpRequest, correlation_id: str | None = None
) -> WebhookResponse:
    """
    Run one provider callback through parse, verify, lookup, reconcile.

    Returns:
        WebhookResponse with the provider-specific body:
        - 200: processed (or nothing to do)
        - 400: malformed body or invalid signature
        - 404: unknown provider or order
    """
    handler = WEBHOOK_HANDLERS.get(provider)
    if handler is None:
        return WebhookResponse(404, {"error": f"Unsupported provider: {provider}"})

    adapter = handler.adapter()
    log_context = {"provider": provider, "correlation_id": correlation_id}

    try:
        parsed = _authenticated(handler, adapter, request)
    except (WebhookPayloadError, SignatureVerificationError) as e:
        logger.warning(
            "Webhook rejected",
            extra={**log_context, "error_code": e.error_code, "error": e.message},
        )
        return WebhookResponse(400, adapter.reject_signature())

    log_context["order_id"] = parsed.order_id

    if parsed.order_id is None:
        logger.info("Webhook carries no order; acknowledging", extra=log_context)
        return WebhookResponse(200, adapter.acknowledge(parsed.payload))

    try:
        payment = _payment_for(parsed.order_id, provider)
    except PaymentNotFoundError:
        logger.warning("Webhook for unknown order", extra=log_context)
        return WebhookResponse(404, adapter.reject_not_found())

    outcome = ReconciliationService.reconcile(
        payment,
        parsed.payload,
        source=ReconcileSource.WEBHOOK,
        correlation_id=correlation_id,
    )
    logger.info(
        "Webhook processed",
        extra={**log_context, "outcome": outcome.value},
    )
    return WebhookResponse(200, adapter.acknowledge(parsed.payload))
