"""
Stripe adapter: PaymentIntents, captures and refunds.

Stripe is the card-present path for USD/EUR/GBP. ``create_payment``
returns a client_secret for Stripe.js rather than a redirect; the intent
then settles through ``payment_intent.*`` webhooks or a capture call.
Amounts cross the wire in minor units.

Every SDK call runs through ``_call``, which applies the key and timeout
from settings (STRIPE_SECRET_KEY, STRIPE_API_TIMEOUT_SECONDS), logs the
round trip with its duration, and maps ``stripe.StripeError`` subclasses
onto the provider error taxonomy.
"""

from __future__ import annotations

import time
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import stripe
from django.conf import settings

from payments.exceptions import (
    ProviderCommunicationError,
    ProviderRejectedError,
    ProviderTimeoutError,
)
from payments.state_machines import PaymentProvider

from .base import (
    CreatePaymentParams,
    IdempotencyKeyGenerator,
    PaymentProviderAdapter,
    ProviderPaymentResult,
    ProviderRefundResult,
    from_minor_units,
    to_minor_units,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from payments.models import Payment

# Values Stripe accepts for Refund.reason; free text goes to metadata only
STRIPE_REFUND_REASONS = frozenset({"duplicate", "fraudulent", "requested_by_customer"})

REFUND_STATUS_MAP = {
    "succeeded": "succeeded",
    "pending": "pending",
    "requires_action": "pending",
    "failed": "failed",
    "canceled": "failed",
}


class StripeAdapter(PaymentProviderAdapter):
    provider = PaymentProvider.STRIPE
    display_name = "Stripe"
    currencies = ("USD", "EUR", "GBP")
    payment_methods = ("card",)
    min_amount = Decimal("0.50")
    max_amount = Decimal("999999.99")
    supports_refund = True
    supports_capture = True

    @staticmethod
    def _configure_stripe() -> None:
        stripe.api_key = settings.STRIPE_SECRET_KEY
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    @classmethod
    def _call(cls, operation: str, fn: Callable[[], Any], **log_context: Any) -> Any:
        """Run one SDK call with logging and error translation."""
        cls._configure_stripe()
        logger = cls.get_logger()
        log_context = {"operation": operation, **log_context}

        started = time.monotonic()
        logger.info("Calling Stripe", extra=log_context)
        try:
            obj = fn()
        except Exception as e:
            cls._handle_stripe_error(e, log_context, (time.monotonic() - started) * 1000)
            raise

        logger.info(
            "Stripe call finished",
            extra={
                **log_context,
                "stripe_id": getattr(obj, "id", None),
                "status": getattr(obj, "status", None),
                "duration_ms": (time.monotonic() - started) * 1000,
            },
        )
        return obj

    @classmethod
    def create_payment(
        cls, params: CreatePaymentParams, trace_id: str | None = None
    ) -> ProviderPaymentResult:
        amount_minor = to_minor_units(params.amount, params.currency)
        idempotency_key = IdempotencyKeyGenerator.generate("create_intent", params.order_id)

        intent = cls._call(
            "create_payment_intent",
            lambda: stripe.PaymentIntent.create(
                amount=amount_minor,
                currency=params.currency.lower(),
                description=params.description,
                metadata={"orderId": params.order_id, **_stringify(params.metadata)},
                automatic_payment_methods={"enabled": True},
                idempotency_key=idempotency_key,
            ),
            order_id=params.order_id,
            amount_minor=amount_minor,
            currency=params.currency,
            idempotency_key=idempotency_key,
            trace_id=trace_id,
        )
        return ProviderPaymentResult(
            external_id=intent.id,
            client_secret=intent.client_secret,
            provider_data={"paymentIntentId": intent.id, "status": intent.status},
        )

    @classmethod
    def query_status(cls, payment: Payment, trace_id: str | None = None) -> dict[str, Any]:
        # No intent yet means nothing to ask Stripe about
        if not payment.external_id:
            return {}

        intent = cls._call(
            "retrieve_payment_intent",
            lambda: stripe.PaymentIntent.retrieve(payment.external_id),
            order_id=payment.order_id,
            trace_id=trace_id,
        )
        return intent.to_dict()

    @classmethod
    def capture_payment(cls, payment: Payment, trace_id: str | None = None) -> dict[str, Any]:
        idempotency_key = IdempotencyKeyGenerator.generate("capture", payment.order_id)
        intent = cls._call(
            "capture_payment_intent",
            lambda: stripe.PaymentIntent.capture(
                payment.external_id, idempotency_key=idempotency_key
            ),
            order_id=payment.order_id,
            idempotency_key=idempotency_key,
            trace_id=trace_id,
        )
        return intent.to_dict()

    @classmethod
    def refund_reference(cls, payment: Payment) -> str | None:
        return payment.external_id

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
        """
        Refund against the PaymentIntent, in full when ``amount`` is None.

        The idempotency key includes the ordinal of this refund, so a
        retry of the same request reuses its key while the next partial
        refund on the order gets a fresh one.
        """
        ordinal = len(payment.refunds) + 1
        idempotency_key = IdempotencyKeyGenerator.generate("refund", payment.order_id, ordinal)

        refund_params: dict[str, Any] = {
            "payment_intent": reference,
            "metadata": {
                "orderId": payment.order_id,
                "reason": reason or "",
                "note": note or "",
            },
        }
        if amount is not None:
            refund_params["amount"] = to_minor_units(amount, payment.currency)
        if reason in STRIPE_REFUND_REASONS:
            refund_params["reason"] = reason

        refund = cls._call(
            "create_refund",
            lambda: stripe.Refund.create(idempotency_key=idempotency_key, **refund_params),
            order_id=payment.order_id,
            amount=str(amount) if amount is not None else None,
            idempotency_key=idempotency_key,
            trace_id=trace_id,
        )
        return ProviderRefundResult(
            refund_id=refund.id,
            status=REFUND_STATUS_MAP.get(refund.status, "failed"),
            amount=from_minor_units(refund.amount, payment.currency),
            raw=refund.to_dict(),
        )

    @classmethod
    def _verify_callback(cls, payload: Any, signature_material: Any) -> bool:
        # payload is the raw body; signature_material the Stripe-Signature header
        if not signature_material:
            return False
        try:
            stripe.Webhook.construct_event(
                payload,
                signature_material,
                settings.STRIPE_WEBHOOK_SECRET,
            )
        except stripe.SignatureVerificationError:
            return False
        return True

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Re-raise a Stripe SDK error as a provider error.

        Card and invalid-request errors are rejections (not retryable);
        rate limiting is a timeout; connection, authentication and any
        other StripeError are communication failures. Non-Stripe errors
        propagate unchanged.
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, (stripe.CardError, stripe.InvalidRequestError)):
            code = getattr(error, "decline_code", None) or error.code
            logger.warning(
                "Stripe rejected the request",
                extra={**log_context, "stripe_code": code},
            )
            raise ProviderRejectedError(
                str(error.user_message or error),
                provider=cls.provider,
                provider_code=code,
            ) from error

        if isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise ProviderTimeoutError(
                "Stripe rate limit exceeded. Please retry.",
                provider=cls.provider,
                provider_code="rate_limit",
            ) from error

        if isinstance(error, stripe.APIConnectionError):
            logger.error("Could not reach Stripe", extra=log_context, exc_info=True)
            raise ProviderCommunicationError(
                "Could not connect to Stripe. Please retry.",
                provider=cls.provider,
                provider_code="api_connection_error",
            ) from error

        if isinstance(error, stripe.AuthenticationError):
            logger.critical("Stripe authentication failed", extra=log_context)
            raise ProviderCommunicationError(
                "Stripe authentication failed",
                provider=cls.provider,
                provider_code="authentication_error",
            ) from error

        if isinstance(error, stripe.StripeError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise ProviderCommunicationError(
                str(error.user_message or error),
                provider=cls.provider,
                provider_code=getattr(error, "code", None),
            ) from error

        logger.error("Unexpected error during Stripe call", extra=log_context, exc_info=True)
        raise error


def _stringify(metadata: dict[str, Any]) -> dict[str, str]:
    return {str(key): str(value) for key, value in (metadata or {}).items()}
