"""
Payment orchestrator service for coordinating payment operations.

This module provides the PaymentOrchestrator class which serves as the
entry point for payment operations initiated by API clients. It
coordinates between the provider adapters, the ledger and the
reconciliation service.

The orchestrator:
- Validates provider, method, currency and amount limits
- Creates the Payment row before calling the provider
- Polls providers on status reads and reconciles the answer
- Captures authorized payments where the provider supports it

Usage:
    from payments.services import CreatePaymentRequest, PaymentOrchestrator

    result = PaymentOrchestrator.create_payment(
        user,
        CreatePaymentRequest(
            provider="momo",
            amount=Decimal("50000"),
            currency="VND",
        ),
    )

    if result.success:
        redirect_to = result.data.payment.payment_url
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.utils import timezone

from core.services import BaseService, ServiceResult
from payments.adapters import ADAPTERS, CreatePaymentParams, get_adapter
from payments.exceptions import (
    InvalidPaymentStateError,
    PaymentConflictError,
    PaymentError,
    ProviderCommunicationError,
    UnsupportedProviderError,
)
from payments.ledger import Pagination, PaymentFilter, PaymentLedger, PaymentPage
from payments.models import CURRENCY_DECIMALS, quantize_amount
from payments.state_machines import PaymentEventType, PaymentStatus, ReconcileSource

from .reconciliation_service import ReconcileOutcome, ReconciliationService

if TYPE_CHECKING:
    from payments.models import Payment, PaymentEvent


CURRENCY_INFO = {
    "VND": {"symbol": "₫", "name": "Vietnamese Dong"},
    "USD": {"symbol": "$", "name": "US Dollar"},
    "EUR": {"symbol": "€", "name": "Euro"},
    "GBP": {"symbol": "£", "name": "British Pound"},
}


# =============================================================================
# Parameter & Result Types
# =============================================================================


@dataclass
class CreatePaymentRequest:
    """
    Parameters for creating a payment through the orchestrator.

    Attributes:
        provider: PaymentProvider value
        amount: Amount in major units
        currency: ISO 4217 code
        payment_method: Provider method; defaults to the provider's first
        description: Text shown to the payer
        order_id: Caller-assigned order id; generated when omitted
        return_url: Success redirect; defaults to PAYMENT_SUCCESS_URL
        cancel_url: Cancel redirect; defaults to PAYMENT_CANCEL_URL
        client_ip: Payer IP address
        metadata: Arbitrary key-value pairs kept on the payment
    """

    provider: str
    amount: Decimal
    currency: str
    payment_method: str | None = None
    description: str = ""
    order_id: str | None = None
    return_url: str | None = None
    cancel_url: str | None = None
    client_ip: str = "127.0.0.1"
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentCreation:
    """Created payment plus client-side artifacts that are not persisted."""

    payment: Payment
    qr_code: str | None = None
    client_secret: str | None = None


@dataclass
class PaymentStatusSnapshot:
    """Payment as stored after an optional provider poll."""

    payment: Payment
    events: list[PaymentEvent]
    provider_status: dict[str, Any] | None = None


@dataclass
class CaptureOutcome:
    payment: Payment
    outcome: ReconcileOutcome
    provider_response: dict[str, Any]


def generate_order_id() -> str:
    """Generate an order id of the form ORDER_<epoch_ms>_<HEX8>."""
    return f"ORDER_{int(time.time() * 1000)}_{secrets.token_hex(4).upper()}"


# =============================================================================
# Payment Orchestrator
# =============================================================================


class PaymentOrchestrator(BaseService):
    """
    Central coordinator for client-initiated payment operations.

    All methods are class methods - no instance state is maintained.

    Usage:
        result = PaymentOrchestrator.create_payment(user, request)
        result = PaymentOrchestrator.get_status(order_id, user)
        result = PaymentOrchestrator.capture_payment(order_id, user)
    """

    @classmethod
    def create_payment(
        cls,
        user,
        request: CreatePaymentRequest,
        correlation_id: str | None = None,
    ) -> ServiceResult[PaymentCreation]:
        """
        Create a payment and start it at the provider.

        The Payment row is written first. If the provider call fails the
        payment is moved to FAILED and the failure is returned.

        Returns:
            ServiceResult containing PaymentCreation on success. Error codes:
            VALIDATION_ERROR, UNSUPPORTED_PROVIDER, PAYMENT_CONFLICT,
            PROVIDER_COMMUNICATION_ERROR
        """
        logger = cls.get_logger()

        try:
            adapter = get_adapter(request.provider)
        except UnsupportedProviderError as e:
            return ServiceResult.failure(e.message, error_code=e.error_code)

        validated = cls._validate_request(adapter, request)
        if isinstance(validated, ServiceResult):
            return validated
        amount, currency, payment_method = validated

        order_id = request.order_id or generate_order_id()
        return_url = request.return_url or settings.PAYMENT_SUCCESS_URL
        cancel_url = request.cancel_url or settings.PAYMENT_CANCEL_URL
        log_context = {
            "order_id": order_id,
            "provider": adapter.provider,
            "amount": str(amount),
            "currency": currency,
            "correlation_id": correlation_id,
        }
        logger.info("Creating payment", extra=log_context)

        try:
            payment = PaymentLedger.create(
                order_id=order_id,
                user=user,
                amount=amount,
                currency=currency,
                provider=adapter.provider,
                payment_method=payment_method,
                description=request.description,
                return_url=return_url,
                cancel_url=cancel_url,
                metadata=request.metadata,
                expires_at=timezone.now()
                + timedelta(minutes=getattr(settings, "PAYMENT_EXPIRY_MINUTES", 15)),
                correlation_id=correlation_id,
            )
        except PaymentConflictError as e:
            return ServiceResult.failure(e.message, error_code=e.error_code)

        try:
            result = adapter.create_payment(
                CreatePaymentParams(
                    order_id=order_id,
                    amount=amount,
                    currency=currency,
                    description=payment.description,
                    payment_method=payment_method,
                    return_url=return_url,
                    cancel_url=cancel_url,
                    notify_url=f"{settings.PAYMENT_WEBHOOK_BASE_URL}/{adapter.provider}",
                    client_ip=request.client_ip,
                    user_reference=str(user.pk),
                    metadata=request.metadata,
                ),
                trace_id=correlation_id,
            )
        except ProviderCommunicationError as e:
            logger.error(
                "Provider rejected payment creation",
                extra={**log_context, "error": e.message},
            )
            with cls.atomic():
                failed = PaymentLedger.conditional_update_status(
                    payment.id,
                    PaymentStatus.PENDING,
                    {
                        "status": PaymentStatus.FAILED,
                        "error_code": e.error_code,
                        "error_message": e.message,
                    },
                )
                if failed:
                    PaymentLedger.append_event(
                        payment.id,
                        PaymentEventType.FAILED,
                        PaymentStatus.FAILED,
                        message=e.message,
                        data=e.to_dict(),
                        correlation_id=correlation_id,
                    )
            return ServiceResult.failure(
                f"Payment creation failed at {adapter.display_name}: {e.message}",
                error_code="PROVIDER_COMMUNICATION_ERROR",
            )

        provider_data = dict(result.provider_data)
        if result.qr_payload:
            provider_data["qrCode"] = result.qr_payload
        stored = PaymentLedger.update_provider_artifacts(
            payment.id,
            PaymentStatus.PENDING,
            external_id=result.external_id,
            payment_url=result.redirect_url,
            provider_data=provider_data,
        )
        if not stored:
            logger.warning(
                "Payment changed before provider artifacts were stored",
                extra=log_context,
            )

        logger.info("Payment created at provider", extra=log_context)
        return ServiceResult.success(
            PaymentCreation(
                payment=PaymentLedger.get_by_id(payment.id),
                qr_code=result.qr_payload,
                client_secret=result.client_secret,
            )
        )

    @classmethod
    def _validate_request(
        cls, adapter, request: CreatePaymentRequest
    ) -> tuple[Decimal, str, str] | ServiceResult:
        """Return (amount, currency, method) or a VALIDATION_ERROR failure."""
        errors: dict[str, list[str]] = {}

        payment_method = request.payment_method or adapter.default_payment_method()
        if payment_method not in adapter.payment_methods:
            errors["payment_method"] = [
                f"Must be one of: {', '.join(adapter.payment_methods)}"
            ]

        currency = (request.currency or "").upper()
        if currency not in adapter.currencies:
            errors["currency"] = [
                f"{adapter.display_name} supports: {', '.join(adapter.currencies)}"
            ]

        amount = None
        try:
            amount = Decimal(request.amount)
        except (InvalidOperation, TypeError, ValueError):
            errors["amount"] = ["A valid number is required."]

        if amount is not None and "currency" not in errors:
            amount = quantize_amount(amount, currency)
            if amount < adapter.min_amount:
                errors["amount"] = [f"Minimum amount is {adapter.min_amount} {currency}"]
            elif adapter.max_amount is not None and amount > adapter.max_amount:
                errors["amount"] = [f"Maximum amount is {adapter.max_amount} {currency}"]

        if errors:
            return ServiceResult.failure(
                "Invalid payment request",
                error_code="VALIDATION_ERROR",
                errors=errors,
            )
        return amount, currency, payment_method

    @classmethod
    def _owned_payment(cls, order_id: str, user) -> Payment | ServiceResult:
        try:
            return PaymentLedger.get_owned(order_id, user)
        except PaymentError as e:
            return ServiceResult.failure(e.message, error_code=e.error_code)

    @classmethod
    def get_status(
        cls, order_id: str, user, correlation_id: str | None = None
    ) -> ServiceResult[PaymentStatusSnapshot]:
        """
        Return a payment's status, polling the provider first if it can
        still change.

        A provider failure during the poll is logged and the stored state
        is returned.
        """
        payment = cls._owned_payment(order_id, user)
        if isinstance(payment, ServiceResult):
            return payment

        provider_status = None
        if payment.accepts_provider_updates:
            adapter = get_adapter(payment.provider)
            try:
                provider_status = adapter.query_status(payment, trace_id=correlation_id)
            except ProviderCommunicationError as e:
                cls.get_logger().warning(
                    "Provider status query failed; returning stored state",
                    extra={
                        "order_id": order_id,
                        "provider": payment.provider,
                        "error": e.message,
                        "correlation_id": correlation_id,
                    },
                )
            else:
                if provider_status:
                    ReconciliationService.reconcile(
                        payment,
                        provider_status,
                        source=ReconcileSource.POLL,
                        correlation_id=correlation_id,
                    )
                    payment = PaymentLedger.get_by_id(payment.id)

        return ServiceResult.success(
            PaymentStatusSnapshot(
                payment=payment,
                events=PaymentLedger.events_for(payment.id),
                provider_status=provider_status,
            )
        )

    @classmethod
    def capture_payment(
        cls, order_id: str, user, correlation_id: str | None = None
    ) -> ServiceResult[CaptureOutcome]:
        """Capture an approved payment (Stripe and PayPal only)."""
        try:
            payment = PaymentLedger.get_owned(order_id, user, action="capture")
            if payment.status != PaymentStatus.PENDING:
                raise InvalidPaymentStateError(
                    f"Cannot capture payment in {payment.status} status",
                    details={"order_id": order_id, "status": payment.status},
                )
        except PaymentError as e:
            return ServiceResult.failure(e.message, error_code=e.error_code)

        adapter = get_adapter(payment.provider)
        if not adapter.supports_capture:
            return ServiceResult.failure(
                f"Manual capture is not supported for {adapter.display_name}",
                error_code="UNSUPPORTED_PROVIDER",
            )
        if not payment.external_id:
            return ServiceResult.failure(
                "Payment has no provider reference to capture",
                error_code="INVALID_STATE",
            )

        try:
            response = adapter.capture_payment(payment, trace_id=correlation_id)
        except ProviderCommunicationError as e:
            cls.get_logger().error(
                "Provider capture failed",
                extra={"order_id": order_id, "provider": payment.provider, "error": e.message},
            )
            return ServiceResult.failure(
                f"Capture failed at {adapter.display_name}: {e.message}",
                error_code="PROVIDER_COMMUNICATION_ERROR",
            )

        outcome = ReconciliationService.reconcile(
            payment,
            response,
            source=ReconcileSource.CAPTURE,
            correlation_id=correlation_id,
        )
        return ServiceResult.success(
            CaptureOutcome(
                payment=PaymentLedger.get_by_id(payment.id),
                outcome=outcome,
                provider_response=response,
            )
        )

    @classmethod
    def list_payments(
        cls,
        user,
        status: str | None = None,
        provider: str | None = None,
        order_id: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> ServiceResult[PaymentPage]:
        try:
            pagination = Pagination(limit=limit, offset=offset)
        except ValueError as e:
            return ServiceResult.failure(str(e), error_code="VALIDATION_ERROR")

        return ServiceResult.success(
            PaymentLedger.list(
                PaymentFilter(
                    user_id=user.id,
                    status=status,
                    provider=provider,
                    order_id_contains=order_id,
                ),
                pagination,
            )
        )

    @classmethod
    def client_config(cls) -> dict[str, Any]:
        """Public configuration for payment clients."""
        return {
            "stripe": {"publishableKey": settings.STRIPE_PUBLISHABLE_KEY},
            "paypal": {"clientId": settings.PAYPAL_CLIENT_ID},
            "currencies": {
                code: {"code": code, "decimals": decimals, **CURRENCY_INFO[code]}
                for code, decimals in CURRENCY_DECIMALS.items()
            },
            "paymentMethods": [
                {
                    "id": adapter.provider,
                    "name": adapter.display_name,
                    "methods": list(adapter.payment_methods),
                    "currencies": list(adapter.currencies),
                    "minAmount": str(adapter.min_amount),
                    "maxAmount": str(adapter.max_amount) if adapter.max_amount else None,
                    "supportsRefund": adapter.supports_refund,
                    "supportsCapture": adapter.supports_capture,
                }
                for adapter in ADAPTERS.values()
            ],
        }
