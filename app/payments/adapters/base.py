"""
Base class and shared types for payment provider adapters.

Every external payment network is wrapped by one adapter class. Adapters
are stateless (classmethods only), never touch the database, and
translate transport and SDK failures into ProviderCommunicationError so
that services see one error vocabulary regardless of provider.

Capabilities:
    create_payment  - produce redirect URL / QR / client secret
    query_status    - side-effect-free provider status lookup
    verify_callback - authenticate an inbound callback (fails closed)
    create_refund   - only where the provider supports API refunds
    capture_payment - only where the provider supports manual capture

Usage:
    from payments.adapters import get_adapter, CreatePaymentParams

    adapter = get_adapter(payment.provider)
    result = adapter.create_payment(
        CreatePaymentParams(
            order_id=payment.order_id,
            amount=payment.amount,
            currency=payment.currency,
            description=payment.description,
            payment_method=payment.payment_method,
            return_url="https://shop.example/success",
            cancel_url="https://shop.example/cancel",
            notify_url="https://api.example/webhooks/payments/momo",
        )
    )
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any, ClassVar

import requests
from django.conf import settings

from payments.exceptions import (
    ProviderCommunicationError,
    ProviderTimeoutError,
    UnsupportedOperationError,
)
from payments.models import CURRENCY_DECIMALS

if TYPE_CHECKING:
    from payments.models import Payment


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CreatePaymentParams:
    """
    Provider-agnostic parameters for creating a payment.

    Attributes:
        order_id: Unique order identifier (sent to the provider as its reference)
        amount: Amount in major currency units
        currency: ISO 4217 currency code (uppercase)
        description: Text shown to the payer
        payment_method: Provider-specific method (captureWallet, card, ...)
        return_url: Where the payer lands after paying
        cancel_url: Where the payer lands after cancelling
        notify_url: Callback URL the provider pushes results to
        client_ip: Payer IP (required by the bank gateway)
        user_reference: Opaque payer reference (ZaloPay app_user)
        metadata: Extra key-value pairs attached where the provider allows
    """

    order_id: str
    amount: Decimal
    currency: str
    description: str
    payment_method: str
    return_url: str
    cancel_url: str
    notify_url: str
    client_ip: str = "127.0.0.1"
    user_reference: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        if not self.order_id:
            raise ValueError("order_id is required")
        if self.amount is None or self.amount <= 0:
            raise ValueError("amount must be positive")
        if not self.currency or len(self.currency) != 3:
            raise ValueError("currency must be a 3-letter ISO code")
        self.currency = self.currency.upper()


@dataclass
class ProviderPaymentResult:
    """
    Artifacts produced by a provider when a payment is created.

    Attributes:
        external_id: Provider-side reference, when known at creation
        redirect_url: URL to send the payer to
        qr_payload: QR code URL or payload for wallet apps
        client_secret: Secret for client-side confirmation (Stripe)
        provider_data: Provider payload worth keeping on the Payment
    """

    external_id: str | None = None
    redirect_url: str | None = None
    qr_payload: str | None = None
    client_secret: str | None = None
    provider_data: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderRefundResult:
    """
    Result of a provider refund call.

    Attributes:
        refund_id: Provider refund reference
        status: Normalized status (succeeded, pending, failed)
        amount: Refunded amount in major units
        raw: Full provider response
    """

    refund_id: str
    status: str
    amount: Decimal
    raw: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Signing & Money Helpers
# =============================================================================


def hmac_sha256_hex(key: str, message: str) -> str:
    return hmac.new(key.encode(), message.encode(), hashlib.sha256).hexdigest()


def hmac_sha512_hex(key: str, message: str) -> str:
    return hmac.new(key.encode(), message.encode(), hashlib.sha512).hexdigest()


def signatures_match(expected: str, received: str | None) -> bool:
    """Constant-time, case-insensitive comparison of hex signatures."""
    if not received:
        return False
    return hmac.compare_digest(expected.lower(), str(received).lower())


def to_minor_units(amount: Decimal, currency: str) -> int:
    """Convert a major-unit amount to the provider's integer minor units."""
    decimals = CURRENCY_DECIMALS.get(currency.upper(), 2)
    scaled = Decimal(amount) * (Decimal(10) ** decimals)
    return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_minor_units(value: int, currency: str) -> Decimal:
    decimals = CURRENCY_DECIMALS.get(currency.upper(), 2)
    return Decimal(value) / (Decimal(10) ** decimals)


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for provider API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    Example:
        key = IdempotencyKeyGenerator.generate(
            operation="refund",
            entity_id="ORDER_1700000000000_A1B2C3D4",
            attempt=2,
        )
        # Result: "refund:ORDER_1700000000000_A1B2C3D4:2:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        # Short hash keyed on SECRET_KEY keeps keys unguessable
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]
        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Base Adapter
# =============================================================================


class PaymentProviderAdapter(ABC):
    """
    Abstract adapter for one external payment provider.

    Subclasses declare their provider value, display name, currency and
    amount limits, and implement create_payment, query_status and
    _verify_callback. Refund and capture default to
    UnsupportedOperationError.

    All methods are classmethods - no instance state is maintained.
    """

    provider: ClassVar[str]
    display_name: ClassVar[str]
    currencies: ClassVar[tuple[str, ...]] = ()
    payment_methods: ClassVar[tuple[str, ...]] = ()
    min_amount: ClassVar[Decimal] = Decimal("0")
    max_amount: ClassVar[Decimal | None] = None
    supports_refund: ClassVar[bool] = False
    supports_capture: ClassVar[bool] = False

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    def _timeout(cls) -> int:
        return getattr(settings, "PAYMENT_PROVIDER_TIMEOUT_SECONDS", 30)

    @classmethod
    def default_payment_method(cls) -> str:
        return cls.payment_methods[0]

    # =========================================================================
    # Capabilities
    # =========================================================================

    @classmethod
    @abstractmethod
    def create_payment(
        cls, params: CreatePaymentParams, trace_id: str | None = None
    ) -> ProviderPaymentResult:
        """
        Create the provider-side payment.

        Raises:
            ProviderCommunicationError: Network failure, timeout or rejection
        """

    @classmethod
    @abstractmethod
    def query_status(cls, payment: Payment, trace_id: str | None = None) -> dict[str, Any]:
        """
        Fetch the provider's view of a payment.

        Side-effect-free. Returns an empty dict when there is nothing to
        query yet (e.g. no provider reference stored).

        Raises:
            ProviderCommunicationError: Network failure or timeout
        """

    @classmethod
    def verify_callback(cls, payload: Any, signature_material: Any = None) -> bool:
        """
        Authenticate an inbound provider callback.

        Fails closed: any exception during verification counts as an
        invalid signature.
        """
        try:
            return bool(cls._verify_callback(payload, signature_material))
        except Exception:
            cls.get_logger().warning(
                "Callback verification raised; treating as invalid",
                extra={"provider": cls.provider},
                exc_info=True,
            )
            return False

    @classmethod
    @abstractmethod
    def _verify_callback(cls, payload: Any, signature_material: Any) -> bool:
        """Provider-specific signature check."""

    @classmethod
    def refund_reference(cls, payment: Payment) -> str | None:
        """Provider reference a refund is issued against, if any."""
        return None

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
        Refund a payment at the provider. amount=None refunds the full
        remaining balance.

        Raises:
            UnsupportedOperationError: Provider has no refund API
            ProviderCommunicationError: Network failure, timeout or rejection
        """
        raise UnsupportedOperationError(
            f"Refunds are not supported for {cls.display_name}",
            details={"provider": cls.provider, "operation": "refund"},
        )

    @classmethod
    def capture_payment(cls, payment: Payment, trace_id: str | None = None) -> dict[str, Any]:
        """
        Capture an authorized payment.

        Raises:
            UnsupportedOperationError: Provider has no manual capture
        """
        raise UnsupportedOperationError(
            f"Manual capture is not supported for {cls.display_name}",
            details={"provider": cls.provider, "operation": "capture"},
        )

    # =========================================================================
    # Webhook Acknowledgment Bodies
    # =========================================================================

    @classmethod
    def acknowledge(cls, payload: Any) -> dict[str, Any]:
        """Body returned to the provider after a callback is processed."""
        return {"received": True}

    @classmethod
    def reject_signature(cls) -> dict[str, Any]:
        return {"error": "Invalid signature"}

    @classmethod
    def reject_not_found(cls) -> dict[str, Any]:
        return {"error": "Order not found"}

    # =========================================================================
    # HTTP Transport
    # =========================================================================

    @classmethod
    def _send(
        cls,
        method: str,
        url: str,
        operation: str,
        *,
        json: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        auth: tuple[str, str] | None = None,
        trace_id: str | None = None,
        log_context: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Send one HTTP request to the provider and return the JSON body.

        Translates transport failures into ProviderCommunicationError
        subclasses and logs timing the same way for every provider.
        """
        logger = cls.get_logger()
        log_context = {
            "provider": cls.provider,
            "operation": operation,
            "trace_id": trace_id,
            **(log_context or {}),
        }

        start_time = time.time()
        logger.info(f"Starting {cls.display_name} operation", extra=log_context)

        try:
            response = requests.request(
                method,
                url,
                json=json,
                data=data,
                headers=headers,
                auth=auth,
                timeout=cls._timeout(),
            )
            response.raise_for_status()
            body = response.json()
        except requests.Timeout as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"{cls.display_name} request timed out",
                extra={**log_context, "duration_ms": duration_ms},
            )
            raise ProviderTimeoutError(
                f"{cls.display_name} did not respond in time",
                provider=cls.provider,
                details={"operation": operation},
            ) from e
        except requests.HTTPError as e:
            duration_ms = (time.time() - start_time) * 1000
            status_code = e.response.status_code if e.response is not None else None
            logger.error(
                f"{cls.display_name} returned an error response",
                extra={**log_context, "status_code": status_code, "duration_ms": duration_ms},
            )
            raise ProviderCommunicationError(
                f"{cls.display_name} returned HTTP {status_code}",
                provider=cls.provider,
                provider_code=str(status_code),
                details={"operation": operation},
            ) from e
        except (requests.RequestException, ValueError) as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Connection error to {cls.display_name}",
                extra={**log_context, "duration_ms": duration_ms},
                exc_info=True,
            )
            raise ProviderCommunicationError(
                f"Could not communicate with {cls.display_name}",
                provider=cls.provider,
                details={"operation": operation, "error": str(e)},
            ) from e

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"{cls.display_name} operation completed",
            extra={**log_context, "duration_ms": duration_ms},
        )
        return body
