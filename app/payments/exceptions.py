"""
Payment error taxonomy.

Each class fixes an ``error_code``; ``payments.views.ERROR_STATUS_CODES``
turns that code into the HTTP status of the failure envelope:

    PAYMENT_NOT_FOUND                          404
    VALIDATION_ERROR, INVALID_STATE,
    INVALID_AMOUNT, UNSUPPORTED_PROVIDER       400
    PERMISSION_DENIED                          403
    PAYMENT_CONFLICT, LOCK_ACQUISITION_FAILED  409
    PROVIDER_COMMUNICATION_ERROR               500

ConcurrencyConflictError and InvalidStateTransitionError never reach a
client: the ledger and the refund path consume them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError

if TYPE_CHECKING:
    from typing import Any


class PaymentError(BaseApplicationError):
    default_error_code: str = "PAYMENT_ERROR"


class PaymentNotFoundError(PaymentError):
    """No payment with the given order_id."""

    default_error_code: str = "PAYMENT_NOT_FOUND"


class PaymentValidationError(PaymentError):
    """Bad request input: amount limits, currency, method or field format."""

    default_error_code: str = "VALIDATION_ERROR"


class WebhookPayloadError(PaymentValidationError):
    """Callback body that cannot be parsed into the provider's shape."""

    default_error_code: str = "INVALID_WEBHOOK_PAYLOAD"


class PaymentPermissionError(PaymentError):
    default_error_code: str = "PERMISSION_DENIED"


class InvalidPaymentStateError(PaymentError):
    """The payment's current status does not allow the operation."""

    default_error_code: str = "INVALID_STATE"


class InvalidRefundAmountError(PaymentError):
    """Refund amount is not positive or exceeds the remaining balance."""

    default_error_code: str = "INVALID_AMOUNT"


class UnsupportedProviderError(PaymentError):
    default_error_code: str = "UNSUPPORTED_PROVIDER"


class UnsupportedOperationError(UnsupportedProviderError):
    """
    Provider has no API for the operation.

    MoMo, ZaloPay and VNPay take neither API refunds nor captures here.
    """


class SignatureVerificationError(PaymentError):
    """Callback failed authentication; nothing was read from or written to the ledger."""

    default_error_code: str = "SIGNATURE_VERIFICATION_FAILED"


class ImmutableEventError(PaymentError):
    """PaymentEvent rows are append-only."""

    default_error_code: str = "IMMUTABLE_EVENT"


class ProviderCommunicationError(PaymentError):
    """
    A provider call failed: transport error, timeout, non-2xx answer or
    a result code signalling failure.

    ``provider`` and ``provider_code`` are copied into ``details`` so they
    show up in logs and in ``to_dict``. ``is_retryable`` tells callers
    whether the same request could succeed later.
    """

    default_error_code: str = "PROVIDER_COMMUNICATION_ERROR"
    is_retryable: bool = True

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        provider_code: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if provider:
            details["provider"] = provider
        if provider_code is not None:
            details["provider_code"] = provider_code
        super().__init__(message, error_code=error_code, details=details)
        self.provider = provider
        self.provider_code = provider_code


class ProviderTimeoutError(ProviderCommunicationError):
    """
    No answer within PAYMENT_PROVIDER_TIMEOUT_SECONDS.

    The provider may still have acted; a later poll or webhook settles it.
    """

    is_retryable: bool = True


class ProviderRejectedError(ProviderCommunicationError):
    """The provider answered and refused; resending unchanged will fail again."""

    is_retryable: bool = False


class PaymentConflictError(ConflictError):
    """order_id already taken; no row was created."""

    default_error_code: str = "PAYMENT_CONFLICT"


class ConcurrencyConflictError(ConflictError):
    """A compare-and-set status write found the row already moved."""

    default_error_code: str = "CONCURRENCY_CONFLICT"


class LockAcquisitionError(ConflictError):
    """Another request holds the per-order refund lock."""

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class InvalidStateTransitionError(ConflictError):
    """Target status is not reachable from the current one; details name both."""

    default_error_code: str = "INVALID_STATE_TRANSITION"


__all__ = [
    "PaymentError",
    "PaymentNotFoundError",
    "PaymentValidationError",
    "WebhookPayloadError",
    "PaymentPermissionError",
    "InvalidPaymentStateError",
    "InvalidRefundAmountError",
    "UnsupportedProviderError",
    "UnsupportedOperationError",
    "SignatureVerificationError",
    "ImmutableEventError",
    "ProviderCommunicationError",
    "ProviderTimeoutError",
    "ProviderRejectedError",
    "PaymentConflictError",
    "ConcurrencyConflictError",
    "LockAcquisitionError",
    "InvalidStateTransitionError",
]
