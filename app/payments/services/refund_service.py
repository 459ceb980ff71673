"""
Refund service for returning money to payers.

This module provides the RefundService class which handles the critical
path for refunds:

1. Ownership and status checks
2. Per-order distributed lock so two refunds never reach the provider
   concurrently
3. Amount validation against the remaining refundable balance
4. Provider refund call through the payment's adapter
5. Append-only refund record, status move and audit event in one
   transaction

A refund the provider declines is kept in the refund history with status
"failed"; it moves no status and does not count toward the balance.

Usage:
    from payments.services import RefundService

    result = RefundService.create_refund(
        order_id="ORDER_1700000000000_A1B2C3D4",
        user=request.user,
        amount=Decimal("30.00"),  # omit to refund the remaining balance
        reason="requested_by_customer",
    )

    if result.success:
        print(result.data.status, result.data.remaining_amount)
    else:
        print(result.error_code, result.error)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from django.utils import timezone

from core.services import BaseService, ServiceResult
from payments.adapters import get_adapter
from payments.exceptions import (
    ConcurrencyConflictError,
    InvalidPaymentStateError,
    InvalidRefundAmountError,
    LockAcquisitionError,
    PaymentError,
    ProviderCommunicationError,
    UnsupportedProviderError,
)
from payments.ledger import PaymentLedger, append_refund
from payments.locks import DistributedLock
from payments.models import quantize_amount
from payments.state_machines import (
    REFUNDABLE_STATUSES,
    PaymentEventType,
    PaymentStatus,
)

if TYPE_CHECKING:
    from typing import Any

    from payments.models import Payment


# =============================================================================
# Constants
# =============================================================================

# Distributed lock TTL for refund execution (seconds)
REFUND_LOCK_TTL = 120

# Lock acquisition timeout (seconds)
REFUND_LOCK_TIMEOUT = 10.0

# Attempts at the final compare-and-set before giving up
MAX_RECORD_ATTEMPTS = 3


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class RefundOutcome:
    """
    Result of a successful refund.

    Attributes:
        order_id: Refunded payment's order id
        status: Payment status after the refund
        refund_amount: Amount refunded by this request
        remaining_amount: Balance still refundable
        currency: Payment currency
        refund: The refund entry appended to provider_data
        message: Human-readable summary
    """

    order_id: str
    status: str
    refund_amount: Decimal
    remaining_amount: Decimal
    currency: str
    refund: dict[str, Any]
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "status": self.status,
            "refund_amount": str(self.refund_amount),
            "remaining_amount": str(self.remaining_amount),
            "currency": self.currency,
            "refund": self.refund,
            "message": self.message,
        }


# =============================================================================
# Refund Service
# =============================================================================


class RefundService(BaseService):
    """
    Service for processing refunds to payers.

    Refund Eligibility:
        - COMPLETED: full or partial refund
        - PARTIALLY_REFUNDED: further refunds up to the remaining balance
        - Anything else: not refundable

    Provider Support:
        Stripe and PayPal expose refund APIs. MoMo, ZaloPay and VNPay
        refunds are rejected with UNSUPPORTED_PROVIDER.

    All methods are classmethods - no instance state is maintained.
    """

    @classmethod
    def create_refund(
        cls,
        order_id: str,
        user,
        amount: Decimal | None = None,
        reason: str | None = None,
        note: str | None = None,
        correlation_id: str | None = None,
    ) -> ServiceResult[RefundOutcome]:
        """
        Refund a payment, fully or partially.

        Args:
            order_id: Order id of the payment to refund
            user: Requesting user (must own the payment)
            amount: Amount to refund; None refunds the remaining balance
            reason: Refund reason passed to the provider
            note: Free-text note recorded with the refund
            correlation_id: Request id recorded on events and logs

        Returns:
            ServiceResult with RefundOutcome on success. Error codes:
            PAYMENT_NOT_FOUND, PERMISSION_DENIED, INVALID_STATE,
            INVALID_AMOUNT, UNSUPPORTED_PROVIDER,
            PROVIDER_COMMUNICATION_ERROR, LOCK_ACQUISITION_FAILED
        """
        logger = cls.get_logger()
        log_context = {
            "order_id": order_id,
            "amount": str(amount) if amount is not None else None,
            "correlation_id": correlation_id,
        }

        try:
            payment = PaymentLedger.get_owned(order_id, user, action="refund")
            cls._ensure_refundable(payment, amount)
        except PaymentError as e:
            return ServiceResult.failure(e.message, error_code=e.error_code)

        try:
            with DistributedLock(
                f"refund:{order_id}",
                ttl=REFUND_LOCK_TTL,
                timeout=REFUND_LOCK_TIMEOUT,
            ):
                return cls._execute_refund(
                    payment.id, amount, reason, note, correlation_id, log_context
                )
        except LockAcquisitionError as e:
            logger.warning("Refund already in progress", extra=log_context)
            return ServiceResult.failure(e.message, error_code=e.error_code)

    @classmethod
    def _execute_refund(
        cls,
        payment_id,
        amount: Decimal | None,
        reason: str | None,
        note: str | None,
        correlation_id: str | None,
        log_context: dict[str, Any],
    ) -> ServiceResult[RefundOutcome]:
        """Run the refund while holding the per-order lock."""
        logger = cls.get_logger()

        # Re-read under the lock; a concurrent refund may have just finished
        payment = PaymentLedger.get_by_id(payment_id)
        remaining = payment.remaining_refundable_amount
        try:
            cls._ensure_refundable(payment, amount)
            refund_amount = cls._validate_amount(payment, amount, remaining)
        except PaymentError as e:
            return ServiceResult.failure(e.message, error_code=e.error_code)

        try:
            adapter = get_adapter(payment.provider)
            if not adapter.supports_refund:
                return ServiceResult.failure(
                    f"Refunds are not supported for {adapter.display_name}",
                    error_code="UNSUPPORTED_PROVIDER",
                )
            reference = adapter.refund_reference(payment)
            if not reference:
                return ServiceResult.failure(
                    "Payment has no provider reference to refund against",
                    error_code="INVALID_STATE",
                )

            logger.info("Requesting provider refund", extra=log_context)
            result = adapter.create_refund(
                payment,
                reference,
                amount=refund_amount,
                reason=reason,
                note=note,
                trace_id=correlation_id,
            )
        except UnsupportedProviderError as e:
            return ServiceResult.failure(e.message, error_code="UNSUPPORTED_PROVIDER")
        except ProviderCommunicationError as e:
            logger.error(
                "Provider refund failed",
                extra={**log_context, "provider": payment.provider, "error": e.message},
            )
            return ServiceResult.failure(
                f"Refund failed at {adapter.display_name}: {e.message}",
                error_code="PROVIDER_COMMUNICATION_ERROR",
            )

        entry = {
            "refundId": result.refund_id,
            "status": result.status,
            "amount": str(refund_amount),
            "currency": payment.currency,
            "reason": reason,
            "note": note,
            "createdAt": timezone.now().isoformat(),
            "raw": result.raw,
        }

        if result.status == "failed":
            logger.error(
                "Provider reported refund failure",
                extra={**log_context, "refund_id": result.refund_id},
            )
            cls._record_failed_attempt(payment, entry)
            return ServiceResult.failure(
                f"Refund failed at {adapter.display_name}: refund status failed",
                error_code="PROVIDER_COMMUNICATION_ERROR",
            )

        new_status = (
            PaymentStatus.REFUNDED
            if refund_amount == remaining
            else PaymentStatus.PARTIALLY_REFUNDED
        )
        cls._record_refund(payment, entry, new_status, correlation_id)

        remaining_after = quantize_amount(remaining - refund_amount, payment.currency)
        logger.info(
            "Refund recorded",
            extra={
                **log_context,
                "refund_id": result.refund_id,
                "new_status": new_status,
                "remaining_amount": str(remaining_after),
            },
        )

        fully = new_status == PaymentStatus.REFUNDED
        return ServiceResult.success(
            RefundOutcome(
                order_id=payment.order_id,
                status=new_status,
                refund_amount=refund_amount,
                remaining_amount=remaining_after,
                currency=payment.currency,
                refund=entry,
                message="Payment fully refunded" if fully else "Payment partially refunded",
            )
        )

    @classmethod
    def _ensure_refundable(cls, payment: Payment, amount: Decimal | None) -> None:
        if payment.status in REFUNDABLE_STATUSES:
            return
        # A fully refunded payment has a zero balance; an explicit amount exceeds it
        if payment.status == PaymentStatus.REFUNDED and amount is not None:
            raise InvalidRefundAmountError(
                f"Refund amount {amount} exceeds remaining balance "
                f"{quantize_amount(Decimal(0), payment.currency)}",
                details={"order_id": payment.order_id},
            )
        raise InvalidPaymentStateError(
            f"Cannot refund payment in {payment.status} status",
            details={"order_id": payment.order_id, "status": payment.status},
        )

    @classmethod
    def _validate_amount(
        cls, payment: Payment, amount: Decimal | None, remaining: Decimal
    ) -> Decimal:
        """
        Return the amount to refund.

        Raises:
            InvalidRefundAmountError: Unparseable, non-positive or over the balance
        """
        if amount is None:
            if remaining <= 0:
                raise InvalidRefundAmountError("Payment has no remaining refundable balance")
            return remaining

        try:
            refund_amount = quantize_amount(Decimal(amount), payment.currency)
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidRefundAmountError(f"Invalid refund amount {amount}") from None

        if refund_amount <= 0:
            raise InvalidRefundAmountError("Refund amount must be positive")
        if refund_amount > remaining:
            raise InvalidRefundAmountError(
                f"Refund amount {refund_amount} exceeds remaining balance {remaining}",
                details={"order_id": payment.order_id, "remaining": str(remaining)},
            )
        return refund_amount

    @classmethod
    def _record_failed_attempt(cls, payment: Payment, entry: dict[str, Any]) -> None:
        """
        Keep a provider-declined refund in the history without moving status.

        Failed entries do not count toward the refunded amount, but they
        advance the refund ordinal, so a retry sends a new idempotency key.
        """
        applied = PaymentLedger.conditional_update_status(
            payment.id,
            expected_prior_status=payment.status,
            new_fields={"provider_data": append_refund(payment.provider_data, entry)},
        )
        if not applied:
            cls.get_logger().warning(
                "Payment changed before the failed refund attempt was stored",
                extra={"order_id": payment.order_id, "refund_id": entry["refundId"]},
            )

    @classmethod
    def _record_refund(
        cls,
        payment: Payment,
        entry: dict[str, Any],
        new_status: str,
        correlation_id: str | None,
    ) -> None:
        """Append the refund entry and move status in one transaction."""
        event_type = (
            PaymentEventType.REFUNDED
            if new_status == PaymentStatus.REFUNDED
            else PaymentEventType.REFUND_INITIATED
        )

        for _ in range(MAX_RECORD_ATTEMPTS):
            with cls.atomic():
                applied = PaymentLedger.conditional_update_status(
                    payment.id,
                    expected_prior_status=payment.status,
                    new_fields={
                        "status": new_status,
                        "provider_data": append_refund(payment.provider_data, entry),
                    },
                )
                if applied:
                    PaymentLedger.append_event(
                        payment.id,
                        event_type,
                        new_status,
                        message=f"Refund {entry['refundId']} of {entry['amount']} {entry['currency']}",
                        data=entry,
                        correlation_id=correlation_id,
                    )
                    return
            payment = PaymentLedger.get_by_id(payment.id)

        # The provider has already refunded; this needs manual attention
        cls.get_logger().critical(
            "Refund succeeded at provider but could not be recorded",
            extra={"order_id": payment.order_id, "refund_id": entry["refundId"]},
        )
        raise ConcurrencyConflictError(
            "Could not record refund after concurrent updates",
            details={"order_id": payment.order_id, "refund_id": entry["refundId"]},
        )
