"""
Service-layer building blocks for the payment services.

ServiceResult carries the outcome of an orchestrator or refund call back
to the view, which renders it as the ``{success, data|error}`` envelope.
Expected business outcomes (unknown order, refund over balance) come back
as failures; infrastructure faults propagate as exceptions.

Usage:
    from core.services import BaseService, ServiceResult

    class CaptureService(BaseService):
        @classmethod
        def capture(cls, order_id: str) -> ServiceResult[Payment]:
            payment = Payment.objects.filter(order_id=order_id).first()
            if payment is None:
                return ServiceResult.failure(
                    f"Payment {order_id} not found",
                    error_code="PAYMENT_NOT_FOUND",
                )
            cls.get_logger().info("Captured payment", extra={"order_id": order_id})
            return ServiceResult.success(payment)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Outcome of a service call.

    ``error_code`` is one of the payment error codes (PAYMENT_NOT_FOUND,
    INVALID_AMOUNT, ...) and picks the HTTP status in the view layer.
    ``errors`` holds per-field messages for VALIDATION_ERROR.
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    def to_response(self) -> dict[str, Any]:
        """Render the envelope; ``error_code`` and ``errors`` only when set."""
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {
            "success": False,
            "error": self.error,
        }
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        return response


class BaseService:
    """Stateless service base; subclasses expose classmethods only."""

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """Transaction boundary for ledger and refund writes."""
        with transaction.atomic():
            yield
