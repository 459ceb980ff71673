"""
Application error base.

Each error carries a message and a machine-readable ``error_code`` that
the view layer maps to an HTTP status. Payment errors in
``payments.exceptions`` subclass these; services catch them at their
boundary and return ``ServiceResult.failure(e.message, e.error_code)``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Root of the error taxonomy.

    ``details`` holds structured context such as the order id or the
    provider name; it is logged and echoed in ``to_dict``.
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Failure envelope: success, error, error_code and optional details."""
        body: dict[str, Any] = {
            "success": False,
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            body["details"] = self.details
        return body

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.message!r}, "
            f"error_code={self.error_code!r}, details={self.details!r})"
        )


class ConflictError(BaseApplicationError):
    """The write lost to the current state of the row (HTTP 409)."""

    default_error_code: str = "CONFLICT"
