"""
State machine enums and helpers for payment models.

This module defines the state enums used by payment models with django-fsm.
"""

from payments.state_machines.states import (
    FAILURE_STATUSES,
    PROVIDER_IMMUTABLE_STATUSES,
    REFUNDABLE_STATUSES,
    TERMINAL_STATUSES,
    PaymentEventType,
    PaymentProvider,
    PaymentStatus,
    ReconcileSource,
)

__all__ = [
    "FAILURE_STATUSES",
    "PROVIDER_IMMUTABLE_STATUSES",
    "REFUNDABLE_STATUSES",
    "TERMINAL_STATUSES",
    "PaymentEventType",
    "PaymentProvider",
    "PaymentStatus",
    "ReconcileSource",
]
