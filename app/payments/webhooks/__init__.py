"""
Webhook handling for payment provider callbacks.

Callbacks are parsed by a per-provider handler, verified by the
provider's adapter, and reconciled synchronously so the provider gets a
definitive acknowledgment.

Usage:
    # In urls.py
    path("webhooks/payments/", include("payments.webhooks.urls"))
"""

from payments.webhooks.handlers import (
    WEBHOOK_HANDLERS,
    ParsedWebhook,
    WebhookHandler,
    process_webhook,
    register_handler,
)

__all__ = [
    "WEBHOOK_HANDLERS",
    "ParsedWebhook",
    "WebhookHandler",
    "process_webhook",
    "register_handler",
]
