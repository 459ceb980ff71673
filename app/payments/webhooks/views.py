"""
Webhook endpoint view for payment providers.

One endpoint per provider at /webhooks/payments/<provider>. Providers
authenticate with signatures, not sessions, so the view is CSRF-exempt
and unauthenticated.

Usage:
    # In urls.py
    from payments.webhooks.views import payment_webhook

    urlpatterns = [
        path("<str:provider>", payment_webhook, name="payment_webhook"),
    ]
"""

from __future__ import annotations

import logging
import uuid

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from payments.state_machines import PaymentProvider

from .handlers import process_webhook


logger = logging.getLogger(__name__)


@csrf_exempt
@require_http_methods(["GET", "POST"])
def payment_webhook(request: HttpRequest, provider: str) -> JsonResponse:
    """
    Receive a provider callback and reconcile the payment it refers to.

    GET serves provider endpoint checks: it echoes a `challenge` query
    parameter, or describes the endpoint. VNPay delivers its IPN as a
    GET with vnp_* parameters, which is processed like a POST.

    Unexpected errors return 500 so the provider retries delivery.
    """
    correlation_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

    if request.method == "GET" and not (
        provider == PaymentProvider.VNPAY and "vnp_TxnRef" in request.GET
    ):
        challenge = request.GET.get("challenge")
        if challenge is not None:
            return JsonResponse({"challenge": challenge})
        label = PaymentProvider(provider).label if provider in PaymentProvider.values else provider
        return JsonResponse({"message": f"{label} webhook endpoint"})

    try:
        response = process_webhook(provider, request, correlation_id=correlation_id)
    except Exception:
        logger.error(
            "Unexpected error processing webhook",
            extra={"provider": provider, "correlation_id": correlation_id},
            exc_info=True,
        )
        return JsonResponse({"error": "Internal server error"}, status=500)

    return JsonResponse(response.body, status=response.status_code)
