"""
URL configuration for the payment orchestration service.

URL Structure:
    /                                   - ReDoc API documentation
    /admin/                             - Django admin interface
    /health/                            - Health check endpoint (for load balancers, Docker)
    /schema/                            - OpenAPI schema (YAML)
    /payments/                          - Payment endpoints (JWT or session auth)
        create                          - Create a payment with a provider (POST)
        list                            - Owner-scoped paginated list (GET/POST)
        status/{order_id}               - Status with provider reconciliation (GET)
        refund/{order_id}               - Full or partial refund (POST)
        capture/{order_id}              - Manual capture for Stripe/PayPal (POST)
        config                          - Public client configuration (GET)
    /webhooks/payments/{provider}       - Provider callbacks (POST), challenge echo (GET)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # Payments
    path("payments/", include("payments.urls")),
    # Provider webhooks (no auth, signature verified per provider)
    path("webhooks/payments/", include("payments.webhooks.urls")),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Payments Admin"
admin.site.site_title = "Payments Admin Portal"
admin.site.index_title = "Payment Orchestration"
