"""
URL configuration for provider webhooks.

Mounted at /webhooks/payments/ in config.urls.
"""

from django.urls import path

from .views import payment_webhook

app_name = "payment_webhooks"

urlpatterns = [
    path("<str:provider>", payment_webhook, name="payment_webhook"),
]
