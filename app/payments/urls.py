"""
URL configuration for the payments app.

Routes:
    - POST /payments/create - Create a payment
    - GET/POST /payments/list - List own payments
    - GET /payments/status/<order_id> - Payment status
    - POST /payments/refund/<order_id> - Refund
    - POST /payments/capture/<order_id> - Manual capture
    - GET /payments/config - Client configuration

Provider webhooks live in payments.webhooks.urls.

Usage:
    # In config/urls.py
    path("payments/", include("payments.urls")),
"""

from django.urls import path

from . import views

app_name = "payments"

urlpatterns = [
    path("create", views.CreatePaymentView.as_view(), name="create"),
    path("list", views.PaymentListView.as_view(), name="list"),
    path("status/<str:order_id>", views.PaymentStatusView.as_view(), name="status"),
    path("refund/<str:order_id>", views.RefundView.as_view(), name="refund"),
    path("capture/<str:order_id>", views.CapturePaymentView.as_view(), name="capture"),
    path("config", views.PaymentConfigView.as_view(), name="config"),
]
