"""
DRF views for payments app.

This module provides API views for:
- Payment creation with any supported provider
- Owner-scoped payment listing
- Status lookup with provider reconciliation
- Refunds and manual capture
- Public client configuration

Related files:
    - services/: PaymentOrchestrator, RefundService
    - serializers.py: Request/response serializers
    - urls.py: URL routing

Endpoints:
    POST /payments/create - Create a payment
    GET/POST /payments/list - List own payments
    GET /payments/status/{order_id} - Payment status
    POST /payments/refund/{order_id} - Refund a payment
    POST /payments/capture/{order_id} - Capture an approved payment
    GET /payments/config - Client configuration

Every response uses the {success, data | error, error_code} envelope.

Security:
    - All endpoints require authentication except config
    - Ownership is enforced by the services (403 on mismatch)
"""

from __future__ import annotations

import logging
import uuid

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.services import ServiceResult

from .serializers import (
    CreatePaymentSerializer,
    PaymentDetailSerializer,
    PaymentListQuerySerializer,
    PaymentSerializer,
    RefundRequestSerializer,
)
from .services import CreatePaymentRequest, PaymentOrchestrator, RefundService

logger = logging.getLogger(__name__)


# Maps ServiceResult error codes to HTTP status
ERROR_STATUS_CODES = {
    "VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
    "INVALID_STATE": status.HTTP_400_BAD_REQUEST,
    "INVALID_AMOUNT": status.HTTP_400_BAD_REQUEST,
    "UNSUPPORTED_PROVIDER": status.HTTP_400_BAD_REQUEST,
    "SIGNATURE_VERIFICATION_FAILED": status.HTTP_400_BAD_REQUEST,
    "PERMISSION_DENIED": status.HTTP_403_FORBIDDEN,
    "PAYMENT_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "PAYMENT_CONFLICT": status.HTTP_409_CONFLICT,
    "LOCK_ACQUISITION_FAILED": status.HTTP_409_CONFLICT,
    "PROVIDER_COMMUNICATION_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def error_response(result: ServiceResult) -> Response:
    http_status = ERROR_STATUS_CODES.get(result.error_code, status.HTTP_400_BAD_REQUEST)
    return Response(result.to_response(), status=http_status)


def validation_error_response(errors: dict) -> Response:
    result = ServiceResult.failure(
        "Invalid request",
        error_code="VALIDATION_ERROR",
        errors=errors,
    )
    return Response(result.to_response(), status=status.HTTP_400_BAD_REQUEST)


def correlation_id_for(request) -> str:
    return request.headers.get("X-Request-ID") or uuid.uuid4().hex


def client_ip_for(request) -> str:
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR") or "127.0.0.1"


class CreatePaymentView(APIView):
    """
    Create a payment with a provider.

    POST /payments/create

    Request body:
        {
            "provider": "momo",
            "amount": "50000",
            "currency": "VND",
            "payment_method": "captureWallet",
            "description": "Order #42"
        }

    Response:
        201 Created: payment with redirect URL / QR / client secret
        400 Bad Request: Validation error or unsupported provider
        409 Conflict: order_id already used
        500: Provider communication failure
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_payment",
        summary="Create payment",
        description=(
            "Create a payment and start it at the chosen provider. Returns the "
            "redirect URL, QR payload or client secret the client needs to let "
            "the payer complete the payment."
        ),
        request=CreatePaymentSerializer,
        responses={
            201: OpenApiResponse(description="Payment created"),
            400: OpenApiResponse(description="Validation error or unsupported provider"),
            409: OpenApiResponse(description="Duplicate order_id"),
            500: OpenApiResponse(description="Provider communication error"),
        },
        tags=["Payments"],
    )
    def post(self, request):
        serializer = CreatePaymentSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        data = serializer.validated_data
        result = PaymentOrchestrator.create_payment(
            request.user,
            CreatePaymentRequest(
                provider=data["provider"],
                amount=data["amount"],
                currency=data["currency"],
                payment_method=data.get("payment_method") or None,
                description=data.get("description", ""),
                order_id=data.get("order_id"),
                return_url=data.get("return_url"),
                cancel_url=data.get("cancel_url"),
                client_ip=client_ip_for(request),
                metadata=data.get("metadata") or {},
            ),
            correlation_id=correlation_id_for(request),
        )
        if not result.success:
            return error_response(result)

        payment = result.data.payment
        body = PaymentSerializer(payment).data
        response_data = {
            "id": body["id"],
            "order_id": payment.order_id,
            "status": payment.status,
            "provider": payment.provider,
            "payment_method": payment.payment_method,
            "amount": body["amount"],
            "currency": payment.currency,
            "payment_url": payment.payment_url,
            "qr_code": result.data.qr_code,
            "client_secret": result.data.client_secret,
            "external_id": payment.external_id,
            "expires_at": body["expires_at"],
        }
        return Response(
            ServiceResult.success(response_data).to_response(),
            status=status.HTTP_201_CREATED,
        )


class PaymentListView(APIView):
    """
    List the caller's payments, newest first.

    GET /payments/list?status=COMPLETED&provider=stripe&limit=20&offset=0
    POST /payments/list with the same fields as a JSON body
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_payments",
        summary="List payments",
        parameters=[
            OpenApiParameter("status", OpenApiTypes.STR, description="Filter by status"),
            OpenApiParameter("provider", OpenApiTypes.STR, description="Filter by provider"),
            OpenApiParameter(
                "order_id", OpenApiTypes.STR, description="Order id substring (case-insensitive)"
            ),
            OpenApiParameter("limit", OpenApiTypes.INT, description="Page size, 1-100"),
            OpenApiParameter("offset", OpenApiTypes.INT, description="Items to skip"),
        ],
        responses={
            200: OpenApiResponse(description="Page of payments with pagination info"),
            400: OpenApiResponse(description="Invalid query"),
        },
        tags=["Payments"],
    )
    def get(self, request):
        return self._list(request, request.query_params)

    @extend_schema(
        operation_id="search_payments",
        summary="List payments (JSON body)",
        request=PaymentListQuerySerializer,
        responses={
            200: OpenApiResponse(description="Page of payments with pagination info"),
            400: OpenApiResponse(description="Invalid query"),
        },
        tags=["Payments"],
    )
    def post(self, request):
        return self._list(request, request.data)

    def _list(self, request, params):
        query = PaymentListQuerySerializer(data=params)
        if not query.is_valid():
            return validation_error_response(query.errors)

        data = query.validated_data
        result = PaymentOrchestrator.list_payments(
            request.user,
            status=data.get("status"),
            provider=data.get("provider"),
            order_id=data.get("order_id") or None,
            limit=data["limit"],
            offset=data["offset"],
        )
        if not result.success:
            return error_response(result)

        page = result.data
        return Response(
            ServiceResult.success(
                {
                    "payments": PaymentSerializer(page.items, many=True).data,
                    "pagination": {
                        "limit": page.limit,
                        "offset": page.offset,
                        "total_count": page.total_count,
                        "has_more": page.has_more,
                    },
                }
            ).to_response()
        )


class PaymentStatusView(APIView):
    """
    Get a payment's status.

    GET /payments/status/{order_id}

    Non-terminal payments are checked with the provider first; a provider
    outage falls back to the stored state.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_payment_status",
        summary="Get payment status",
        responses={
            200: OpenApiResponse(
                response=PaymentDetailSerializer,
                description="Payment with audit events and provider status",
            ),
            403: OpenApiResponse(description="Not the payment owner"),
            404: OpenApiResponse(description="Payment not found"),
        },
        tags=["Payments"],
    )
    def get(self, request, order_id):
        result = PaymentOrchestrator.get_status(
            order_id, request.user, correlation_id=correlation_id_for(request)
        )
        if not result.success:
            return error_response(result)

        snapshot = result.data
        data = PaymentDetailSerializer(
            snapshot.payment, context={"events": snapshot.events}
        ).data
        data["provider_status"] = snapshot.provider_status
        return Response(ServiceResult.success(data).to_response())


class RefundView(APIView):
    """
    Refund a payment fully or partially.

    POST /payments/refund/{order_id}

    Request body:
        {"amount": "40.00", "reason": "requested_by_customer", "note": "..."}

    Omitting amount refunds the remaining balance.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="refund_payment",
        summary="Refund payment",
        request=RefundRequestSerializer,
        responses={
            200: OpenApiResponse(description="Refund recorded"),
            400: OpenApiResponse(
                description="Invalid amount, invalid state or unsupported provider"
            ),
            403: OpenApiResponse(description="Not the payment owner"),
            404: OpenApiResponse(description="Payment not found"),
            500: OpenApiResponse(description="Provider communication error"),
        },
        tags=["Payments - Refunds"],
    )
    def post(self, request, order_id):
        serializer = RefundRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        data = serializer.validated_data
        result = RefundService.create_refund(
            order_id,
            request.user,
            amount=data.get("amount"),
            reason=data.get("reason") or None,
            note=data.get("note") or None,
            correlation_id=correlation_id_for(request),
        )
        if not result.success:
            return error_response(result)
        return Response(ServiceResult.success(result.data.to_dict()).to_response())


class CapturePaymentView(APIView):
    """
    Capture an approved payment.

    POST /payments/capture/{order_id}

    Only Stripe and PayPal support manual capture.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="capture_payment",
        summary="Capture payment",
        request=None,
        responses={
            200: OpenApiResponse(
                response=PaymentSerializer,
                description="Payment after capture",
            ),
            400: OpenApiResponse(description="Invalid state or unsupported provider"),
            403: OpenApiResponse(description="Not the payment owner"),
            404: OpenApiResponse(description="Payment not found"),
            500: OpenApiResponse(description="Provider communication error"),
        },
        tags=["Payments"],
    )
    def post(self, request, order_id):
        result = PaymentOrchestrator.capture_payment(
            order_id, request.user, correlation_id=correlation_id_for(request)
        )
        if not result.success:
            return error_response(result)

        data = PaymentSerializer(result.data.payment).data
        data["outcome"] = result.data.outcome.value
        return Response(ServiceResult.success(data).to_response())


class PaymentConfigView(APIView):
    """
    Public configuration for payment clients.

    GET /payments/config

    Publishable keys, currency precision and the provider catalog with
    methods and amount limits.
    """

    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(
        operation_id="get_payment_config",
        summary="Get payment client configuration",
        responses={200: OpenApiResponse(description="Client configuration")},
        tags=["Payments - Config"],
    )
    def get(self, request):
        return Response(ServiceResult.success(PaymentOrchestrator.client_config()).to_response())
