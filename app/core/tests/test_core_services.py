"""
Tests for core infrastructure: ServiceResult, BaseService, exceptions
and the health check endpoint.
"""

from unittest.mock import patch

import pytest
from django.db import DatabaseError
from django.test import RequestFactory

from core.exceptions import BaseApplicationError, ConflictError
from core.services import BaseService, ServiceResult
from core.views import health_check


class TestServiceResult:
    def test_success_envelope(self):
        result = ServiceResult.success({"order_id": "ORDER_1"})

        assert result.success is True
        assert result.to_response() == {"success": True, "data": {"order_id": "ORDER_1"}}

    def test_failure_envelope(self):
        result = ServiceResult.failure("Payment ORDER_1 not found", error_code="PAYMENT_NOT_FOUND")

        assert result.data is None
        assert result.to_response() == {
            "success": False,
            "error": "Payment ORDER_1 not found",
            "error_code": "PAYMENT_NOT_FOUND",
        }

    def test_failure_with_field_errors(self):
        result = ServiceResult.failure(
            "Invalid payment request",
            error_code="VALIDATION_ERROR",
            errors={"amount": ["Minimum amount is 10000 VND"]},
        )

        assert result.to_response()["errors"] == {"amount": ["Minimum amount is 10000 VND"]}

    def test_failure_without_code(self):
        assert ServiceResult.failure("boom").to_response() == {"success": False, "error": "boom"}


class TestBaseService:
    def test_logger_named_after_service(self):
        class RefundLikeService(BaseService):
            pass

        assert RefundLikeService.get_logger().name.endswith(".RefundLikeService")

    @pytest.mark.django_db
    def test_atomic_rolls_back(self, django_user_model):
        with pytest.raises(RuntimeError):
            with BaseService.atomic():
                django_user_model.objects.create(username="rolled-back")
                raise RuntimeError("abort")

        assert not django_user_model.objects.filter(username="rolled-back").exists()


class TestExceptions:
    def test_default_code(self):
        error = ConflictError("Order already exists")

        assert error.error_code == "CONFLICT"
        assert str(error) == "[CONFLICT] Order already exists"

    def test_to_dict(self):
        error = BaseApplicationError(
            "Payment ORDER_1 not found",
            error_code="PAYMENT_NOT_FOUND",
            details={"order_id": "ORDER_1"},
        )

        assert error.to_dict() == {
            "success": False,
            "error": "Payment ORDER_1 not found",
            "error_code": "PAYMENT_NOT_FOUND",
            "details": {"order_id": "ORDER_1"},
        }


@pytest.mark.django_db
class TestHealthCheck:
    def test_healthy(self):
        response = health_check(RequestFactory().get("/health/"))

        assert response.status_code == 200

    def test_database_down(self):
        with patch("core.views.connection.cursor", side_effect=DatabaseError("down")):
            response = health_check(RequestFactory().get("/health/"))

        assert response.status_code == 503

    def test_cache_down_is_degraded(self):
        with patch("core.views.cache.set", side_effect=ConnectionError("redis down")):
            response = health_check(RequestFactory().get("/health/"))

        assert response.status_code == 200
        assert b'"degraded"' in response.content
