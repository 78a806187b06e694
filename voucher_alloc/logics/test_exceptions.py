"""
Unit tests for allocation service exceptions.

Tests that custom exceptions properly structure error information
with context, recommendations, and appropriate HTTP status codes.
"""

import pytest

from voucher_alloc.logics.exceptions import (
    AllocationServiceException,
    InvalidMonthKeyException,
    MonthAggregateMismatchException,
    PersistenceException,
    StaffNotFoundException,
)


class TestAllocationServiceException:
    """Test base AllocationServiceException functionality."""

    def test_basic_exception_creation(self):
        exc = AllocationServiceException(
            message="Test error",
            context={"key": "value"},
            recommendation="Do something",
            http_status=409
        )

        assert exc.message == "Test error"
        assert exc.context == {"key": "value"}
        assert exc.recommendation == "Do something"
        assert exc.http_status == 409
        assert str(exc) == "Test error"

    def test_to_dict_conversion(self):
        exc = AllocationServiceException(
            message="Test error",
            context={"code": "NV1"},
            recommendation="Check the logs"
        )

        assert exc.to_dict() == {
            "success": False,
            "error": "Test error",
            "context": {"code": "NV1"},
            "recommendation": "Check the logs",
        }

    def test_to_dict_omits_empty_fields(self):
        exc = AllocationServiceException(message="Bare")
        assert exc.to_dict() == {"success": False, "error": "Bare"}
        assert exc.http_status == 400


class TestSubclasses:

    def test_staff_not_found(self):
        exc = StaffNotFoundException("NV9")
        assert exc.http_status == 404
        assert exc.context == {"code": "NV9"}
        assert "NV9" in exc.message

    def test_invalid_month_key(self):
        exc = InvalidMonthKeyException("2025-13")
        assert exc.http_status == 400
        assert exc.context["month_key"] == "2025-13"

    def test_persistence(self):
        exc = PersistenceException("save_month_aggregate", "database is locked")
        assert exc.http_status == 503
        assert exc.context["operation"] == "save_month_aggregate"
        assert exc.recommendation

    def test_month_mismatch(self):
        exc = MonthAggregateMismatchException(expected="2025-03", actual="2025-02")
        assert exc.http_status == 400
        assert exc.context == {"expected": "2025-03", "actual": "2025-02"}

    @pytest.mark.parametrize("exc", [
        StaffNotFoundException("A"),
        InvalidMonthKeyException("x"),
        PersistenceException("op", "boom"),
        MonthAggregateMismatchException("2025-01", "2025-02"),
    ])
    def test_all_inherit_from_base(self, exc):
        assert isinstance(exc, AllocationServiceException)
        assert exc.to_dict()["success"] is False
