"""
Custom exceptions for the allocation service.

Provides specific exception types for different failure scenarios with
structured error messages, context, and recommendations.
"""

from typing import Optional, Dict, Any


class AllocationServiceException(Exception):
    """Base exception for allocation service operations."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        recommendation: Optional[str] = None,
        http_status: int = 400
    ):
        self.message = message
        self.context = context or {}
        self.recommendation = recommendation
        self.http_status = http_status
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to structured error response."""
        error_dict = {
            "success": False,
            "error": self.message
        }
        if self.context:
            error_dict["context"] = self.context
        if self.recommendation:
            error_dict["recommendation"] = self.recommendation
        return error_dict


class StaffNotFoundException(AllocationServiceException):
    """Raised when a staff code does not exist in storage."""

    def __init__(self, code: str):
        super().__init__(
            message=f"Staff member not found: {code}",
            context={"code": code},
            recommendation="Reload the staff list or import the staff sheet again.",
            http_status=404
        )


class InvalidMonthKeyException(AllocationServiceException):
    """Raised when a month key is not in YYYY-MM form."""

    def __init__(self, month_key: str):
        super().__init__(
            message=f"Invalid month key: {month_key}",
            context={"month_key": month_key},
            recommendation="Use the YYYY-MM format, e.g. 2025-03.",
            http_status=400
        )


class PersistenceException(AllocationServiceException):
    """
    Raised when a storage read or write fails.

    Recoverable: computed allocation results stay valid and the caller may
    retry the write.
    """

    def __init__(self, operation: str, reason: str):
        super().__init__(
            message=f"Storage operation failed: {operation}",
            context={"operation": operation, "reason": reason},
            recommendation="Retry the operation. Allocation results already computed are unaffected.",
            http_status=503
        )


class MonthAggregateMismatchException(AllocationServiceException):
    """Raised when an aggregate for one month is written under another month's key."""

    def __init__(self, expected: str, actual: str):
        super().__init__(
            message=f"Month aggregate is for {actual}, expected {expected}",
            context={"expected": expected, "actual": actual},
            recommendation="Settle each month against its own aggregate.",
            http_status=400
        )
