"""
Request validation utilities for API endpoints.
"""

from typing import Tuple

from fastapi import HTTPException

from voucher_alloc.api.utils.responses import error_response
from voucher_alloc.logics.exceptions import InvalidMonthKeyException
from voucher_alloc.logics.month_stats import validate_month_key as _validate_month_key

EXCEL_EXTENSIONS = ('.xlsx', '.xlsm')


def validate_month_key(month_key: str) -> str:
    """
    Validate a YYYY-MM path parameter.

    Raises:
        HTTPException: 400 if the key is malformed
    """
    try:
        return _validate_month_key(month_key)
    except InvalidMonthKeyException as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


def validate_pagination(
    limit: int,
    offset: int,
    max_limit: int = 500
) -> Tuple[int, int]:
    """
    Validate and normalize pagination parameters.

    Limits above max_limit are clamped; a limit below 1 or a negative offset
    is rejected.

    Examples:
        limit, offset = validate_pagination(50, 0)
        limit, offset = validate_pagination(900, 0)  # (500, 0)
    """
    errors = {}

    if limit < 1:
        errors["limit"] = "Must be at least 1"
    elif limit > max_limit:
        limit = max_limit

    if offset < 0:
        errors["offset"] = "Must be non-negative"

    if errors:
        raise HTTPException(
            status_code=400,
            detail=error_response("Invalid pagination parameters", errors)
        )

    return limit, offset


def validate_excel_filename(filename: str) -> str:
    """Reject uploads that are not Excel workbooks (400)."""
    if not filename or not filename.lower().endswith(EXCEL_EXTENSIONS):
        raise HTTPException(
            status_code=400,
            detail=error_response(
                "Invalid file type",
                {"filename": filename, "allowed": list(EXCEL_EXTENSIONS)}
            )
        )
    return filename
