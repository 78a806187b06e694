"""
Standard response formatters for API endpoints.

Every endpoint answers with the same envelope:
- success: {"success": true, "message"?, "data"?}
- error: {"success": false, "error", "details"?}
- paginated: success envelope plus a "pagination" block
"""

from typing import Any, Dict, List, Optional


def success_response(data: Any = None, message: Optional[str] = None) -> Dict:
    """
    Create a standardized success response.

    Examples:
        success_response({"count": 3}, "Staff saved")
        success_response(message="Deleted")
    """
    response = {"success": True}

    if message:
        response["message"] = message

    if data is not None:
        response["data"] = data

    return response


def error_response(message: str, details: Optional[Any] = None) -> Dict:
    """
    Create a standardized error body for HTTPException.detail.

    Examples:
        raise HTTPException(status_code=400, detail=error_response("Empty file"))
    """
    response = {
        "success": False,
        "error": message
    }

    if details is not None:
        response["details"] = details

    return response


def paginated_response(
    data: List[Any],
    total: int,
    limit: int,
    offset: int,
    message: Optional[str] = None
) -> Dict:
    """
    Wrap one page of records with pagination metadata.

    `has_more` is true when records exist past this page.
    """
    response = {
        "success": True,
        "data": data,
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "count": len(data),
            "has_more": (offset + len(data)) < total
        }
    }

    if message:
        response["message"] = message

    return response
