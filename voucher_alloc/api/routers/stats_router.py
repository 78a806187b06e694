"""
Month statistics endpoints.

- GET /stats/{month_key}/entries    raw daily log, paginated
- GET /stats/{month_key}/totals     assigned totals per staff code, with names
- GET /stats/{month_key}/aggregate  settled fairness aggregate
- GET /stats/{month_key}/export     month totals as .xlsx
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from voucher_alloc.api.dependencies import get_core_utils, get_logger
from voucher_alloc.api.utils.responses import error_response, paginated_response, success_response
from voucher_alloc.api.utils.validators import validate_month_key, validate_pagination
from voucher_alloc.logics.core_utils import CoreUtils
from voucher_alloc.logics.exceptions import AllocationServiceException
from voucher_alloc.logics.month_stats import (
    aggregate_by_user,
    attach_staff_names,
    get_month_entries,
    load_month_aggregate,
)
from voucher_alloc.logics.spreadsheet_io import (
    XLSX_MEDIA_TYPE,
    build_month_totals_frame,
    create_month_totals_workbook,
    month_totals_filename,
)
from voucher_alloc.logics.staff_service import list_staff

router = APIRouter()
logger = get_logger(__name__)


def _raise_http(e: Exception, month_key: str):
    if isinstance(e, AllocationServiceException):
        logger.warning(f"[MonthStats] {month_key}: {e.message}")
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
    logger.error(f"[MonthStats] Unexpected error for {month_key}: {e}", exc_info=True)
    raise HTTPException(status_code=500, detail=error_response("Failed to read month statistics", str(e)))


def _named_totals(month_key: str, core_utils: CoreUtils):
    totals = aggregate_by_user(get_month_entries(month_key, core_utils))
    # Inactive staff keep their name in past months
    return attach_staff_names(totals, list_staff(core_utils, active_only=False))


@router.get("/stats/{month_key}/entries")
def get_entries(
    month_key: str,
    limit: int = Query(100),
    offset: int = Query(0),
    core_utils: CoreUtils = Depends(get_core_utils)
):
    month_key = validate_month_key(month_key)
    limit, offset = validate_pagination(limit, offset)
    try:
        entries = get_month_entries(month_key, core_utils)
    except Exception as e:
        _raise_http(e, month_key)
    return paginated_response(entries[offset:offset + limit], total=len(entries), limit=limit, offset=offset)


@router.get("/stats/{month_key}/totals")
def get_totals(month_key: str, core_utils: CoreUtils = Depends(get_core_utils)):
    """Per-staff totals for the month, largest first."""
    month_key = validate_month_key(month_key)
    try:
        totals = _named_totals(month_key, core_utils)
    except Exception as e:
        _raise_http(e, month_key)
    return success_response(totals)


@router.get("/stats/{month_key}/export")
def export_totals(month_key: str, core_utils: CoreUtils = Depends(get_core_utils)):
    """Download the month totals as thong_ke_YYYY-MM.xlsx; 404 when nothing was logged."""
    month_key = validate_month_key(month_key)
    try:
        totals = _named_totals(month_key, core_utils)
    except Exception as e:
        _raise_http(e, month_key)
    if not totals:
        raise HTTPException(
            status_code=404,
            detail=error_response("No statistics to export", {"month_key": month_key})
        )

    output = create_month_totals_workbook(build_month_totals_frame(totals))
    logger.info(f"[MonthStats] Exported {len(totals)} totals for {month_key}")
    return StreamingResponse(
        output,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={month_totals_filename(month_key)}"}
    )


@router.get("/stats/{month_key}/aggregate")
def get_aggregate(month_key: str, core_utils: CoreUtils = Depends(get_core_utils)):
    """Settled aggregate for the month; 404 if the month was never settled."""
    month_key = validate_month_key(month_key)
    try:
        agg = load_month_aggregate(month_key, core_utils)
    except Exception as e:
        _raise_http(e, month_key)
    if agg is None:
        raise HTTPException(
            status_code=404,
            detail=error_response("No aggregate for month", {"month_key": month_key})
        )
    return success_response(agg.to_dict())
