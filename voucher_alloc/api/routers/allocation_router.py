"""
Allocation endpoint.

POST /allocate distributes task rows across staff. Staff come from storage
(in stored priority order) unless the request supplies them. Outside test
mode the run is logged, the month is settled and the staff order rewritten.
"""

from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from voucher_alloc.api.dependencies import get_allocation_config, get_core_utils, get_logger
from voucher_alloc.api.routers.staff_router import StaffRequest
from voucher_alloc.api.utils.responses import error_response, success_response
from voucher_alloc.logics.allocation_workflow import run_allocation
from voucher_alloc.logics.block_grouper import sort_rows_by_group_keys
from voucher_alloc.logics.code_normalizer import GroupKeys, detect_group_keys
from voucher_alloc.logics.core_utils import CoreUtils
from voucher_alloc.logics.domain import AllocationConfig
from voucher_alloc.logics.exceptions import AllocationServiceException
from voucher_alloc.logics.staff_service import list_staff

router = APIRouter()
logger = get_logger(__name__)


class AllocateRequest(BaseModel):
    """Request model for one allocation run."""
    rows: List[Dict[str, Any]] = Field(default_factory=list, description="Task rows keyed by header")
    headers: Optional[List[str]] = Field(None, description="Header row; taken from the first row when omitted")
    voucher_key: Optional[str] = Field(None, description="Voucher column; detected when omitted")
    export_key: Optional[str] = Field(None, description="Export warehouse column; detected when omitted")
    staff: Optional[List[StaffRequest]] = Field(None, description="Staff in priority order; stored staff when omitted")
    sort_rows: bool = Field(False, description="Sort rows by voucher/export/receive before allocating")
    test_mode: bool = Field(False, description="Compute only, write nothing")
    for_date: Optional[date] = Field(None, description="Day being allocated, defaults to today")

    class Config:
        extra = "forbid"


def resolve_group_keys(request: AllocateRequest) -> GroupKeys:
    """Explicit column names win over header detection."""
    headers = request.headers
    if headers is None:
        headers = list(request.rows[0].keys()) if request.rows else []
    detected = detect_group_keys(headers)
    return GroupKeys(
        voucher_key=request.voucher_key or detected.voucher_key,
        export_key=request.export_key or detected.export_key,
        receive_key=detected.receive_key,
        st_key=detected.st_key,
    )


@router.post("/allocate")
def allocate_rows(
    request: AllocateRequest,
    core_utils: CoreUtils = Depends(get_core_utils),
    config: AllocationConfig = Depends(get_allocation_config)
):
    """
    Allocate task rows to staff.

    Responses:
        200: Allocation computed. `persisted` tells whether bookkeeping succeeded;
             when false, `error` carries the storage failure.
        4xx/503: Staff could not be loaded
        500: Unexpected error
    """
    try:
        keys = resolve_group_keys(request)
        rows = request.rows
        if request.sort_rows:
            rows = sort_rows_by_group_keys(rows, keys.ordering())

        if request.staff is not None:
            staff = [s.to_member() for s in request.staff]
        else:
            staff = list_staff(core_utils, active_only=True)

        logger.info(
            f"[Allocation] Request: {len(rows)} rows, {len(staff)} staff, "
            f"voucher={keys.voucher_key!r}, export={keys.export_key!r}, test_mode={request.test_mode}"
        )
        result = run_allocation(
            staff,
            rows,
            keys,
            core_utils,
            for_date=request.for_date,
            test_mode=request.test_mode,
            config=config,
        )

        data = result.to_dict()
        data['keys'] = {
            'voucherKey': keys.voucher_key,
            'exportKey': keys.export_key,
            'receiveKey': keys.receive_key,
            'stKey': keys.st_key,
        }
        if request.sort_rows:
            data['rows'] = rows
        message = "Allocation completed" if result.persisted or result.test_mode else "Allocation computed"
        return success_response(data, message)

    except HTTPException:
        raise
    except AllocationServiceException as e:
        logger.warning(f"[Allocation] Request failed: {e.message}")
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
    except Exception as e:
        logger.error(f"[Allocation] Unexpected error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=error_response("Allocation failed", str(e)))
