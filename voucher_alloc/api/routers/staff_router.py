"""
Staff roster management endpoints.

Staff order is the allocation priority; it is rewritten after every
non-test allocation run and can be set by hand through PUT /staff/order.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from voucher_alloc.api.dependencies import get_core_utils, get_logger
from voucher_alloc.api.utils.responses import error_response, paginated_response, success_response
from voucher_alloc.api.utils.validators import validate_pagination
from voucher_alloc.logics.core_utils import CoreUtils
from voucher_alloc.logics.domain import StaffMember
from voucher_alloc.logics.exceptions import AllocationServiceException
from voucher_alloc.logics.staff_service import (
    delete_staff,
    list_staff,
    save_staff_ordering,
    update_staff_online,
    update_staff_warehouses,
    update_staff_weight,
    upsert_staff,
    upsert_staff_bulk,
)

router = APIRouter()
logger = get_logger(__name__)


# ============ Pydantic Request Models ============

class StaffRequest(BaseModel):
    """Request model for creating or replacing one staff member."""
    code: str = Field(..., min_length=1, max_length=50, description="Staff code, e.g. 'NV001'")
    name: str = Field("", max_length=255, description="Display name (defaults to the code)")
    weight_pct: float = Field(100.0, ge=0, description="Workload weight, 100 is a normal share")
    online: bool = Field(True, description="Present today")
    warehouses: List[str] = Field(default_factory=list, description="Owned export warehouse codes")

    class Config:
        extra = "forbid"

    def to_member(self) -> StaffMember:
        return StaffMember(
            code=self.code,
            name=self.name,
            weight_pct=self.weight_pct,
            online=self.online,
            warehouses=list(self.warehouses),
        )


class BulkStaffRequest(BaseModel):
    staff: List[StaffRequest] = Field(..., min_length=1)

    class Config:
        extra = "forbid"


class OnlineRequest(BaseModel):
    online: bool


class WeightRequest(BaseModel):
    weight_pct: float = Field(..., ge=0)


class WarehousesRequest(BaseModel):
    warehouses: List[str] = Field(default_factory=list)


class OrderRequest(BaseModel):
    codes: List[str] = Field(..., min_length=1, description="Staff codes in priority order")


def _raise_http(e: Exception, action: str):
    if isinstance(e, AllocationServiceException):
        logger.warning(f"[Staff] {action} failed: {e.message}")
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
    logger.error(f"[Staff] {action} failed: {e}", exc_info=True)
    raise HTTPException(status_code=500, detail=error_response(f"Failed to {action}", str(e)))


# ============ API Endpoints ============

@router.get("/staff")
def get_staff(
    active_only: bool = Query(True, description="Only staff flagged active"),
    limit: int = Query(100, description="Page size"),
    offset: int = Query(0, description="Page offset"),
    core_utils: CoreUtils = Depends(get_core_utils)
):
    """List staff in allocation priority order."""
    limit, offset = validate_pagination(limit, offset)
    try:
        staff = list_staff(core_utils, active_only=active_only)
    except Exception as e:
        _raise_http(e, "list staff")
    page = [m.to_dict() for m in staff[offset:offset + limit]]
    return paginated_response(page, total=len(staff), limit=limit, offset=offset)


@router.post("/staff")
def create_staff(request: StaffRequest, core_utils: CoreUtils = Depends(get_core_utils)):
    """Create a staff member, or overwrite the fields of an existing code."""
    try:
        member = upsert_staff(request.to_member(), core_utils)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=error_response(str(e)))
    except Exception as e:
        _raise_http(e, "save staff")
    return success_response(member.to_dict(), f"Staff {member.code} saved")


@router.post("/staff/bulk")
def create_staff_bulk(request: BulkStaffRequest, core_utils: CoreUtils = Depends(get_core_utils)):
    """Insert or merge many staff members in one transaction."""
    try:
        written = upsert_staff_bulk([s.to_member() for s in request.staff], core_utils)
    except Exception as e:
        _raise_http(e, "save staff")
    return success_response({"written": written}, f"{written} staff saved")


@router.patch("/staff/{code}/online")
def set_staff_online(code: str, request: OnlineRequest, core_utils: CoreUtils = Depends(get_core_utils)):
    try:
        update_staff_online(code, request.online, core_utils)
    except Exception as e:
        _raise_http(e, "update online status")
    return success_response({"code": code, "online": request.online})


@router.patch("/staff/{code}/weight")
def set_staff_weight(code: str, request: WeightRequest, core_utils: CoreUtils = Depends(get_core_utils)):
    try:
        update_staff_weight(code, request.weight_pct, core_utils)
    except Exception as e:
        _raise_http(e, "update weight")
    return success_response({"code": code, "weightPct": request.weight_pct})


@router.patch("/staff/{code}/warehouses")
def set_staff_warehouses(
    code: str,
    request: WarehousesRequest,
    core_utils: CoreUtils = Depends(get_core_utils)
):
    try:
        update_staff_warehouses(code, request.warehouses, core_utils)
    except Exception as e:
        _raise_http(e, "update warehouses")
    return success_response({"code": code, "warehouses": request.warehouses})


@router.delete("/staff/{code}")
def remove_staff(code: str, core_utils: CoreUtils = Depends(get_core_utils)):
    try:
        delete_staff(code, core_utils)
    except Exception as e:
        _raise_http(e, "delete staff")
    return success_response(message=f"Staff {code} deleted")


@router.put("/staff/order")
def set_staff_order(request: OrderRequest, core_utils: CoreUtils = Depends(get_core_utils)):
    """
    Store the given order as allocation priority.

    Unknown codes are skipped and reported back under `missing`.
    """
    try:
        missing = save_staff_ordering(request.codes, core_utils)
    except Exception as e:
        _raise_http(e, "save staff order")
    return success_response({"missing": missing}, "Staff order saved")
