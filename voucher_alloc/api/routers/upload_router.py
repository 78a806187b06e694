"""
Spreadsheet upload and export endpoints.

Handles:
- Staff sheet upload (parsed and bulk upserted)
- Task sheet upload (parsed into rows with detected group columns)
- Assignment export (task rows merged with assignments as .xlsx)
"""

import io
from typing import Any, Dict, List

import pandas as pd
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from voucher_alloc.api.dependencies import get_core_utils, get_logger
from voucher_alloc.api.utils.responses import error_response, success_response
from voucher_alloc.api.utils.validators import validate_excel_filename
from voucher_alloc.logics.block_grouper import sort_rows_by_group_keys
from voucher_alloc.logics.code_normalizer import detect_group_keys
from voucher_alloc.logics.core_utils import CoreUtils
from voucher_alloc.logics.domain import AssignmentItem
from voucher_alloc.logics.exceptions import AllocationServiceException
from voucher_alloc.logics.spreadsheet_io import (
    XLSX_MEDIA_TYPE,
    build_assignment_frame,
    create_assignment_workbook,
    parse_staff_frame,
    parse_task_frame,
)
from voucher_alloc.logics.staff_service import upsert_staff_bulk

router = APIRouter()
logger = get_logger(__name__)


class AssignmentPayload(BaseModel):
    userCode: str
    userName: str = ""
    taskIndex: int = Field(..., ge=0)


class ExportRequest(BaseModel):
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    headers: List[str] = Field(default_factory=list)
    assignments: List[AssignmentPayload] = Field(default_factory=list)


async def _read_sheet(file: UploadFile) -> pd.DataFrame:
    validate_excel_filename(file.filename)
    contents = await file.read()
    try:
        return pd.read_excel(io.BytesIO(contents), dtype=str)
    except Exception as e:
        logger.error(f"[Upload] Could not read {file.filename}: {e}", exc_info=True)
        raise HTTPException(
            status_code=400,
            detail=error_response("Unreadable Excel file", {"filename": file.filename, "reason": str(e)})
        )


@router.post("/upload/staff")
async def upload_staff(file: UploadFile = File(...), core_utils: CoreUtils = Depends(get_core_utils)):
    """
    Import a staff sheet.

    Columns are detected by name (code, name, ratio, online, warehouses);
    existing codes are merged, their stored order is kept.
    """
    df = await _read_sheet(file)
    staff = parse_staff_frame(df)
    if not staff:
        raise HTTPException(status_code=400, detail=error_response("No staff rows found in file"))
    try:
        written = upsert_staff_bulk(staff, core_utils)
    except AllocationServiceException as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())

    logger.info(f"[Upload] Imported {written} staff from {file.filename}")
    return success_response(
        {"written": written, "staff": [m.to_dict() for m in staff]},
        "Staff file uploaded and saved."
    )


@router.post("/upload/tasks")
async def upload_tasks(file: UploadFile = File(...)):
    """
    Parse a task sheet into rows, headers and the detected group columns.

    Rows come back sorted by voucher, then export site, then receive site.
    """
    df = await _read_sheet(file)
    rows, headers = parse_task_frame(df)
    keys = detect_group_keys(headers)
    rows = sort_rows_by_group_keys(rows, keys.ordering())
    logger.info(f"[Upload] Parsed {len(rows)} task rows from {file.filename}")
    return success_response({
        "rows": rows,
        "headers": headers,
        "keys": {
            "voucherKey": keys.voucher_key,
            "exportKey": keys.export_key,
            "receiveKey": keys.receive_key,
            "stKey": keys.st_key,
        },
    })


@router.post("/export/assignments")
def export_assignments(request: ExportRequest):
    """Download the task rows with assigned staff columns as .xlsx."""
    headers = request.headers or (list(request.rows[0].keys()) if request.rows else [])
    assignments = [
        AssignmentItem(user_code=a.userCode, user_name=a.userName, task_index=a.taskIndex)
        for a in request.assignments
    ]
    frame = build_assignment_frame(request.rows, headers, assignments)
    output = create_assignment_workbook(frame)
    return StreamingResponse(
        output,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": "attachment; filename=assignments.xlsx"}
    )
