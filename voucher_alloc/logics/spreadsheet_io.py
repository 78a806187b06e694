"""
Spreadsheet parsing and export.

- parse_staff_frame: staff sheet -> StaffMember list (columns found by synonym)
- parse_task_frame: task sheet -> (rows, headers) with junk columns removed
- build_assignment_frame / create_assignment_workbook: merge assignments back
  into the task rows and write an .xlsx
- build_month_totals_frame / create_month_totals_workbook: month totals per
  staff member as an .xlsx
"""

import io
import logging
import math
import re
from typing import Any, Dict, List, Sequence, Tuple

import pandas as pd

from voucher_alloc.logics.code_normalizer import find_column, normalize_code
from voucher_alloc.logics.domain import AssignmentItem, StaffMember, TaskRow

logger = logging.getLogger(__name__)

CODE_HINTS = ["ma nv", "ma_nhan_vien", "employee code", "employee_code", "code", "ma nhan vien"]
NAME_HINTS = ["ten", "nhan vien", "ten nhan vien", "name"]
WEIGHT_HINTS = ["ti le", "ty le", "percent", "ratio", "%", "ti le phan cong", "ty le phan cong"]
ONLINE_HINTS = ["di lam", "online", "trang thai", "status", "off", "vang", "nghi"]
WAREHOUSE_HINTS = ["ma kho", "warehouse", "warehouses", "kho", "kho lam"]

OFFLINE_PATTERN = re.compile(r'^\s*(off|0|false|nghi|vang)\s*$', re.IGNORECASE)
WAREHOUSE_SEPARATORS = re.compile(r'[,\s;]+')
JUNK_COLUMN = re.compile(r'^(__EMPTY|Unnamed:)', re.IGNORECASE)

ASSIGNED_CODE_COLUMN = "assigned_code"
ASSIGNED_NAME_COLUMN = "assigned_name"
ASSIGNMENT_SHEET = "Assignments"

MONTH_TOTALS_SHEET = "ThongKeThang"
MONTH_TOTALS_COLUMNS = {
    'userCode': 'ma_nhan_vien',
    'userName': 'ten_nhan_vien',
    'assignedCount': 'tong_so_viec',
}

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _cell_text(value: Any) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return ''
    return str(value).strip()


def _parse_weight(value: Any) -> float:
    try:
        weight = float(value)
    except (TypeError, ValueError):
        return 100.0
    if not math.isfinite(weight):
        return 100.0
    return max(0.0, weight)


def _parse_warehouses(value: Any) -> List[str]:
    raw = _cell_text(value)
    if not raw:
        return []
    unique = []
    for part in WAREHOUSE_SEPARATORS.split(raw):
        code = normalize_code(part)
        if code and code not in unique:
            unique.append(code)
    return unique


def parse_staff_frame(df: pd.DataFrame) -> List[StaffMember]:
    """
    Parse a staff sheet.

    Column detection (first header containing a hint):
        code -> falls back to the first column
        name -> falls back to the first other column, then the code column
        weight (optional, default 100), online (optional, default online),
        warehouses (optional, comma/semicolon/space separated)

    Rows without a usable code are dropped.
    """
    if df is None or df.empty:
        return []

    headers = [str(h) for h in df.columns]
    df = df.copy()
    df.columns = headers

    code_key = find_column(headers, CODE_HINTS) or headers[0]
    # "Ma nhan vien" also contains the name hint "nhan vien"
    remaining = [h for h in headers if h != code_key]
    name_key = find_column(remaining, NAME_HINTS) or (remaining[0] if remaining else code_key)
    weight_key = find_column(remaining, WEIGHT_HINTS)
    online_key = find_column(remaining, ONLINE_HINTS)
    warehouse_key = find_column(remaining, WAREHOUSE_HINTS)
    logger.info(
        f"[Spreadsheet] Staff columns: code={code_key!r}, name={name_key!r}, weight={weight_key!r}, "
        f"online={online_key!r}, warehouses={warehouse_key!r}"
    )

    staff = []
    for i, row in enumerate(df.to_dict(orient='records')):
        code = normalize_code(_cell_text(row.get(code_key)) or f"U{i + 1}")
        name = _cell_text(row.get(name_key)) or _cell_text(row.get(code_key)) or f"U{i + 1}"
        weight = _parse_weight(row.get(weight_key)) if weight_key else 100.0
        online_text = _cell_text(row.get(online_key)) if online_key else 'true'
        online = bool(online_text) and not OFFLINE_PATTERN.match(online_text)
        warehouses = _parse_warehouses(row.get(warehouse_key)) if warehouse_key else []

        if not code:
            continue
        staff.append(StaffMember(
            code=code,
            name=name,
            weight_pct=weight,
            online=online,
            warehouses=warehouses,
            order=i,
        ))

    logger.info(f"[Spreadsheet] Parsed {len(staff)} staff rows")
    return staff


def parse_task_frame(df: pd.DataFrame) -> Tuple[List[Dict[str, Any]], List[str]]:
    """
    Parse a task sheet into plain row dicts.

    Drops unnamed/blank columns and replaces missing cells with "".
    """
    if df is None or df.empty:
        return [], []
    keep = [
        c for c in df.columns
        if str(c).strip() and not JUNK_COLUMN.match(str(c))
    ]
    cleaned = df[keep].copy()
    cleaned.columns = [str(c) for c in keep]
    cleaned = cleaned.astype(object).where(pd.notna(cleaned), '')
    headers = list(cleaned.columns)
    return cleaned.to_dict(orient='records'), headers


def build_assignment_frame(
    rows: Sequence[TaskRow],
    headers: Sequence[str],
    assignments: Sequence[AssignmentItem]
) -> pd.DataFrame:
    """Task rows with the assigned staff code and name prepended."""
    by_index = {a.task_index: a for a in assignments}
    records = []
    for i, row in enumerate(rows):
        assigned = by_index.get(i)
        record = {
            ASSIGNED_CODE_COLUMN: assigned.user_code if assigned else '',
            ASSIGNED_NAME_COLUMN: assigned.user_name if assigned else '',
        }
        for header in headers:
            value = row.get(header)
            record[header] = '' if value is None else value
        records.append(record)
    columns = [ASSIGNED_CODE_COLUMN, ASSIGNED_NAME_COLUMN, *headers]
    return pd.DataFrame(records, columns=columns)


def _write_workbook(frame: pd.DataFrame, sheet_name: str) -> io.BytesIO:
    output = io.BytesIO()
    with pd.ExcelWriter(output, engine='openpyxl') as writer:
        frame.to_excel(writer, sheet_name=sheet_name, index=False)
    output.seek(0)
    return output


def create_assignment_workbook(frame: pd.DataFrame) -> io.BytesIO:
    """Write the merged assignment frame to an in-memory .xlsx."""
    return _write_workbook(frame, ASSIGNMENT_SHEET)


def build_month_totals_frame(totals: Sequence[Dict[str, Any]]) -> pd.DataFrame:
    """
    Month totals in the export layout.

    Args:
        totals: Rows with userCode, userName and assignedCount

    Returns:
        DataFrame with ma_nhan_vien / ten_nhan_vien / tong_so_viec columns,
        in the order given
    """
    records = [
        {
            column: total.get(field, 0 if field == 'assignedCount' else '')
            for field, column in MONTH_TOTALS_COLUMNS.items()
        }
        for total in totals
    ]
    frame = pd.DataFrame(records, columns=list(MONTH_TOTALS_COLUMNS.values()))
    frame['tong_so_viec'] = frame['tong_so_viec'].astype(int)
    return frame


def create_month_totals_workbook(frame: pd.DataFrame) -> io.BytesIO:
    return _write_workbook(frame, MONTH_TOTALS_SHEET)


def month_totals_filename(month: str) -> str:
    return f"thong_ke_{month}.xlsx"
