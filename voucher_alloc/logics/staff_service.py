"""
Utility functions for managing the staff roster.

Wraps DBManager staff operations with normalization and converts storage
failures into PersistenceException so callers can report and retry.
"""

import logging
from typing import Iterable, List, Sequence

from sqlalchemy.exc import SQLAlchemyError

from voucher_alloc.logics.code_normalizer import normalize_code
from voucher_alloc.logics.core_utils import CoreUtils
from voucher_alloc.logics.db import StaffModel
from voucher_alloc.logics.domain import StaffMember, safe_weight
from voucher_alloc.logics.exceptions import PersistenceException, StaffNotFoundException

logger = logging.getLogger(__name__)


def _staff_manager(core_utils: CoreUtils):
    return core_utils.get_db_manager(StaffModel)


def _record_from_member(member: StaffMember) -> dict:
    return {
        'code': member.code,
        'name': member.name,
        'weightPct': member.weight_pct,
        'online': member.online,
        'warehouses': list(member.warehouses),
        'active': True,
    }


def upsert_staff_bulk(staff: Iterable[StaffMember], core_utils: CoreUtils) -> int:
    """
    Insert or merge many staff members. Members without a code are skipped.

    Stored ordering is preserved for existing codes.

    Returns:
        Number of records written
    """
    records = [_record_from_member(m) for m in staff if m.code]
    if not records:
        logger.info("[Staff] Bulk upsert called with no usable records")
        return 0
    try:
        return _staff_manager(core_utils).upsert_staff_records(records)
    except SQLAlchemyError as e:
        raise PersistenceException("upsert_staff_bulk", str(e)) from e


def upsert_staff(member: StaffMember, core_utils: CoreUtils, active: bool = True) -> StaffMember:
    """Create or update a single staff member."""
    if not member.code:
        raise ValueError("staff code cannot be empty")
    record = _record_from_member(member)
    record['active'] = active
    try:
        _staff_manager(core_utils).upsert_staff_records([record])
    except SQLAlchemyError as e:
        raise PersistenceException("upsert_staff", str(e)) from e
    logger.info(f"[Staff] Saved {member.code}")
    return member


def list_staff(core_utils: CoreUtils, active_only: bool = True) -> List[StaffMember]:
    """Staff sorted by stored order (allocation priority)."""
    try:
        records = _staff_manager(core_utils).list_staff_records(active_only=active_only)
    except SQLAlchemyError as e:
        raise PersistenceException("list_staff", str(e)) from e
    return [
        StaffMember(
            code=r['code'],
            name=r['name'],
            weight_pct=r['weightPct'],
            online=r['online'],
            warehouses=r['warehouses'],
            order=r['order'],
        )
        for r in records
    ]


def _update(code: str, fields: dict, operation: str, core_utils: CoreUtils) -> None:
    code = normalize_code(code)
    try:
        found = _staff_manager(core_utils).update_staff_fields(code, fields)
    except SQLAlchemyError as e:
        raise PersistenceException(operation, str(e)) from e
    if not found:
        raise StaffNotFoundException(code)


def update_staff_online(code: str, online: bool, core_utils: CoreUtils) -> None:
    _update(code, {'Status': 'online' if online else 'offline'}, "update_staff_online", core_utils)


def update_staff_weight(code: str, weight_pct: float, core_utils: CoreUtils) -> None:
    _update(code, {'WeightPct': safe_weight(weight_pct)}, "update_staff_weight", core_utils)


def update_staff_warehouses(code: str, warehouses: Sequence[str], core_utils: CoreUtils) -> None:
    # Route through StaffMember so warehouse codes are normalized and de-duplicated
    normalized = StaffMember(code=code, warehouses=list(warehouses or [])).warehouses
    _update(code, {'Warehouses': normalized}, "update_staff_warehouses", core_utils)


def delete_staff(code: str, core_utils: CoreUtils) -> None:
    code = normalize_code(code)
    try:
        deleted = _staff_manager(core_utils).delete_staff_record(code)
    except SQLAlchemyError as e:
        raise PersistenceException("delete_staff", str(e)) from e
    if not deleted:
        raise StaffNotFoundException(code)


def save_staff_ordering(codes_in_order: Sequence[str], core_utils: CoreUtils) -> List[str]:
    """
    Store list position as allocation priority.

    Returns:
        Codes that were not found and skipped
    """
    codes = [normalize_code(c) for c in codes_in_order or []]
    codes = [c for c in codes if c]
    if not codes:
        return []
    try:
        return _staff_manager(core_utils).save_staff_ordering(codes)
    except SQLAlchemyError as e:
        raise PersistenceException("save_staff_ordering", str(e)) from e
