"""
Month statistics persistence.

Two stores back the fairness ledger:
- month_stats_entries: append-only log of per-day assigned counts
- month_aggregates: the settled MonthAggregate, one row per YYYY-MM

Callers must not settle the same month from two writers at once; the
aggregate write is last-write-wins.
"""

import logging
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import pandas as pd
from sqlalchemy.exc import SQLAlchemyError

from voucher_alloc.logics.code_normalizer import normalize_code
from voucher_alloc.logics.core_utils import CoreUtils
from voucher_alloc.logics.db import MonthAggregateModel, MonthStatsEntryModel
from voucher_alloc.logics.domain import AllocationSummary, MonthAggregate, StaffMember
from voucher_alloc.logics.exceptions import (
    InvalidMonthKeyException,
    MonthAggregateMismatchException,
    PersistenceException,
)
from voucher_alloc.logics.fairness import day_key, month_key, settle_day

logger = logging.getLogger(__name__)

MONTH_KEY_PATTERN = re.compile(r'^\d{4}-(0[1-9]|1[0-2])$')


def validate_month_key(value: str) -> str:
    """Return the key unchanged, raising InvalidMonthKeyException if not YYYY-MM."""
    value = str(value or '').strip()
    if not MONTH_KEY_PATTERN.match(value):
        raise InvalidMonthKeyException(value)
    return value


def log_assignment_today(
    items: Iterable[Mapping[str, Any]],
    core_utils: CoreUtils,
    for_date: Optional[Union[date, datetime]] = None
) -> int:
    """
    Append one entry per item to the month's log.

    Args:
        items: Dicts with userCode and optional assignedCount, assignedValue, meta
        core_utils: Storage access
        for_date: Day being logged (today when omitted)

    Returns:
        Number of entries written
    """
    for_date = for_date or date.today()
    key = month_key(for_date)
    records = [
        {
            'MonthKey': key,
            'UserCode': normalize_code(item.get('userCode')),
            'AssignedCount': int(item.get('assignedCount') or 0),
            'AssignedValue': float(item.get('assignedValue') or 0),
            'Meta': item.get('meta'),
            'EntryDate': day_key(for_date),
        }
        for item in items
    ]
    records = [r for r in records if r['UserCode']]
    if not records:
        return 0

    try:
        db_manager = core_utils.get_db_manager(MonthStatsEntryModel)
        db_manager.save_to_db(pd.DataFrame(records))
    except SQLAlchemyError as e:
        raise PersistenceException("log_assignment_today", str(e)) from e

    logger.info(f"[MonthStats] Logged {len(records)} entries for {key}")
    return len(records)


def get_month_entries(month: str, core_utils: CoreUtils) -> List[Dict[str, Any]]:
    """All logged entries for a month, oldest first."""
    month = validate_month_key(month)
    try:
        df = core_utils.get_db_manager(MonthStatsEntryModel).get_month_entries_df(month)
    except SQLAlchemyError as e:
        raise PersistenceException("get_month_entries", str(e)) from e
    return df.to_dict(orient='records')


def aggregate_by_user(entries: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """
    Sum assigned count and value per user code.

    Returns:
        [{"userCode", "assignedCount", "assignedValue"}] sorted by total count
        descending, then code
    """
    entries = list(entries)
    if not entries:
        return []
    df = pd.DataFrame(entries)
    for column in ('assignedCount', 'assignedValue'):
        if column not in df.columns:
            df[column] = 0
        df[column] = pd.to_numeric(df[column], errors='coerce').fillna(0)
    df['userCode'] = df['userCode'].map(normalize_code)
    df = df[df['userCode'] != '']

    totals = (
        df.groupby('userCode', as_index=False)[['assignedCount', 'assignedValue']]
        .sum()
        .sort_values(['assignedCount', 'userCode'], ascending=[False, True])
    )
    totals['assignedCount'] = totals['assignedCount'].astype(int)
    totals['assignedValue'] = totals['assignedValue'].astype(float)
    return totals.to_dict(orient='records')


def attach_staff_names(
    totals: Iterable[Mapping[str, Any]],
    staff: Sequence[StaffMember]
) -> List[Dict[str, Any]]:
    """Add userName to each total. Codes no longer on the roster show the code itself."""
    name_by_code: Dict[str, str] = {}
    for member in staff:
        code = normalize_code(member.code)
        if code and code not in name_by_code:
            name_by_code[code] = member.name or code
    return [
        {**total, 'userName': name_by_code.get(total['userCode'], total['userCode'])}
        for total in totals
    ]


def load_month_aggregate(month: str, core_utils: CoreUtils) -> Optional[MonthAggregate]:
    month = validate_month_key(month)
    try:
        payload = core_utils.get_db_manager(MonthAggregateModel).get_month_aggregate(month)
    except SQLAlchemyError as e:
        raise PersistenceException("load_month_aggregate", str(e)) from e
    return MonthAggregate.from_dict(payload) if payload else None


def save_month_aggregate(agg: MonthAggregate, core_utils: CoreUtils, month: Optional[str] = None) -> None:
    month = validate_month_key(month or agg.month_key)
    if agg.month_key != month:
        raise MonthAggregateMismatchException(expected=month, actual=agg.month_key)
    try:
        core_utils.get_db_manager(MonthAggregateModel).save_month_aggregate(month, agg.to_dict())
    except SQLAlchemyError as e:
        raise PersistenceException("save_month_aggregate", str(e)) from e
    logger.info(f"[MonthStats] Saved aggregate for {month}")


def settle_day_and_get_agg(
    staff: Sequence[StaffMember],
    summary: Iterable[Union[AllocationSummary, Mapping[str, Any]]],
    core_utils: CoreUtils,
    for_date: Optional[Union[date, datetime]] = None
) -> MonthAggregate:
    """Load the month aggregate, fold today in, save it back and return it."""
    for_date = for_date or date.today()
    key = month_key(for_date)
    prior = load_month_aggregate(key, core_utils)
    agg = settle_day(for_date, staff, summary, prior)
    save_month_aggregate(agg, core_utils)
    return agg
