"""
Month-to-date fairness ledger and next-day priority ordering.

settle_day() folds one day's allocation into the month aggregate:

  expected share = rows_today * weight / sum(active weights)
  expectedCum   += expected share   (every staff member listed today)
  actualCum     += rows assigned    (every staff member in today's summary)
  deficit        = expectedCum - actualCum

A positive deficit means the staff member received less than their weight
entitled them to this month. reorder_by_deficit() puts those staff first so
tomorrow's tie-breaks favour them.

settle_day() is not idempotent: settling the same day twice counts it twice.
"""

import logging
from datetime import date, datetime
from typing import Iterable, List, Mapping, Optional, Sequence, Union

from voucher_alloc.logics.code_normalizer import normalize_code
from voucher_alloc.logics.domain import AllocationSummary, MonthAggregate, StaffMember

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime]


def month_key(for_date: Optional[DateLike] = None) -> str:
    """'YYYY-MM' for the given date (today when omitted)."""
    for_date = for_date or date.today()
    return f"{for_date.year:04d}-{for_date.month:02d}"


def day_key(for_date: DateLike) -> str:
    """'YYYY-MM-DD' for the given date."""
    return f"{for_date.year:04d}-{for_date.month:02d}-{for_date.day:02d}"


def expected_shares(staff_today: Sequence[StaffMember], total_today: float) -> dict:
    """
    Split today's total over active staff by weight.

    Inactive staff get 0 and do not dilute the denominator. A duplicated
    code counts once, with the first active occurrence's weight.
    """
    active = {}
    for member in staff_today:
        if member.is_active and member.code not in active:
            active[member.code] = member
    active_weight = sum(m.weight_pct for m in active.values())

    shares = {}
    for member in staff_today:
        if not member.code:
            continue
        if member.code in active and active_weight > 0:
            shares[member.code] = total_today * active[member.code].weight_pct / active_weight
        else:
            shares.setdefault(member.code, 0.0)
    return shares


def _summary_counts(today_summary: Iterable[Union[AllocationSummary, Mapping]]) -> dict:
    counts = {}
    for line in today_summary:
        if isinstance(line, AllocationSummary):
            code, count = line.user_code, line.count
        else:
            code = line.get('userCode', line.get('user_code'))
            count = line.get('count', 0)
        code = normalize_code(code)
        if not code:
            continue
        counts[code] = counts.get(code, 0) + int(count or 0)
    return counts


def settle_day(
    for_date: DateLike,
    staff_today: Sequence[StaffMember],
    today_summary: Iterable[Union[AllocationSummary, Mapping]],
    prior_agg: Optional[MonthAggregate] = None
) -> MonthAggregate:
    """
    Fold one day's allocation into the month aggregate.

    Args:
        for_date: The day being settled
        staff_today: Staff as configured today (weights and online status)
        today_summary: Per-staff counts from today's allocation
        prior_agg: Aggregate so far this month, None on the first settle

    Returns:
        A new MonthAggregate; prior_agg is left untouched
    """
    key = month_key(for_date)
    if prior_agg is not None and prior_agg.month_key and prior_agg.month_key != key:
        logger.warning(
            f"[Fairness] Prior aggregate is for {prior_agg.month_key}, settling {key}: starting a new month"
        )
        prior_agg = None

    agg = MonthAggregate(month_key=key)
    if prior_agg is not None:
        agg.expected_cum = dict(prior_agg.expected_cum)
        agg.actual_cum = dict(prior_agg.actual_cum)
        agg.last_served_at = dict(prior_agg.last_served_at)
        agg.version = prior_agg.version

    counts = _summary_counts(today_summary)
    total_today = sum(counts.values())

    for code, share in expected_shares(staff_today, total_today).items():
        agg.expected_cum[code] = agg.expected_cum.get(code, 0.0) + share

    today = day_key(for_date)
    for code, count in counts.items():
        agg.actual_cum[code] = agg.actual_cum.get(code, 0.0) + count
        if count:
            agg.last_served_at[code] = today

    codes = set(agg.expected_cum) | set(agg.actual_cum)
    agg.deficit = {
        code: agg.expected_cum.get(code, 0.0) - agg.actual_cum.get(code, 0.0)
        for code in sorted(codes)
    }

    logger.info(f"[Fairness] Settled {today}: {total_today} rows across {len(counts)} staff")
    return agg


def reorder_by_deficit(staff: Sequence[StaffMember], agg: Optional[MonthAggregate]) -> List[StaffMember]:
    """
    Priority order for the next run.

    Most under-served first, then online before offline, then the staff
    member served longest ago (never served sorts first), then code.
    """
    deficit = agg.deficit if agg else {}
    last_served = agg.last_served_at if agg else {}

    def sort_key(member: StaffMember):
        return (
            -deficit.get(member.code, 0.0),
            0 if member.online else 1,
            last_served.get(member.code, ''),
            member.code,
        )

    return sorted(staff, key=sort_key)
