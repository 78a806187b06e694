"""
Daily allocation workflow.

Runs the pure allocation engine and, outside test mode, records the outcome:
log today's counts, settle the month aggregate, reorder staff by deficit and
persist the new order. Storage failures after the allocation is computed do
not discard the result; they are reported on it instead.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional, Sequence, Union

from voucher_alloc.logics.allocation_engine import AllocationResult, allocate
from voucher_alloc.logics.code_normalizer import GroupKeys
from voucher_alloc.logics.core_utils import CoreUtils
from voucher_alloc.logics.domain import AllocationConfig, MonthAggregate, StaffMember, TaskRow
from voucher_alloc.logics.exceptions import PersistenceException
from voucher_alloc.logics.fairness import month_key, reorder_by_deficit
from voucher_alloc.logics.month_stats import log_assignment_today, settle_day_and_get_agg
from voucher_alloc.logics.staff_service import save_staff_ordering

logger = logging.getLogger(__name__)


@dataclass
class AllocationRunResult:
    """Allocation output plus the outcome of the bookkeeping that follows it."""
    allocation: AllocationResult
    month_key: str
    test_mode: bool
    persisted: bool = False
    aggregate: Optional[MonthAggregate] = None
    reordered_codes: List[str] = field(default_factory=list)
    error: str = ""  # Only populated if persistence failed

    def to_dict(self):
        return {
            **self.allocation.to_dict(),
            'monthKey': self.month_key,
            'testMode': self.test_mode,
            'persisted': self.persisted,
            'aggregate': self.aggregate.to_dict() if self.aggregate else None,
            'reorderedCodes': list(self.reordered_codes),
            'error': self.error,
        }


def run_allocation(
    staff: Sequence[StaffMember],
    rows: Sequence[TaskRow],
    keys: GroupKeys,
    core_utils: CoreUtils,
    for_date: Optional[Union[date, datetime]] = None,
    test_mode: bool = False,
    config: Optional[AllocationConfig] = None
) -> AllocationRunResult:
    """
    Allocate rows and, unless in test mode, settle the day.

    Args:
        staff: Staff in current priority order
        rows: Task rows
        keys: Resolved voucher / export-site columns
        core_utils: Storage access for logging, settlement and ordering
        for_date: Day being allocated (today when omitted)
        test_mode: Compute only; write nothing and keep the current order
        config: Allocation tuning

    Returns:
        AllocationRunResult. `persisted` is False with `error` set when a
        storage step failed; the allocation itself is always complete.
    """
    for_date = for_date or date.today()
    allocation = allocate(
        staff,
        rows,
        voucher_key=keys.voucher_key,
        export_key=keys.export_key,
        config=config,
    )
    result = AllocationRunResult(
        allocation=allocation,
        month_key=month_key(for_date),
        test_mode=test_mode,
    )

    if test_mode:
        logger.info("[Workflow] Test mode: allocation not logged, staff order unchanged")
        return result

    if not allocation.assignments:
        logger.info("[Workflow] No assignments produced, skipping settlement")
        return result

    try:
        log_assignment_today(
            [
                {
                    'userCode': s.user_code,
                    'assignedCount': s.count,
                    'meta': {'source': 'api-allocate', 'at': datetime.now().isoformat()},
                }
                for s in allocation.summary
            ],
            core_utils,
            for_date=for_date,
        )
        result.aggregate = settle_day_and_get_agg(staff, allocation.summary, core_utils, for_date=for_date)
        reordered = reorder_by_deficit(staff, result.aggregate)
        result.reordered_codes = [m.code for m in reordered if m.code]
        save_staff_ordering(result.reordered_codes, core_utils)
        result.persisted = True
    except PersistenceException as e:
        logger.error(f"[Workflow] Allocation computed but bookkeeping failed: {e.message} {e.context}")
        result.error = e.message

    return result
