"""
Tests for the allocate -> log -> settle -> reorder workflow.
"""

from datetime import date
from unittest.mock import patch

import pytest

from voucher_alloc.logics.allocation_workflow import run_allocation
from voucher_alloc.logics.code_normalizer import GroupKeys
from voucher_alloc.logics.core_utils import CoreUtils
from voucher_alloc.logics.domain import StaffMember
from voucher_alloc.logics.exceptions import PersistenceException
from voucher_alloc.logics.month_stats import get_month_entries, load_month_aggregate
from voucher_alloc.logics.staff_service import list_staff, upsert_staff_bulk

RUN_DATE = date(2025, 3, 3)
KEYS = GroupKeys(voucher_key="Voucher", export_key="Export")


@pytest.fixture
def core_utils(tmp_path):
    cu = CoreUtils(f"sqlite:///{tmp_path / 'workflow.db'}")
    upsert_staff_bulk([
        StaffMember(code="A", weight_pct=200, warehouses=["W1"]),
        StaffMember(code="B", weight_pct=100, warehouses=["W2"]),
        StaffMember(code="C", weight_pct=100),
    ], cu)
    return cu


@pytest.fixture
def rows():
    return (
        [{"Voucher": "V1", "Export": "W1"} for _ in range(4)]
        + [{"Voucher": "V2", "Export": "W2"} for _ in range(4)]
    )


def stored_codes(core_utils):
    return [m.code for m in list_staff(core_utils)]


class TestRunAllocation:

    def test_full_run_settles_and_reorders(self, core_utils, rows):
        result = run_allocation(list_staff(core_utils), rows, KEYS, core_utils, for_date=RUN_DATE)

        assert result.persisted
        assert result.error == ""
        assert result.month_key == "2025-03"
        assert {s.user_code: s.count for s in result.allocation.summary} == {"A": 4, "B": 4, "C": 0}

        # expected 4/2/2 vs actual 4/4/0 -> C owed the most, B the least
        assert result.aggregate.deficit == {"A": 0.0, "B": -2.0, "C": 2.0}
        assert result.reordered_codes == ["C", "A", "B"]
        assert stored_codes(core_utils) == ["C", "A", "B"]

        entries = get_month_entries("2025-03", core_utils)
        assert {e["userCode"]: e["assignedCount"] for e in entries} == {"A": 4, "B": 4, "C": 0}
        assert entries[0]["meta"]["source"] == "api-allocate"
        assert load_month_aggregate("2025-03", core_utils) == result.aggregate

    def test_test_mode_writes_nothing(self, core_utils, rows):
        result = run_allocation(list_staff(core_utils), rows, KEYS, core_utils, for_date=RUN_DATE, test_mode=True)

        assert len(result.allocation.assignments) == 8
        assert not result.persisted
        assert result.aggregate is None
        assert get_month_entries("2025-03", core_utils) == []
        assert load_month_aggregate("2025-03", core_utils) is None
        assert stored_codes(core_utils) == ["A", "B", "C"]

    def test_empty_batch_skips_bookkeeping(self, core_utils):
        result = run_allocation(list_staff(core_utils), [], KEYS, core_utils, for_date=RUN_DATE)
        assert result.allocation.assignments == []
        assert not result.persisted
        assert load_month_aggregate("2025-03", core_utils) is None

    def test_storage_failure_keeps_allocation(self, core_utils, rows):
        failure = PersistenceException("save_month_aggregate", "database is locked")
        with patch(
            "voucher_alloc.logics.allocation_workflow.settle_day_and_get_agg",
            side_effect=failure
        ):
            result = run_allocation(list_staff(core_utils), rows, KEYS, core_utils, for_date=RUN_DATE)

        assert not result.persisted
        assert result.error == failure.message
        assert len(result.allocation.assignments) == 8
        assert stored_codes(core_utils) == ["A", "B", "C"]

    def test_to_dict(self, core_utils, rows):
        data = run_allocation(list_staff(core_utils), rows, KEYS, core_utils, for_date=RUN_DATE).to_dict()
        assert data["monthKey"] == "2025-03"
        assert data["persisted"] is True
        assert data["testMode"] is False
        assert data["aggregate"]["monthKey"] == "2025-03"
        assert data["reorderedCodes"] == ["C", "A", "B"]
        assert len(data["assignments"]) == 8
