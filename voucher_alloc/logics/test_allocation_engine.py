"""
Unit tests for the block-voucher allocation engine.

Covers:
  - Worked scenarios (weighted owners, empty batch, single staff)
  - Completeness and block atomicity of the assignment
  - Ownership preference and the foreign-warehouse cap ladder
  - Overshoot budget (granted once) and forced assignment

Run with:
    python3 -m pytest voucher_alloc/logics/test_allocation_engine.py -v
"""

from collections import Counter, defaultdict

import pytest

from voucher_alloc.logics.allocation_engine import (
    AllocationStep,
    StaffState,
    allocate,
    force_assign,
    place_block,
    select_active_staff,
)
from voucher_alloc.logics.block_grouper import Block, group_rows
from voucher_alloc.logics.domain import AllocationConfig, StaffMember


# ============================================================================
# HELPERS
# ============================================================================

def make_rows(*spec):
    """make_rows(("V1", "W1", 3), ...) -> 3 rows of voucher V1 exported from W1."""
    rows = []
    for voucher, export, count in spec:
        rows.extend({"Voucher": voucher, "Export": export} for _ in range(count))
    return rows


def counts_of(result):
    return {s.user_code: s.count for s in result.summary}


def run(staff, rows, config=None):
    return allocate(staff, rows, voucher_key="Voucher", export_key="Export", config=config)


@pytest.fixture
def abc_staff():
    return [
        StaffMember(code="A", weight_pct=200, warehouses=["W1"]),
        StaffMember(code="B", weight_pct=100, warehouses=["W2"]),
        StaffMember(code="C", weight_pct=100),
    ]


# ============================================================================
# WORKED SCENARIOS
# ============================================================================

class TestWorkedScenarios:

    def test_two_owner_blocks(self, abc_staff):
        """A (200, W1), B (100, W2), C (100) over two 4-row blocks."""
        result = run(abc_staff, make_rows(("V1", "W1", 4), ("V2", "W2", 4)))

        assert result.quotas == {"A": 4, "B": 2, "C": 2}
        assert counts_of(result) == {"A": 4, "B": 4, "C": 0}
        assert [a.user_code for a in result.assignments] == ["A"] * 4 + ["B"] * 4

    def test_empty_task_list(self, abc_staff):
        result = run(abc_staff, [])
        assert result.assignments == []
        assert counts_of(result) == {"A": 0, "B": 0, "C": 0}

    def test_single_staff_no_voucher_column(self):
        staff = [StaffMember(code="solo", weight_pct=150)]
        rows = [{"Qty": i} for i in range(10)]

        result = allocate(staff, rows)

        assert result.quotas == {"SOLO": 10}
        assert len(result.assignments) == 10
        assert {a.user_code for a in result.assignments} == {"SOLO"}
        assert len(result.decisions) == 10

    def test_no_active_staff(self):
        staff = [
            StaffMember(code="A", online=False),
            StaffMember(code="B", weight_pct=0),
        ]
        result = run(staff, make_rows(("V1", "W1", 2)))
        assert result.assignments == []
        assert counts_of(result) == {"A": 0, "B": 0}


# ============================================================================
# STRUCTURAL PROPERTIES
# ============================================================================

class TestAssignmentProperties:

    @pytest.fixture
    def mixed_rows(self):
        return make_rows(
            ("V1", "W1", 3), ("V2", "W2", 2), ("", "W3", 1), ("V3", "W1", 4),
            ("V4", "W9", 1), ("V1", "W2", 2), ("", "", 1), ("V5", "W2", 3),
        )

    def test_every_row_assigned_exactly_once(self, abc_staff, mixed_rows):
        result = run(abc_staff, mixed_rows)
        indices = [a.task_index for a in result.assignments]
        assert indices == list(range(len(mixed_rows)))

    def test_counts_sum_to_row_count(self, abc_staff, mixed_rows):
        result = run(abc_staff, mixed_rows)
        assert sum(counts_of(result).values()) == len(mixed_rows)
        assert Counter(a.user_code for a in result.assignments) == Counter(
            {code: n for code, n in counts_of(result).items() if n}
        )

    def test_blocks_are_never_split(self, abc_staff, mixed_rows):
        result = run(abc_staff, mixed_rows)
        owner_of = {a.task_index: a.user_code for a in result.assignments}
        for block in group_rows(mixed_rows, "Voucher", "Export"):
            assert len({owner_of[i] for i in block.indices}) == 1

    def test_only_active_staff_receive_rows(self, mixed_rows):
        staff = [
            StaffMember(code="A", weight_pct=100, warehouses=["W1"]),
            StaffMember(code="OFF", weight_pct=100, online=False, warehouses=["W2"]),
            StaffMember(code="ZERO", weight_pct=0, warehouses=["W2"]),
            StaffMember(code="B", weight_pct=100),
        ]
        result = run(staff, mixed_rows)
        assert {a.user_code for a in result.assignments} <= {"A", "B"}
        assert counts_of(result)["OFF"] == 0
        assert counts_of(result)["ZERO"] == 0

    def test_summary_lists_every_staff_member_once(self):
        staff = [
            StaffMember(code="A", weight_pct=100),
            StaffMember(code="a", weight_pct=300),
            StaffMember(code="B", weight_pct=100),
            StaffMember(code=""),
        ]
        result = run(staff, make_rows(("V1", "W1", 1), ("V2", "W1", 1), ("V3", "W1", 1), ("V4", "W1", 1)))
        assert [s.user_code for s in result.summary] == ["A", "B"]
        # First occurrence wins: A participates with weight 100, not 300
        assert result.quotas == {"A": 2, "B": 2}

    def test_deterministic(self, abc_staff, mixed_rows):
        first = run(abc_staff, mixed_rows)
        second = run(abc_staff, mixed_rows)
        assert first.assignments == second.assignments
        assert first.decisions == second.decisions


# ============================================================================
# OWNERSHIP AND FOREIGN CAP
# ============================================================================

class TestOwnershipAndForeignCap:

    def test_owner_with_room_beats_earlier_staff(self):
        staff = [
            StaffMember(code="A", weight_pct=100),
            StaffMember(code="B", weight_pct=100, warehouses=["W2"]),
        ]
        result = run(staff, make_rows(("V1", "W2", 1), ("V2", "X9", 1)))

        assert result.assignments[0].user_code == "B"
        assert result.decisions[0].step == AllocationStep.OWNER_WITH_ROOM
        assert result.assignments[1].user_code == "A"
        assert result.decisions[1].step == AllocationStep.FOREIGN_WITH_ROOM

    def test_ownership_uses_normalized_codes(self):
        staff = [
            StaffMember(code="A", weight_pct=100),
            StaffMember(code="B", weight_pct=100, warehouses=["007"]),
        ]
        result = run(staff, make_rows(("V1", "7", 1), ("V2", "X", 1)))
        assert result.assignments[0].user_code == "B"

    def test_owned_blocks_go_to_owner_when_room_exists(self):
        staff = [
            StaffMember(code="A", weight_pct=100, warehouses=["W1"]),
            StaffMember(code="B", weight_pct=100, warehouses=["W2"]),
            StaffMember(code="C", weight_pct=100, warehouses=["W3"]),
        ]
        rows = make_rows(*[(f"V{i}", f"W{i % 3 + 1}", 1) for i in range(12)])

        result = run(staff, rows)

        owner = {"W1": "A", "W2": "B", "W3": "C"}
        for row, assignment in zip(rows, result.assignments):
            assert assignment.user_code == owner[row["Export"]]
        assert not result.escalated

    def test_foreign_cap_holds_without_escalation(self, abc_staff):
        rows = make_rows(
            ("V1", "W1", 2), ("V2", "W2", 1), ("V3", "W3", 1), ("V4", "W4", 1),
            ("V5", "W5", 1), ("V6", "W1", 2), ("V7", "W2", 1), ("V8", "W6", 1),
        )
        result = run(abc_staff, rows)
        assert not result.escalated
        for exports in result.foreign_exports.values():
            assert len(exports) <= 2

    def test_cap_escalates_then_forces(self):
        staff = [StaffMember(code="X", weight_pct=100)]
        rows = make_rows(("V1", "E1", 1), ("V2", "E2", 1), ("V3", "E3", 1), ("V4", "E4", 1), ("V5", "E5", 1))

        result = run(staff, rows)

        assert [d.foreign_cap for d in result.decisions] == [2, 2, 3, 4, None]
        assert [d.step for d in result.decisions] == [AllocationStep.FOREIGN_WITH_ROOM] * 4 + [AllocationStep.FORCED]
        assert result.escalated
        assert counts_of(result) == {"X": 5}

    def test_custom_cap_levels(self):
        staff = [StaffMember(code="X", weight_pct=100)]
        rows = make_rows(("V1", "E1", 1), ("V2", "E2", 1), ("V3", "E3", 1))
        config = AllocationConfig(foreign_cap_levels=(1, 5))

        result = run(staff, rows, config=config)

        assert [d.foreign_cap for d in result.decisions] == [1, 5, 5]


# ============================================================================
# OVERSHOOT AND FORCED ASSIGNMENT
# ============================================================================

class TestOvershootAndForce:

    @pytest.fixture
    def no_foreign(self):
        return AllocationConfig(foreign_cap_levels=(0,))

    def test_overshoot_budget_is_used_once(self, no_foreign):
        staff = [
            StaffMember(code="A", weight_pct=100, warehouses=["W1"]),
            StaffMember(code="B", weight_pct=100, warehouses=["W2"]),
        ]
        rows = make_rows(("V1", "W1", 3), ("V2", "W1", 3), ("V3", "W1", 2))

        result = run(staff, rows, config=no_foreign)

        assert [d.step for d in result.decisions] == [
            AllocationStep.OWNER_WITH_ROOM,
            AllocationStep.OWNER_OVERSHOOT,
            AllocationStep.FORCED,
        ]
        assert counts_of(result) == {"A": 8, "B": 0}

    def test_partial_weight_staff_get_no_overshoot(self, no_foreign):
        staff = [
            StaffMember(code="A", weight_pct=50, warehouses=["W1"]),
            StaffMember(code="B", weight_pct=100, warehouses=["W2"]),
        ]
        rows = make_rows(("V1", "W1", 3), ("V2", "W2", 1))

        result = run(staff, rows, config=no_foreign)

        # A's quota is 1; the 3-row W1 block cannot use an overshoot token
        assert result.decisions[0].step == AllocationStep.FORCED
        assert result.decisions[0].user_code == "A"

    def test_forced_prefers_partial_weight_staff_with_room(self, no_foreign):
        staff = [
            StaffMember(code="A", weight_pct=100, warehouses=["W1"]),
            StaffMember(code="B", weight_pct=50),
        ]
        rows = make_rows(("V1", "W9", 1), ("V2", "W9", 1), ("V3", "W9", 1))

        result = run(staff, rows, config=no_foreign)

        assert result.quotas == {"A": 2, "B": 1}
        assert [a.user_code for a in result.assignments] == ["B", "A", "A"]
        assert all(d.step == AllocationStep.FORCED for d in result.decisions)


class TestLadderPieces:
    """place_block / force_assign on hand-built state."""

    def _state(self, code, quota, rank=0, weight=100, warehouses=(), overshoot=True):
        member = StaffMember(code=code, weight_pct=weight, warehouses=list(warehouses))
        return StaffState(member=member, rank=rank, quota=quota, overshoot_available=overshoot)

    def test_owner_overshoot_needs_token(self):
        block = Block(key=("V1", "W1"), indices=[0], export_codes=["W1"])
        owner = self._state("A", quota=0, warehouses=["W1"])
        config = AllocationConfig()

        _, step, cap = place_block(block, [owner], config)
        assert (step, cap) == (AllocationStep.OWNER_OVERSHOOT, 2)

        owner.overshoot_available = False
        _, step, cap = place_block(block, [owner], config)
        assert (step, cap) == (AllocationStep.FORCED, None)

    def test_balance_prefers_larger_deficit(self):
        block = Block(key=("V1", "W1"), indices=[0], export_codes=["W1"])
        a = self._state("A", quota=2, rank=0, warehouses=["W1"])
        b = self._state("B", quota=5, rank=1, warehouses=["W1"])
        chosen, step, _ = place_block(block, [a, b], AllocationConfig())
        assert chosen is b
        assert step == AllocationStep.OWNER_WITH_ROOM

    def test_force_assign_without_staff_raises(self):
        block = Block(key=("V1", ""), indices=[0], export_codes=[""])
        with pytest.raises(ValueError):
            force_assign(block, [], AllocationConfig())

    def test_record_tracks_foreign_exports(self):
        state = self._state("A", quota=5, warehouses=["W1"])
        state.record(Block(key=("V1", "W1"), indices=[0, 1], export_codes=["W1", "W1"]))
        state.record(Block(key=("V2", "W7"), indices=[2], export_codes=["W7"]))
        assert state.assigned == 3
        assert state.foreign_exports == {"W7"}

    def test_select_active_staff_skips_inactive_and_duplicates(self):
        staff = [
            StaffMember(code="A"),
            StaffMember(code="A", weight_pct=50),
            StaffMember(code="B", online=False),
            StaffMember(code="C", weight_pct=float("nan")),
        ]
        assert [m.code for m in select_active_staff(staff)] == ["A"]


class TestResultSerialization:

    def test_to_dict_shape(self, abc_staff):
        data = run(abc_staff, make_rows(("V1", "W1", 4), ("V2", "W2", 4))).to_dict()
        assert set(data) == {"summary", "assignments", "quotas", "foreignExports", "escalated", "decisions"}
        assert data["summary"][0] == {
            "userCode": "A", "userName": "A", "weightPct": 200.0, "online": True, "count": 4,
        }
        assert data["decisions"][0]["step"] == "owner_with_room"
        grouped = defaultdict(list)
        for a in data["assignments"]:
            grouped[a["userCode"]].append(a["taskIndex"])
        assert grouped == {"A": [0, 1, 2, 3], "B": [4, 5, 6, 7]}
