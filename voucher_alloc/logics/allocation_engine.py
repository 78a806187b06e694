"""
Block-voucher allocation engine.

Assigns every task row to exactly one active staff member (online and
weight > 0). Rows are grouped into indivisible blocks (voucher + export site)
and blocks are handed out largest first against Hamilton row quotas.

Each block walks an escalation ladder until a candidate is found:

  For each foreign-warehouse cap level (default 2, then 3, then 4):
    1. Owner of the export site with room for the whole block
    2. Non-owner with room, staying within the foreign cap
    3. Owner overshooting quota (weight >= 100, unused overshoot budget)
    4. Non-owner overshooting quota within the foreign cap (same budget rule)
  Finally:
    5. Forced assignment: owners first, partial-weight staff with remaining
       room preferred, otherwise anyone

Within a step, candidates are ranked by balance score: largest live deficit,
then lowest utilization (assigned / quota), then earliest position in the
staff list.

The overshoot budget is one block per eligible staff member for the whole
run. It is not re-granted when the cap escalates.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from voucher_alloc.logics.block_grouper import Block, group_rows, order_for_allocation
from voucher_alloc.logics.code_normalizer import matches_any
from voucher_alloc.logics.domain import (
    AllocationConfig,
    AllocationSummary,
    AssignmentItem,
    StaffMember,
    TaskRow,
)
from voucher_alloc.logics.quota import compute_quota

logger = logging.getLogger(__name__)


# ============================================================================
# TYPE-SAFE DATA STRUCTURES
# ============================================================================

class AllocationStep(str, Enum):
    """Ladder step that produced a block's owner."""
    OWNER_WITH_ROOM = "owner_with_room"
    FOREIGN_WITH_ROOM = "foreign_with_room"
    OWNER_OVERSHOOT = "owner_overshoot"
    FOREIGN_OVERSHOOT = "foreign_overshoot"
    FORCED = "forced"


@dataclass
class StaffState:
    """Live per-staff bookkeeping for one run, keyed by staff code."""
    member: StaffMember
    rank: int
    quota: int
    assigned: int = 0
    overshoot_available: bool = False
    foreign_exports: Set[str] = field(default_factory=set)

    @property
    def code(self) -> str:
        return self.member.code

    @property
    def deficit(self) -> int:
        """Quota minus assigned rows; negative once overshot."""
        return self.quota - self.assigned

    @property
    def utilization(self) -> float:
        if self.quota > 0:
            return self.assigned / self.quota
        return 0.0 if self.assigned == 0 else float('inf')

    def balance_key(self) -> Tuple[int, float, int]:
        """Lower sorts first: most under-served, least utilized, earliest listed."""
        return (-self.deficit, self.utilization, self.rank)

    def owns(self, export_code: str) -> bool:
        return bool(export_code) and matches_any(export_code, self.member.warehouses)

    def has_room_for(self, block: Block) -> bool:
        return self.deficit >= block.size

    def new_foreign_exports(self, block: Block) -> Set[str]:
        """Export sites in the block that would newly count against the cap."""
        return {
            code for code in block.distinct_exports
            if code not in self.foreign_exports and not self.owns(code)
        }

    def within_foreign_cap(self, block: Block, cap: int) -> bool:
        return len(self.foreign_exports) + len(self.new_foreign_exports(block)) <= cap

    def record(self, block: Block) -> None:
        self.assigned += block.size
        self.foreign_exports |= self.new_foreign_exports(block)


@dataclass(frozen=True)
class BlockDecision:
    """Audit record of how one block was placed."""
    block_key: Tuple[str, str]
    size: int
    user_code: str
    step: AllocationStep
    foreign_cap: Optional[int]  # None for forced assignments


@dataclass
class AllocationResult:
    """Complete output of one allocation run."""
    summary: List[AllocationSummary]
    assignments: List[AssignmentItem]
    quotas: Dict[str, int] = field(default_factory=dict)
    decisions: List[BlockDecision] = field(default_factory=list)
    foreign_exports: Dict[str, List[str]] = field(default_factory=dict)
    baseline_cap: Optional[int] = None

    @property
    def escalated(self) -> bool:
        """True if any block needed a relaxed cap or a forced assignment."""
        return any(
            d.step == AllocationStep.FORCED or d.foreign_cap != self.baseline_cap
            for d in self.decisions
        )

    def to_dict(self) -> Dict:
        return {
            'summary': [s.to_dict() for s in self.summary],
            'assignments': [a.to_dict() for a in self.assignments],
            'quotas': dict(self.quotas),
            'foreignExports': {k: list(v) for k, v in self.foreign_exports.items()},
            'escalated': self.escalated,
            'decisions': [
                {
                    'blockKey': list(d.block_key),
                    'size': d.size,
                    'userCode': d.user_code,
                    'step': d.step.value,
                    'foreignCap': d.foreign_cap,
                }
                for d in self.decisions
            ],
        }


# ============================================================================
# CANDIDATE SELECTION
# ============================================================================

def pick_best(candidates: Sequence[StaffState]) -> Optional[StaffState]:
    """Candidate with the best balance score, None for an empty pool."""
    if not candidates:
        return None
    return min(candidates, key=StaffState.balance_key)


def _can_overshoot(state: StaffState, config: AllocationConfig) -> bool:
    return state.overshoot_available and state.member.weight_pct >= config.overshoot_min_weight


def pick_owner_with_room(block, states, cap, config):
    return pick_best([s for s in states if s.owns(block.export_code) and s.has_room_for(block)])


def pick_foreign_with_room(block, states, cap, config):
    return pick_best([
        s for s in states
        if not s.owns(block.export_code) and s.has_room_for(block) and s.within_foreign_cap(block, cap)
    ])


def pick_owner_overshoot(block, states, cap, config):
    return pick_best([s for s in states if s.owns(block.export_code) and _can_overshoot(s, config)])


def pick_foreign_overshoot(block, states, cap, config):
    return pick_best([
        s for s in states
        if not s.owns(block.export_code) and _can_overshoot(s, config) and s.within_foreign_cap(block, cap)
    ])


Picker = Callable[[Block, Sequence[StaffState], int, AllocationConfig], Optional[StaffState]]

# Tried in order at every foreign-cap level
CAPPED_STRATEGIES: Tuple[Tuple[AllocationStep, Picker], ...] = (
    (AllocationStep.OWNER_WITH_ROOM, pick_owner_with_room),
    (AllocationStep.FOREIGN_WITH_ROOM, pick_foreign_with_room),
    (AllocationStep.OWNER_OVERSHOOT, pick_owner_overshoot),
    (AllocationStep.FOREIGN_OVERSHOOT, pick_foreign_overshoot),
)

OVERSHOOT_STEPS = {AllocationStep.OWNER_OVERSHOOT, AllocationStep.FOREIGN_OVERSHOOT}


def force_assign(block: Block, states: Sequence[StaffState], config: AllocationConfig) -> StaffState:
    """
    Last resort: never fails while at least one staff member is active.

    Owners are tried before everyone else. Within each pool, partial-weight
    staff who still have some room are preferred over the rest.
    """
    owners = [s for s in states if s.owns(block.export_code)]
    for pool in (owners, states):
        partial_with_room = [
            s for s in pool
            if s.member.weight_pct < config.baseline_weight and s.deficit > 0
        ]
        chosen = pick_best(partial_with_room) or pick_best(pool)
        if chosen is not None:
            return chosen
    raise ValueError("force_assign requires at least one active staff member")


def place_block(
    block: Block,
    states: Sequence[StaffState],
    config: AllocationConfig
) -> Tuple[StaffState, AllocationStep, Optional[int]]:
    """Walk the escalation ladder for one block."""
    for cap in config.foreign_cap_levels:
        for step, picker in CAPPED_STRATEGIES:
            chosen = picker(block, states, cap, config)
            if chosen is not None:
                return chosen, step, cap
    return force_assign(block, states, config), AllocationStep.FORCED, None


# ============================================================================
# ENTRY POINT
# ============================================================================

def select_active_staff(staff: Sequence[StaffMember]) -> List[StaffMember]:
    """Active staff in input order, first occurrence winning on duplicate codes."""
    active = []
    seen = set()
    for member in staff:
        if not member.is_active:
            continue
        if member.code in seen:
            logger.warning(f"[Allocation] Duplicate staff code {member.code} ignored")
            continue
        seen.add(member.code)
        active.append(member)
    return active


def build_summary(staff: Sequence[StaffMember], counts: Dict[str, int]) -> List[AllocationSummary]:
    """One summary line per listed staff member, zero for non-participants."""
    summary = []
    seen = set()
    for member in staff:
        if not member.code or member.code in seen:
            continue
        seen.add(member.code)
        summary.append(AllocationSummary(
            user_code=member.code,
            user_name=member.name,
            weight_pct=member.weight_pct,
            online=member.online,
            count=counts.get(member.code, 0),
        ))
    return summary


def allocate(
    staff: Sequence[StaffMember],
    rows: Sequence[TaskRow],
    voucher_key: Optional[str] = None,
    export_key: Optional[str] = None,
    config: Optional[AllocationConfig] = None
) -> AllocationResult:
    """
    Assign every row to one active staff member.

    Args:
        staff: All staff, in priority order (earlier wins ties)
        rows: Task rows
        voucher_key: Voucher column name, None if the sheet has none
        export_key: Export-site column name, None if the sheet has none
        config: Tuning knobs; defaults to AllocationConfig()

    Returns:
        AllocationResult with one AssignmentItem per row and one summary line
        per staff member. With no rows or no active staff the assignment list
        is empty and every count is zero.
    """
    config = config or AllocationConfig()
    active = select_active_staff(staff)
    baseline_cap = config.foreign_cap_levels[0] if config.foreign_cap_levels else None

    if not rows or not active:
        logger.info(
            f"[Allocation] Nothing to allocate: {len(rows)} rows, {len(active)} active staff"
        )
        return AllocationResult(
            summary=build_summary(staff, {}),
            assignments=[],
            baseline_cap=baseline_cap,
        )

    quotas = compute_quota(active, len(rows))
    states = [
        StaffState(
            member=member,
            rank=rank,
            quota=quota,
            overshoot_available=member.weight_pct >= config.overshoot_min_weight,
        )
        for rank, (member, quota) in enumerate(zip(active, quotas))
    ]

    blocks = order_for_allocation(group_rows(rows, voucher_key, export_key))
    logger.info(
        f"[Allocation] Allocating {len(rows)} rows in {len(blocks)} blocks "
        f"to {len(active)} active staff, quotas={dict((s.code, s.quota) for s in states)}"
    )

    assignments: List[AssignmentItem] = []
    decisions: List[BlockDecision] = []

    for block in blocks:
        chosen, step, cap = place_block(block, states, config)

        if step in OVERSHOOT_STEPS:
            chosen.overshoot_available = False
        if step == AllocationStep.FORCED:
            logger.warning(
                f"[Allocation] Forced block {block.key} ({block.size} rows) onto {chosen.code}, "
                f"deficit before={chosen.deficit}"
            )
        elif cap != baseline_cap:
            logger.warning(
                f"[Allocation] Block {block.key} placed on {chosen.code} after relaxing foreign cap to {cap}"
            )

        chosen.record(block)
        for index in block.indices:
            assignments.append(AssignmentItem(
                user_code=chosen.code,
                user_name=chosen.member.name,
                task_index=index,
            ))
        decisions.append(BlockDecision(
            block_key=block.key,
            size=block.size,
            user_code=chosen.code,
            step=step,
            foreign_cap=cap,
        ))
        logger.debug(
            f"[Allocation] Block {block.key} size={block.size} -> {chosen.code} "
            f"via {step.value} (cap={cap}, deficit now {chosen.deficit})"
        )

    assignments.sort(key=lambda a: a.task_index)
    counts = {s.code: s.assigned for s in states}

    result = AllocationResult(
        summary=build_summary(staff, counts),
        assignments=assignments,
        quotas={s.code: s.quota for s in states},
        decisions=decisions,
        foreign_exports={s.code: sorted(s.foreign_exports) for s in states},
        baseline_cap=baseline_cap,
    )
    logger.info(
        f"[Allocation] Completed: counts={counts}, escalated={result.escalated}"
    )
    return result
