"""
Data structures shared by the allocation engine, the fairness ledger and the
persistence layer.

Staff codes and warehouse codes are normalized on construction so every
comparison downstream works on canonical values.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from voucher_alloc.logics.code_normalizer import normalize_code

# A task row is an opaque spreadsheet record keyed by header name
TaskRow = Mapping[str, Any]

NO_EXPORT = ""


def safe_weight(value: Any) -> float:
    """
    Coerce a raw weight into a finite, non-negative float.

    Non-numeric, NaN, infinite and negative inputs all become 0.0, which
    excludes the staff member from allocation instead of poisoning the
    quota arithmetic.
    """
    try:
        weight = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(weight) or weight < 0:
        return 0.0
    return weight


def get_row_value(row: TaskRow, column: Optional[str]) -> Any:
    """Narrow accessor for task rows: None when the column is unknown or absent."""
    if not column:
        return None
    return row.get(column)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True)
class AllocationConfig:
    """Tuning knobs for one allocation run."""
    baseline_weight: float = 100.0
    # Only staff at or above this weight receive an overshoot budget
    overshoot_min_weight: float = 100.0
    # Distinct foreign warehouses allowed per staff member, per escalation level
    foreign_cap_levels: Tuple[int, ...] = (2, 3, 4)


# ============================================================================
# STAFF
# ============================================================================

@dataclass
class StaffMember:
    """A staff member eligible for allocation."""
    code: str
    name: str = ''
    weight_pct: float = 100.0
    online: bool = True
    warehouses: List[str] = field(default_factory=list)
    order: int = 0

    def __post_init__(self):
        self.code = normalize_code(self.code)
        self.name = str(self.name or '').strip() or self.code
        self.weight_pct = safe_weight(self.weight_pct)
        self.online = bool(self.online)
        unique = []
        for warehouse in self.warehouses or []:
            normalized = normalize_code(warehouse)
            if normalized and normalized not in unique:
                unique.append(normalized)
        self.warehouses = unique

    @property
    def is_active(self) -> bool:
        """Online, positively weighted and carrying a usable code."""
        return bool(self.code) and self.online and self.weight_pct > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'name': self.name,
            'weightPct': self.weight_pct,
            'online': self.online,
            'warehouses': list(self.warehouses),
            'order': self.order,
        }


# ============================================================================
# ALLOCATION OUTPUT
# ============================================================================

@dataclass(frozen=True)
class AssignmentItem:
    """One row's resolved owner."""
    user_code: str
    user_name: str
    task_index: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'userCode': self.user_code,
            'userName': self.user_name,
            'taskIndex': self.task_index,
        }


@dataclass(frozen=True)
class AllocationSummary:
    """Rows assigned to one staff member in a run (0 for non-participants)."""
    user_code: str
    user_name: str
    weight_pct: float
    online: bool
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'userCode': self.user_code,
            'userName': self.user_name,
            'weightPct': self.weight_pct,
            'online': self.online,
            'count': self.count,
        }


# ============================================================================
# MONTH AGGREGATE
# ============================================================================

@dataclass
class MonthAggregate:
    """Month-to-date expected vs. actual work per staff code."""
    month_key: str
    expected_cum: Dict[str, float] = field(default_factory=dict)
    actual_cum: Dict[str, float] = field(default_factory=dict)
    deficit: Dict[str, float] = field(default_factory=dict)
    last_served_at: Dict[str, str] = field(default_factory=dict)
    version: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'monthKey': self.month_key,
            'expectedCum': dict(self.expected_cum),
            'actualCum': dict(self.actual_cum),
            'deficit': dict(self.deficit),
            'lastServedAt': dict(self.last_served_at),
            'version': self.version,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'MonthAggregate':
        return cls(
            month_key=str(data.get('monthKey', '')),
            expected_cum={k: float(v) for k, v in (data.get('expectedCum') or {}).items()},
            actual_cum={k: float(v) for k, v in (data.get('actualCum') or {}).items()},
            deficit={k: float(v) for k, v in (data.get('deficit') or {}).items()},
            last_served_at={k: str(v) for k, v in (data.get('lastServedAt') or {}).items()},
            version=data.get('version'),
        )
