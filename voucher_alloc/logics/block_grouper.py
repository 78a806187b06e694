"""
Block grouping for task rows.

A block is the set of rows that must go to a single staff member. Rows are
grouped by normalized voucher number and split further by export site, so a
voucher touching two warehouses can be shared between their owners.

- No voucher column: every row is its own block
- Empty voucher value: the row is its own block (never merged with other
  empty-voucher rows)
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from voucher_alloc.logics.code_normalizer import normalize_code
from voucher_alloc.logics.domain import NO_EXPORT, TaskRow, get_row_value

logger = logging.getLogger(__name__)

# (voucher, export site) or a per-row sentinel for singleton rows
BlockKey = Tuple[str, str]


@dataclass
class Block:
    """Indivisible group of task row indices."""
    key: BlockKey
    indices: List[int] = field(default_factory=list)
    # Normalized export site per row, "" where the row has none
    export_codes: List[str] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.indices)

    @property
    def first_index(self) -> int:
        return self.indices[0]

    @property
    def export_code(self) -> str:
        """Export site used for ownership checks (taken from the first row)."""
        return self.export_codes[0] if self.export_codes else NO_EXPORT

    @property
    def distinct_exports(self) -> List[str]:
        """Non-empty export sites in this block, in first-seen order."""
        seen = []
        for code in self.export_codes:
            if code and code not in seen:
                seen.append(code)
        return seen

    def add(self, index: int, export_code: str) -> None:
        self.indices.append(index)
        self.export_codes.append(export_code)


def group_rows(
    rows: Sequence[TaskRow],
    voucher_key: Optional[str] = None,
    export_key: Optional[str] = None,
    split_by_export: bool = True
) -> List[Block]:
    """
    Partition rows into blocks, in order of first appearance.

    Args:
        rows: Task rows (positionally indexed)
        voucher_key: Voucher column name, None if not detected
        export_key: Export-site column name, None if not detected
        split_by_export: Separate same-voucher rows with different export sites

    Returns:
        List of Block, each row index appearing in exactly one block
    """
    blocks: List[Block] = []
    index_by_key: Dict[BlockKey, int] = {}

    for i, row in enumerate(rows):
        export_code = normalize_code(get_row_value(row, export_key))
        voucher = normalize_code(get_row_value(row, voucher_key)) if voucher_key else ''

        if not voucher:
            blocks.append(Block(key=(f"__ROW_{i}", export_code), indices=[i], export_codes=[export_code]))
            continue

        key = (voucher, export_code if split_by_export else NO_EXPORT)
        if key not in index_by_key:
            index_by_key[key] = len(blocks)
            blocks.append(Block(key=key))
        blocks[index_by_key[key]].add(i, export_code)

    logger.debug(
        f"[Grouping] {len(rows)} rows -> {len(blocks)} blocks "
        f"(voucher_key={voucher_key!r}, export_key={export_key!r})"
    )
    return blocks


def order_for_allocation(blocks: Sequence[Block]) -> List[Block]:
    """Largest block first, ties broken by earliest first row."""
    return sorted(blocks, key=lambda b: (-b.size, b.first_index))


def sort_rows_by_group_keys(rows: Sequence[TaskRow], keys: Sequence[str]) -> List[TaskRow]:
    """
    Stable-sort rows by the string value of each key in turn.

    Used before allocation so that lines of the same voucher and warehouse sit
    next to each other in the exported sheet.
    """
    if not rows or not keys:
        return list(rows)

    def sort_key(item):
        index, row = item
        values = []
        for key in keys:
            value = get_row_value(row, key)
            values.append('' if value is None else str(value))
        return (values, index)

    return [row for _, row in sorted(enumerate(rows), key=sort_key)]
