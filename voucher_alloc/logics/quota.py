"""
Row quota calculation.

Converts staff weights into whole-row targets for a batch using the Largest
Remainder (Hamilton) method:

1. Exact share = total_rows * weight / total_weight
2. Floor every share
3. Hand the leftover rows, one each, to the largest fractional remainders
   (earlier staff win ties)

The result always sums to total_rows and no entry exceeds ceil(share).
"""

import math
import logging
from typing import List, Sequence

from voucher_alloc.logics.domain import StaffMember, safe_weight

logger = logging.getLogger(__name__)


def even_split(count: int, total_rows: int) -> List[int]:
    """Spread rows as evenly as possible, extra rows going to the first staff."""
    if count <= 0:
        return []
    base, extra = divmod(total_rows, count)
    return [base + 1 if i < extra else base for i in range(count)]


def compute_quota(active_staff: Sequence[StaffMember], total_rows: int) -> List[int]:
    """
    Compute per-staff row quotas.

    Args:
        active_staff: Participating staff, in priority order
        total_rows: Number of rows in the batch (>= 0)

    Returns:
        One quota per staff member, same order as the input, summing to total_rows

    Raises:
        ValueError: If total_rows is negative

    Examples:
        >>> weights 200/100/100 over 8 rows -> [4, 2, 2]
        >>> weights 100/100/100 over 10 rows -> [4, 3, 3]
    """
    if total_rows < 0:
        raise ValueError(f"total_rows cannot be negative: {total_rows}")

    if not active_staff:
        return []

    weights = [safe_weight(s.weight_pct) for s in active_staff]
    total_weight = sum(weights)

    if total_weight <= 0:
        logger.warning(
            f"[Quota] Total weight is {total_weight} for {len(active_staff)} staff, "
            f"falling back to an even split of {total_rows} rows"
        )
        return even_split(len(active_staff), total_rows)

    shares = [total_rows * w / total_weight for w in weights]
    quotas = [math.floor(share) for share in shares]
    remainders = [share - base for share, base in zip(shares, quotas)]
    leftover = max(total_rows - sum(quotas), 0)

    # Largest remainder first, lower input index on ties
    by_remainder = sorted(range(len(shares)), key=lambda i: (-remainders[i], i))
    for i in by_remainder[:leftover]:
        quotas[i] += 1

    logger.debug(f"[Quota] {total_rows} rows over weights {weights} -> {quotas}")
    return quotas
