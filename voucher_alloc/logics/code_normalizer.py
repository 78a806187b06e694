"""
Code normalization for staff, voucher and warehouse identifiers.

Spreadsheet input arrives with inconsistent casing, Vietnamese diacritics,
stray whitespace and zero-padded warehouse numbers. Everything is brought to
one canonical form before it is compared or stored:

- NFKC compatibility folding, then NFD decomposition with combining marks
  removed ("Kho Hà Nội" -> "KHO HA NOI")
- "đ"/"Đ" mapped to "d" (the stroke is not a combining mark)
- Internal whitespace collapsed, ends trimmed, uppercased

Header matching uses the same folding but lowercases instead.
"""

import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

_WHITESPACE = re.compile(r'\s+')
_LEADING_ZEROS = re.compile(r'^0+')


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        # Sequences and other containers are never "missing"
        return False


def strip_diacritics(text: str) -> str:
    """Remove combining marks and map the Vietnamese d-stroke to a plain d."""
    decomposed = unicodedata.normalize('NFD', text)
    stripped = ''.join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.replace('đ', 'd').replace('Đ', 'D')


def normalize_code(value: Any) -> str:
    """
    Canonicalize a free-text code.

    Args:
        value: Raw code (string, number, None or NaN)

    Returns:
        Uppercase code without diacritics and with single internal spaces.
        Empty string for missing or whitespace-only input.

    Examples:
        >>> normalize_code("  nv  001 ")
        'NV 001'
        >>> normalize_code("Kho Đông")
        'KHO DONG'
    """
    if _is_missing(value):
        return ''
    text = unicodedata.normalize('NFKC', str(value))
    text = strip_diacritics(text)
    return _WHITESPACE.sub(' ', text).strip().upper()


def comparison_forms(value: Any) -> Tuple[str, str]:
    """Return (normalized, normalized-without-leading-zeros) for a code."""
    raw = normalize_code(value)
    return raw, _LEADING_ZEROS.sub('', raw)


def codes_match(left: Any, right: Any) -> bool:
    """
    Four-way symmetric equality used for warehouse ownership checks.

    "007" matches "7" and "07"; an empty code never matches anything.
    """
    left_raw, left_nz = comparison_forms(left)
    right_raw, right_nz = comparison_forms(right)
    if not left_raw or not right_raw:
        return False
    return (
        left_raw == right_raw
        or left_raw == right_nz
        or left_nz == right_raw
        or left_nz == right_nz
    )


def matches_any(code: Any, candidates: Iterable[Any]) -> bool:
    """True when `code` matches at least one of `candidates`."""
    return any(codes_match(code, candidate) for candidate in candidates)


# ============================================================================
# HEADER DETECTION
# ============================================================================

VOUCHER_HINTS = ["ma chung tu", "so ct", "chung tu", "ct", "voucher"]
EXPORT_HINTS = ["ma noi xuat", "noi xuat", "kho xuat", "store xuat", "export"]
RECEIVE_HINTS = ["ma noi nhan", "noi nhan", "kho nhan", "store nhan", "receive"]
STORE_HINTS = ["ma st", "st"]


@dataclass(frozen=True)
class GroupKeys:
    """Task sheet columns resolved from the header row."""
    voucher_key: Optional[str] = None
    export_key: Optional[str] = None
    receive_key: Optional[str] = None
    st_key: Optional[str] = None

    def ordering(self) -> List[str]:
        """Row sort order: voucher, then export site, then receive site."""
        return [k for k in (self.voucher_key, self.export_key, self.receive_key) if k]


def header_key(text: Any) -> str:
    """Lowercase, diacritic-free form of a header for fuzzy matching."""
    return strip_diacritics(str(text)).lower().strip()


def find_column(headers: Sequence[str], hints: Sequence[str]) -> Optional[str]:
    """First header (in sheet order) whose folded text contains any hint."""
    for header in headers:
        folded = header_key(header)
        if any(hint in folded for hint in hints):
            return header
    return None


def detect_group_keys(headers: Sequence[str]) -> GroupKeys:
    """Best-effort detection of voucher / export / receive / store columns."""
    return GroupKeys(
        voucher_key=find_column(headers, VOUCHER_HINTS),
        export_key=find_column(headers, EXPORT_HINTS),
        receive_key=find_column(headers, RECEIVE_HINTS),
        st_key=find_column(headers, STORE_HINTS),
    )
