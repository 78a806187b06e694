#!/usr/bin/env python3
"""
Import a staff spreadsheet into the staff table.

Columns are detected by name (code, name, ratio, online, warehouses), the
same way the /upload/staff endpoint does it. Existing codes are merged and
keep their stored allocation order.

Usage:
    python scripts/import_staff.py [--file path/to/excel] [--sheet name] [--dry-run]

Examples:
    # Import from the default file
    python scripts/import_staff.py

    # Preview a specific sheet without importing
    python scripts/import_staff.py --file staff.xlsx --sheet "Nhan vien" --dry-run
"""

import argparse
import sys
import os

# Add the project root to the path so we can import voucher_alloc.*
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

import pandas as pd
from typing import Dict, List, Optional

from voucher_alloc.logics.domain import StaffMember
from voucher_alloc.logics.spreadsheet_io import parse_staff_frame


def load_staff(file_path: str, sheet: Optional[str] = None) -> List[StaffMember]:
    """
    Read and parse the staff sheet.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If no staff rows could be parsed
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"File not found: {file_path}")

    df = pd.read_excel(file_path, sheet_name=sheet or 0, dtype=str)
    staff = parse_staff_frame(df)
    if not staff:
        raise ValueError(f"No staff rows found. Columns: {list(df.columns)}")
    return staff


def import_staff(file_path: str, sheet: Optional[str] = None, dry_run: bool = False) -> Dict:
    print(f"\n{'='*60}")
    print("Staff Import Script")
    print(f"{'='*60}")
    print(f"File: {file_path}")
    print(f"Sheet: {sheet or '(first)'}")
    print(f"Dry run: {dry_run}")
    print(f"{'='*60}\n")

    staff = load_staff(file_path, sheet)
    print(f"Found {len(staff)} staff\n")

    print("Preview of first 5 staff:")
    print("-" * 80)
    for i, member in enumerate(staff[:5]):
        status = "online" if member.online else "offline"
        print(
            f"  {i+1}. {member.code:<12} | {member.name[:25]:<25} | "
            f"{member.weight_pct:>6.1f}% | {status:<7} | {','.join(member.warehouses)}"
        )
    if len(staff) > 5:
        print(f"  ... and {len(staff) - 5} more")
    print("-" * 80)
    print()

    if dry_run:
        print("DRY RUN - No data was imported.")
        return {'total': len(staff), 'written': 0, 'dry_run': True}

    print("Importing data into database...")
    from voucher_alloc.api.dependencies import get_core_utils
    from voucher_alloc.logics.staff_service import upsert_staff_bulk

    written = upsert_staff_bulk(staff, get_core_utils())

    print(f"\n{'='*60}")
    print(f"  Total parsed: {len(staff)}")
    print(f"  Written: {written}")
    print(f"{'='*60}\n")

    return {'total': len(staff), 'written': written}


def main():
    parser = argparse.ArgumentParser(
        description="Import a staff spreadsheet into the database.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument(
        '--file',
        type=str,
        default=os.path.join(project_root, 'staff.xlsx'),
        help='Path to the Excel file (default: staff.xlsx in project root)'
    )
    parser.add_argument(
        '--sheet',
        type=str,
        default=None,
        help='Sheet name (default: first sheet)'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Preview without importing'
    )

    args = parser.parse_args()

    try:
        import_staff(file_path=args.file, sheet=args.sheet, dry_run=args.dry_run)
        sys.exit(0)
    except (FileNotFoundError, ValueError) as e:
        print(f"ERROR: {e}")
        sys.exit(1)
    except Exception as e:
        print(f"UNEXPECTED ERROR: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
