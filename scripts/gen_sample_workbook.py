#!/usr/bin/env python3
"""Sample register generator for manual runs and load checks.

Generates a synthetic patient register workbook (one worksheet per cohort) with
the kind of dirt the importer has to cope with:
- blank rows before the header and between records
- ages written as "45", "45 yrs", "45Years"
- phone numbers as bare 10 digits, with "+91", with spaces/dashes
- "stage IIB" style stages, free-text addresses with city + postal code
- a few rows missing the name or the MRN (dropped by the importer)
- a few duplicated MRNs (skipped by the importer)
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

HEADERS = [
    "SNo",
    "Name",
    "MRN No.",
    "Year",
    "Diagnosis",
    "Stage",
    "Age",
    "Sex",
    "Contact No 1",
    "Contact No 2",
    "Contact No 3",
    "Address",
    "Date logged in",
]

DEFAULT_SHEETS = ["Breast", "Lung", "Colorectal", "Lymphoma"]

FIRST_NAMES = ["Ravi", "Priya", "Anil", "Sunita", "Mohammed", "Lakshmi", "Arjun", "Meena"]
LAST_NAMES = ["Kumar", "Sharma", "Reddy", "Iyer", "Khan", "Das", "Nair", "Patel"]
ADDRESSES = [
    "12 MG Road, BANGALORE 560001",
    "Flat 4, Andheri East, Mumbai 400069",
    "Sector 9, DELHI",
    "T Nagar, Chennai 600017",
    "Salt Lake, Kolkata",
    "Village Hosur, Karnataka",
    "Near bus stand, Kerala",
    "",
]
STAGES = ["I", "stage II", "Stage IIB", "III", "stage iv", ""]
SEXES = ["M", "F", "Male", "female", "m", ""]
DATES_LOGGED_IN = ["3/15/2023 10:30:00 AM", "2023-04-02", "15/03/2023", "March 5th", "Jan 12", ""]


def _age_text(age: int, style: int) -> str:
    return [str(age), f"{age} yrs", f"{age}Years"][style % 3]


def _phone_text(digits: str, style: int) -> str:
    return [digits, f"+91{digits}", f"{digits[:5]} {digits[5:]}", f"{digits[:3]}-{digits[3:]}"][style % 4]


def generate_sheet_rows(sheet_name: str, rows: int, seed: int = 42) -> list[list[Any]]:
    """Generate header + data rows for one worksheet.

    Args:
        sheet_name: worksheet name (used in the MRN so sheets don't collide)
        rows: number of data rows
        seed: random seed for reproducible data

    Returns:
        List of rows, the first non-blank one being the header row
    """
    rng = np.random.RandomState(seed)
    tag = sum(ord(c) for c in sheet_name) % 100

    sheet_rows: list[list[Any]] = [[""] * len(HEADERS), HEADERS]
    for i in range(rows):
        name = f"{rng.choice(FIRST_NAMES)} {rng.choice(LAST_NAMES)}"
        mrn = f"MRN-{tag:02d}{i + 1:05d}"
        if i % 50 == 7:
            name = ""  # name 欠落 -> dropped
        elif i % 50 == 13:
            mrn = ""  # MRN 欠落 -> dropped
        elif i % 50 == 21 and i > 0:
            mrn = f"MRN-{tag:02d}{i:05d}"  # 直前行と同じ MRN -> skipped
        digits = "".join(str(d) for d in rng.randint(0, 10, 9))
        phone = _phone_text(f"9{digits}", int(rng.randint(0, 4)))
        sheet_rows.append([
            i + 1,
            name,
            mrn,
            int(rng.randint(2015, 2025)),
            f"{sheet_name} carcinoma",
            rng.choice(STAGES),
            _age_text(int(rng.randint(1, 95)), int(rng.randint(0, 3))),
            rng.choice(SEXES),
            phone,
            "" if i % 3 else _phone_text(f"8{digits}", i),
            "",
            rng.choice(ADDRESSES),
            rng.choice(DATES_LOGGED_IN),
        ])
        if i % 25 == 24:
            sheet_rows.append([""] * len(HEADERS))
    return sheet_rows


def create_workbook(output_path: Path, rows: int, sheets: list[str], seed: int = 42) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        for idx, sheet_name in enumerate(sheets):
            df = pd.DataFrame(generate_sheet_rows(sheet_name, rows, seed + idx))
            df.to_excel(writer, sheet_name=sheet_name, header=False, index=False)

    print(f"Created Excel file: {output_path}")
    print(f"  Sheets: {len(sheets)} ({', '.join(sheets)})")
    print(f"  Rows per sheet: {rows}")


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Generate a synthetic patient register workbook",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s data/register.xlsx
  %(prog)s data/large.xlsx --rows 20000 --sheets Breast Lung Myeloma
        """,
    )
    parser.add_argument("output", type=Path, help="Output Excel file path")
    parser.add_argument("--rows", type=int, default=200, help="Data rows per sheet (default: 200)")
    parser.add_argument("--sheets", nargs="+", default=DEFAULT_SHEETS, help="Sheet names")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    args = parser.parse_args()

    if args.rows <= 0:
        print("Error: --rows must be positive", file=sys.stderr)
        return 1

    try:
        create_workbook(args.output, args.rows, args.sheets, args.seed)
    except OSError as e:
        print(f"\nError generating workbook: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
