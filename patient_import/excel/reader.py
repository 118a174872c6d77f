from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, time
from pathlib import Path
from types import MappingProxyType
from typing import Any

import pandas as pd

from ..models.raw_record import (
    FIELD_ADDRESS,
    FIELD_AGE,
    FIELD_CONTACT_NO_1,
    FIELD_CONTACT_NO_2,
    FIELD_CONTACT_NO_3,
    FIELD_DATE_LOGGED_IN,
    FIELD_DIAGNOSIS,
    FIELD_MRN,
    FIELD_NAME,
    FIELD_SERIAL_NUMBER,
    FIELD_SEX,
    FIELD_STAGE,
    FIELD_YEAR,
    RawRecord,
)

"""Excel reader for the patient register workbook.

Layout per worksheet:
- the first non-blank row of the used range is the header row
- every following row up to the last non-blank row is a data row

Cells are read as raw objects (no NA conversion, so "NA" / "N/A" stay text) and
rendered to strings the way Excel displays them (integral floats without ".0").
"""

__all__ = [
    "HEADER_ALIASES",
    "EmptySheetError",
    "SheetData",
    "open_workbook",
    "read_sheet",
    "cell_to_str",
    "build_header_map",
    "extract_sheet",
]

# ヘッダ (小文字・trim 済) -> 正規フィールド名
HEADER_ALIASES = MappingProxyType({
    "sno": FIELD_SERIAL_NUMBER,
    "sl no": FIELD_SERIAL_NUMBER,
    "serial no": FIELD_SERIAL_NUMBER,
    "name": FIELD_NAME,
    "mrn no.": FIELD_MRN,
    "mrn no": FIELD_MRN,
    "mh no": FIELD_MRN,
    "year": FIELD_YEAR,
    "diagnosis": FIELD_DIAGNOSIS,
    "stage": FIELD_STAGE,
    "age": FIELD_AGE,
    "sex": FIELD_SEX,
    "gender": FIELD_SEX,
    "contact no": FIELD_CONTACT_NO_1,
    "contact no 1": FIELD_CONTACT_NO_1,
    "contact no1": FIELD_CONTACT_NO_1,
    "contact no 2": FIELD_CONTACT_NO_2,
    "contact no2": FIELD_CONTACT_NO_2,
    "contact no 3": FIELD_CONTACT_NO_3,
    "contact no3": FIELD_CONTACT_NO_3,
    "address": FIELD_ADDRESS,
    "date logged in": FIELD_DATE_LOGGED_IN,
    "date of logging in": FIELD_DATE_LOGGED_IN,
})


class EmptySheetError(Exception):
    """Raised when a sheet's used range holds no data row (blank or header only)."""


@dataclass
class SheetData:
    sheet_name: str
    headers: list[str]  # 小文字化済ヘッダ (未知の列も含む)
    column_fields: dict[int, str]  # 列 index -> フィールド名 (認識できた列のみ)
    used_rows: int  # used range の行数 (ヘッダ含む)
    records: list[RawRecord] = field(default_factory=list)  # name/MRN 両方ある行のみ
    dropped_rows: int = 0  # name/MRN 欠落で捨てた行数


def open_workbook(path: Path) -> pd.ExcelFile:
    """Open a workbook; use as a context manager so the handle is released."""
    return pd.ExcelFile(path, engine="openpyxl")


def read_sheet(xls: pd.ExcelFile, sheet_name: str) -> pd.DataFrame:
    """Read one worksheet raw: no header inference, no dtype/NA coercion."""
    return xls.parse(
        sheet_name=sheet_name,
        header=None,
        dtype=object,
        keep_default_na=False,
        na_values=[],
    )


def cell_to_str(value: Any) -> str:
    """Render a cell value as trimmed display text ("" for empty cells)."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return str(value).upper()
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        # 電話番号・年などが 9876543210.0 と読まれるのを防ぐ
        if value.is_integer():
            return str(int(value))
        return str(value)
    if value is pd.NaT:
        return ""
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.strftime("%Y-%m-%d")
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, time):
        return value.strftime("%H:%M:%S")
    return str(value).strip()


def build_header_map(headers: list[str]) -> dict[int, str]:
    """Map column index -> canonical field for every recognised header."""
    mapping: dict[int, str] = {}
    for idx, header in enumerate(headers):
        field_name = HEADER_ALIASES.get(header.strip().lower())
        if field_name is not None:
            mapping[idx] = field_name
    return mapping


def extract_sheet(df: pd.DataFrame, sheet_name: str) -> SheetData:
    """Turn a raw worksheet DataFrame into RawRecords.

    Steps:
    1. Locate the used range (first .. last row holding any non-blank cell)
    2. Used range of <= 1 row -> EmptySheetError (header only / blank sheet)
    3. Header row -> column index to field mapping via HEADER_ALIASES
    4. Each data row -> RawRecord; rows lacking name or MRN are dropped
    """
    rows = [[cell_to_str(v) for v in row] for row in df.itertuples(index=False, name=None)]
    non_blank = [i for i, cells in enumerate(rows) if any(cells)]
    if not non_blank or non_blank[-1] - non_blank[0] + 1 <= 1:
        raise EmptySheetError(f"sheet '{sheet_name}' is empty or has no data rows")

    header_idx, last_idx = non_blank[0], non_blank[-1]
    headers = [c.strip().lower() for c in rows[header_idx]]
    column_fields = build_header_map(headers)

    records: list[RawRecord] = []
    dropped = 0
    for idx in range(header_idx + 1, last_idx + 1):
        cells = rows[idx]
        values: dict[str, str] = {}
        # 同じフィールドに複数列がマップされる場合は右側の列が勝つ
        for col, field_name in column_fields.items():
            if col < len(cells):
                values[field_name] = cells[col]
        record = RawRecord(sheet_name=sheet_name, row_number=idx + 1, values=values)
        if record.has_anchor_fields:
            records.append(record)
        else:
            dropped += 1

    return SheetData(
        sheet_name=sheet_name,
        headers=headers,
        column_fields=column_fields,
        used_rows=last_idx - header_idx + 1,
        records=records,
        dropped_rows=dropped,
    )
