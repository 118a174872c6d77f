from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..excel.reader import EmptySheetError, SheetData, extract_sheet, open_workbook, read_sheet
from ..logging.error_log import ErrorLogBuffer
from ..models.error_record import ROW_UNKNOWN, ErrorRecord
from ..models.import_outcome import ImportOutcome, SheetOutcome
from ..models.patient import Gender
from ..models.raw_record import FIELD_AGE, FIELD_SEX, FIELD_YEAR, RawRecord
from .cleaning import (
    DEFAULT_COUNTRY_CODE,
    cancer_site_for_sheet,
    normalize_record,
    parse_age,
    parse_gender,
    parse_year,
)
from .progress import RowProgress

"""Workbook import orchestration.

import_workbook() drives one workbook end to end:
1. missing file -> outcome with a single error (the only fatal condition)
2. every worksheet is processed independently, in workbook order
3. every record is checked against the store (existing MRN -> skipped), cleaned
   and persisted on its own; a failing row is recorded and the run moves on
4. sheet outcomes are aggregated into one ImportOutcome

Nothing raises to the caller: every failure becomes a counter + message.
validate_workbook() runs the same extraction without touching the store.
"""

__all__ = [
    "import_workbook",
    "validate_workbook",
    "validate_record",
    "EMPTY_SHEET_WARNING",
]

logger = logging.getLogger(__name__)

EMPTY_SHEET_WARNING = "Sheet is empty or has no data rows"
FILE_LEVEL_SHEET = "<FILE_LEVEL>"
PROGRESS_LOG_EVERY = 100


@dataclass
class _SheetTally:
    """Mutable per-sheet counters; frozen into a SheetOutcome at the end."""
    sheet_name: str
    total_records: int = 0
    successful_imports: int = 0
    skipped_records: int = 0
    errors: int = 0
    error_messages: list[str] = field(default_factory=list)
    warning_messages: list[str] = field(default_factory=list)

    def error(self, message: str) -> None:
        self.errors += 1
        self.error_messages.append(message)

    def freeze(self) -> SheetOutcome:
        return SheetOutcome(
            sheet_name=self.sheet_name,
            cancer_site=cancer_site_for_sheet(self.sheet_name),
            total_records=self.total_records,
            successful_imports=self.successful_imports,
            skipped_records=self.skipped_records,
            errors=self.errors,
            error_messages=tuple(self.error_messages),
            warning_messages=tuple(self.warning_messages),
        )


def _record_error(
    error_log: ErrorLogBuffer | None, file_name: str, sheet: str, row: int, error_type: str, message: str
) -> None:
    if error_log is not None:
        error_log.append(ErrorRecord.create(file_name, sheet, row, error_type, message))


def _aggregate(
    start_time: datetime,
    sheets: list[SheetOutcome],
    *,
    row_separator: str = ": ",
    run_errors: list[str] | None = None,
) -> ImportOutcome:
    """Sum sheet outcomes, prefixing every sheet message with its sheet name.

    Row messages ("Row n: ...") are joined with ``row_separator``; sheet-scoped
    messages always use ": ".
    """
    error_messages: list[str] = []
    warning_messages: list[str] = []
    for s in sheets:
        for m in s.error_messages:
            sep = row_separator if m.startswith("Row ") else ": "
            error_messages.append(f"{s.sheet_name}{sep}{m}")
        warning_messages.extend(f"{s.sheet_name}: {m}" for m in s.warning_messages)
    run_errors = run_errors or []
    error_messages.extend(run_errors)

    return ImportOutcome(
        start_time=start_time,
        end_time=datetime.now(UTC),
        total_records=sum(s.total_records for s in sheets),
        successful_imports=sum(s.successful_imports for s in sheets),
        skipped_records=sum(s.skipped_records for s in sheets),
        errors=sum(s.errors for s in sheets) + len(run_errors),
        error_messages=tuple(error_messages),
        warning_messages=tuple(warning_messages),
        sheets=tuple(sheets),
    )


def _file_not_found(path: Path, start_time: datetime, error_log: ErrorLogBuffer | None) -> ImportOutcome:
    message = f"File not found: {path}"
    logger.error(message)
    _record_error(error_log, path.name, FILE_LEVEL_SHEET, ROW_UNKNOWN, "FILE_NOT_FOUND", message)
    return ImportOutcome(
        start_time=start_time,
        end_time=datetime.now(UTC),
        errors=1,
        error_messages=(message,),
    )


def import_workbook(
    path: Path | str,
    store: Any,
    *,
    created_by: str = "System",
    country: str = "India",
    country_code: str = DEFAULT_COUNTRY_CODE,
    error_log: ErrorLogBuffer | None = None,
) -> ImportOutcome:
    """Import every worksheet of a workbook into ``store``.

    Args:
        path: .xlsx workbook path
        store: object with exists(original_mrn) / add(patient) (see db.patient_store)
        created_by: CreatedBy stamp for imported patients
        country: country written on every patient
        country_code: prefix for bare 10-digit phone numbers
        error_log: optional JSON Lines buffer receiving row/sheet failures

    Returns:
        ImportOutcome (never raises)
    """
    start_time = datetime.now(UTC)
    path = Path(path)
    logger.info("Starting Excel import from: %s", path)

    if not path.is_file():
        return _file_not_found(path, start_time, error_log)

    sheets: list[SheetOutcome] = []
    try:
        with open_workbook(path) as xls:
            for sheet_name in xls.sheet_names:
                sheet_name = str(sheet_name)
                logger.info("Processing sheet: %s", sheet_name)
                outcome = _import_sheet(
                    xls,
                    sheet_name,
                    store,
                    file_name=path.name,
                    error_log=error_log,
                    created_by=created_by,
                    country=country,
                    country_code=country_code,
                )
                sheets.append(outcome)
                logger.info(
                    "Sheet %s completed: %d success, %d skipped, %d errors",
                    sheet_name,
                    outcome.successful_imports,
                    outcome.skipped_records,
                    outcome.errors,
                )
    except Exception as e:
        # ワークブック自体が開けない / 読めない場合
        logger.error("Error during Excel import: %s", e)
        _record_error(error_log, path.name, FILE_LEVEL_SHEET, ROW_UNKNOWN, "WORKBOOK_ERROR", str(e))
        return _aggregate(start_time, sheets, run_errors=[f"Import failed: {e}"])

    result = _aggregate(start_time, sheets)
    logger.info(
        "Import completed: %d records processed, %d imported successfully",
        result.total_records,
        result.successful_imports,
    )
    return result


def _import_sheet(
    xls: Any,
    sheet_name: str,
    store: Any,
    *,
    file_name: str,
    error_log: ErrorLogBuffer | None,
    created_by: str,
    country: str,
    country_code: str,
) -> SheetOutcome:
    tally = _SheetTally(sheet_name)
    try:
        sheet_data: SheetData = extract_sheet(read_sheet(xls, sheet_name), sheet_name)
    except EmptySheetError:
        tally.warning_messages.append(EMPTY_SHEET_WARNING)
        logger.warning("sheet=%s %s", sheet_name, EMPTY_SHEET_WARNING)
        return tally.freeze()
    except Exception as e:
        tally.error(f"Error processing sheet: {e}")
        logger.error("Error processing sheet %s: %s", sheet_name, e)
        _record_error(error_log, file_name, sheet_name, ROW_UNKNOWN, "SHEET_READ_ERROR", str(e))
        return tally.freeze()

    logger.debug(
        "sheet=%s used_rows=%d fields=%s records=%d dropped=%d",
        sheet_name,
        sheet_data.used_rows,
        sorted(set(sheet_data.column_fields.values())),
        len(sheet_data.records),
        sheet_data.dropped_rows,
    )

    try:
        tally.total_records = len(sheet_data.records)
        with RowProgress(len(sheet_data.records), sheet_name=sheet_name) as progress:
            for record in sheet_data.records:
                _import_record(
                    record,
                    store,
                    tally,
                    file_name=file_name,
                    error_log=error_log,
                    created_by=created_by,
                    country=country,
                    country_code=country_code,
                )
                progress.advance()
            progress.set_postfix(
                ok=tally.successful_imports, skipped=tally.skipped_records, errors=tally.errors
            )
    except Exception as e:
        tally.error(f"Error processing sheet: {e}")
        logger.error("Error processing sheet %s: %s", sheet_name, e)
        _record_error(error_log, file_name, sheet_name, ROW_UNKNOWN, "SHEET_PROCESSING_ERROR", str(e))

    return tally.freeze()


def _import_record(
    record: RawRecord,
    store: Any,
    tally: _SheetTally,
    *,
    file_name: str,
    error_log: ErrorLogBuffer | None,
    created_by: str,
    country: str,
    country_code: str,
) -> None:
    row = record.row_number
    try:
        # 既存 MRN は更新せずスキップ (再実行しても重複しない)
        if store.exists(record.mrn):
            tally.skipped_records += 1
            return

        patient = normalize_record(
            record, created_by=created_by, country=country, country_code=country_code
        )
        try:
            store.add(patient)
        except Exception as save_e:
            tally.error(f"Row {row}: Save failed - {save_e}")
            logger.warning("Save failed for row %d in sheet %s: %s", row, record.sheet_name, save_e)
            _record_error(error_log, file_name, record.sheet_name, row, "DATABASE_INSERT_ERROR", str(save_e))
            return

        tally.successful_imports += 1
        if tally.successful_imports % PROGRESS_LOG_EVERY == 0:
            logger.info("Imported %d records from sheet %s", tally.successful_imports, record.sheet_name)
    except Exception as e:
        tally.error(f"Row {row}: {e}")
        logger.warning("Error processing row %d in sheet %s: %s", row, record.sheet_name, e)
        _record_error(error_log, file_name, record.sheet_name, row, "ROW_PROCESSING_ERROR", str(e))


def validate_record(record: RawRecord) -> list[str]:
    """Field-level checks used by the dry run. Empty list means valid.

    Blank optional cells are fine; only non-blank cells that fail to parse count.
    """
    errors: list[str] = []
    if not record.name.strip():
        errors.append("Name is required")
    if not record.mrn.strip():
        errors.append("MRN is required")

    age = record.get(FIELD_AGE)
    if age.strip() and parse_age(age) is None:
        errors.append(f"Invalid age format: {age}")

    year = record.get(FIELD_YEAR)
    if year.strip() and parse_year(year) is None:
        errors.append(f"Invalid year format: {year}")

    sex = record.get(FIELD_SEX)
    if sex.strip() and parse_gender(sex) is Gender.OTHER:
        errors.append(f"Invalid gender: {sex}")
    return errors


def validate_workbook(path: Path | str) -> ImportOutcome:
    """Dry run: extract and validate every record, persist nothing.

    successful_imports counts valid records; each invalid record counts one
    error and contributes one "{sheet} Row {n}: {message}" line per problem.
    """
    start_time = datetime.now(UTC)
    path = Path(path)
    logger.info("Validating Excel data in: %s", path)

    if not path.is_file():
        return _file_not_found(path, start_time, None)

    sheets: list[SheetOutcome] = []
    try:
        with open_workbook(path) as xls:
            for sheet_name in xls.sheet_names:
                sheets.append(_validate_sheet(xls, str(sheet_name)))
    except Exception as e:
        logger.error("Validation failed: %s", e)
        return _aggregate(start_time, sheets, row_separator=" ", run_errors=[f"Validation failed: {e}"])

    return _aggregate(start_time, sheets, row_separator=" ")


def _validate_sheet(xls: Any, sheet_name: str) -> SheetOutcome:
    tally = _SheetTally(sheet_name)
    try:
        sheet_data = extract_sheet(read_sheet(xls, sheet_name), sheet_name)
    except EmptySheetError:
        tally.warning_messages.append(EMPTY_SHEET_WARNING)
        return tally.freeze()
    except Exception as e:
        tally.error(f"Error processing sheet: {e}")
        logger.error("Error validating sheet %s: %s", sheet_name, e)
        return tally.freeze()

    tally.total_records = len(sheet_data.records)
    for record in sheet_data.records:
        try:
            problems = validate_record(record)
        except Exception as e:
            tally.error(f"Row {record.row_number}: {e}")
            logger.warning("Error validating row %d in sheet %s: %s", record.row_number, sheet_name, e)
            continue
        if problems:
            tally.errors += 1
            tally.error_messages.extend(f"Row {record.row_number}: {p}" for p in problems)
        else:
            tally.successful_imports += 1
    return tally.freeze()
