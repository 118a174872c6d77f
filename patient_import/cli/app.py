from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from patient_import.config.loader import ConfigError, load_config
from patient_import.db.patient_store import InMemoryPatientStore, PatientStoreError, PostgresPatientStore
from patient_import.excel.reader import EmptySheetError, extract_sheet, open_workbook, read_sheet
from patient_import.logging.error_log import ErrorLogBuffer
from patient_import.logging.init import log_summary, set_debug, setup_logging
from patient_import.models.config_models import ImportConfig
from patient_import.models.import_outcome import ImportOutcome
from patient_import.services.importer import import_workbook, validate_workbook
from patient_import.services.summary import render_report, render_summary_line

"""CLI entrypoint: import (or validate) one patient register workbook.

Flow:
- Load .env (override) and config/import.yml
- --inspect-data: print sheet headers / field mapping / first rows, then exit
- --validate-only: dry run, nothing is written
- otherwise: connect to PostgreSQL and import row by row
- print the results block and the SUMMARY line, flush the JSON Lines error log
"""

EXIT_SUCCESS = 0
EXIT_FATAL = 1
EXIT_COMPLETED_WITH_ERRORS = 2

DEFAULT_CONFIG_PATH = "config/import.yml"
INSPECT_SAMPLE_ROWS = 3
_PG_ENV_KEYS = ("PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE")


def _resolve_dsn(cfg: ImportConfig) -> str:
    """Connection string, in priority order:

    1. DATABASE_URL / PGDSN (whole DSN)
    2. PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
    3. the config's database section (fallback for anything unset)
    """
    db_cfg = cfg.database
    dsn_env = os.getenv("DATABASE_URL") or os.getenv("PGDSN")
    if dsn_env:
        return dsn_env
    if db_cfg.dsn and not any(os.getenv(k) for k in _PG_ENV_KEYS):
        return db_cfg.dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def _db_connection(cfg: ImportConfig) -> Iterator[Any]:  # pragma: no cover (thin wrapper)
    """Yield a psycopg2 cursor on an autocommit connection.

    Autocommit: PostgresPatientStore issues its own BEGIN / COMMIT per row.
    """
    conn = psycopg2.connect(_resolve_dsn(cfg))
    conn.autocommit = True
    cur = conn.cursor()
    try:
        yield cur
    finally:
        cur.close()
        conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env; override=True so .env wins over the inherited environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Excel patient register -> PostgreSQL importer")
    p.add_argument("--file", required=True, help="Path to the Excel workbook to import")
    p.add_argument("--validate-only", action="store_true", help="Only validate the data without importing")
    p.add_argument("--created-by", default=None, help="Name of the user performing the import")
    p.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to the YAML config")
    p.add_argument("--create-table", action="store_true", help="Create the patients table if missing")
    p.add_argument("--inspect-data", action="store_true", help="Print sheet headers & first rows then exit")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    return p.parse_args(argv)


def _inspect_data(path: Path) -> int:
    print(f"FILE: {path.name}")
    with open_workbook(path) as xls:
        print(f"  worksheets={len(xls.sheet_names)}")
        for sname in xls.sheet_names:
            sname = str(sname)
            try:
                sd = extract_sheet(read_sheet(xls, sname), sname)
            except EmptySheetError:
                print(f"  SHEET: {sname} empty")
                continue
            except Exception as e:  # pragma: no cover
                print(f"  SHEET: {sname} error={e}")
                continue
            print(f"  SHEET: {sname} rows={sd.used_rows} cols={sd.headers}")
            print(f"    fields={sd.column_fields}")
            print(f"    records={len(sd.records)} dropped={sd.dropped_rows}")
            print("    sample_rows=", [r.values for r in sd.records[:INSPECT_SAMPLE_ROWS]])
    return EXIT_SUCCESS


def _print_report(outcome: ImportOutcome, validation_only: bool) -> None:
    print()
    for line in render_report(outcome, validation_only):
        print(line)
    print()


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # NOTE: 空リスト [] が渡された場合に sys.argv[1:] が混入しないよう None のときのみ読む
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    if args.debug:
        set_debug(logger)
        logger.debug("debug mode enabled")

    _load_env_file(Path(".env"), override=True)
    try:
        cfg = load_config(Path(args.config))
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    path = Path(args.file)
    if not path.is_file():
        logger.error(f"file not found: {path}")
        return EXIT_FATAL

    if args.inspect_data:
        return _inspect_data(path)

    created_by = args.created_by or cfg.created_by
    logger.info(f"File: {path}")
    logger.info(f"Validate Only: {args.validate_only}")
    logger.info(f"Created By: {created_by}")

    if args.validate_only:
        outcome = validate_workbook(path)
        mode = "validate"
    else:
        error_log = ErrorLogBuffer(cfg.error_log_dir)
        # テスト等で DB を完全に無効化したい場合 DISABLE_DB_CONNECT=1 (メモリ上のストアに取り込む)
        if os.getenv("DISABLE_DB_CONNECT") == "1":
            mode = "memory"
            outcome = import_workbook(
                path,
                InMemoryPatientStore(),
                created_by=created_by,
                country=cfg.country,
                country_code=cfg.default_country_code,
                error_log=error_log,
            )
        else:
            mode = "live"
            try:
                with _db_connection(cfg) as cur:
                    store = PostgresPatientStore(cur)
                    if args.create_table:
                        store.ensure_table()
                    outcome = import_workbook(
                        path,
                        store,
                        created_by=created_by,
                        country=cfg.country,
                        country_code=cfg.default_country_code,
                        error_log=error_log,
                    )
            except (psycopg2.Error, PatientStoreError) as db_e:
                logger.error(f"database: {db_e}")
                return EXIT_FATAL

        log_path = error_log.flush()
        if log_path is not None:
            logger.info(f"error log written: {log_path}")

    _print_report(outcome, args.validate_only)
    log_summary(render_summary_line(outcome, mode)[len("SUMMARY "):])

    if outcome.errors > 0:
        logger.warning(f"{outcome.errors} errors encountered during {mode}")
        return EXIT_COMPLETED_WITH_ERRORS
    return EXIT_SUCCESS
