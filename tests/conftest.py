# Shared pytest fixtures
from __future__ import annotations
import logging
import tempfile
from pathlib import Path
import pandas as pd
import pytest

from patient_import.logging.init import LOGGER_NAME, reset_logging

REGISTER_HEADERS = [
    "SNo", "Name", "MRN No.", "Year", "Diagnosis", "Stage", "Age", "Sex",
    "Contact No 1", "Contact No 2", "Address", "Date logged in",
]


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """created_by: TestRunner
country: India
default_country_code: "+91"
error_log_dir: ./logs
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


def _drop_handlers() -> None:
    reset_logging()
    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)


@pytest.fixture(autouse=True)
def _fresh_logging():
    # CLI テストごとに handler を作り直す (capsys の stdout を掴むため)
    _drop_handlers()
    yield
    _drop_handlers()


def make_workbook(path: Path, sheets: dict[str, list[list[object]]]) -> Path:
    """Write a workbook with raw rows (no pandas header row) per sheet."""
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for sheet, rows in sheets.items():
            df = pd.DataFrame(rows)
            df.to_excel(writer, sheet_name=sheet, header=False, index=False)
    return path


@pytest.fixture()
def workbook_factory(temp_workdir: Path):
    def _make(name: str, sheets: dict[str, list[list[object]]]) -> Path:
        return make_workbook(temp_workdir / "data" / name, sheets)
    return _make


@pytest.fixture()
def register_workbook(temp_workdir: Path) -> Path:
    """Two-sheet register: Breast with 3 valid rows + 1 dropped, Lung header only."""
    return make_workbook(
        temp_workdir / "data" / "register.xlsx",
        {
            "Breast": [
                REGISTER_HEADERS,
                [1, "Priya Sharma", "MRN-00123", 2021, "IDC left breast", "stage IIB", "45 yrs", "F",
                 "9876543210", "", "12 MG Road, BANGALORE 560001", "3/15/2023 10:30:00 AM"],
                [2, "Madonna", "00456", "2020", "DCIS", "I", "38", "female",
                 "+91 98765 43211", "8765432109", "Salt Lake, Kolkata", "March 5th"],
                [3, "", "00789", 2022, "IDC", "II", "50", "F", "9876543212", "", "", ""],
                [4, "Anil Kumar Reddy", "MRN 1001", 2019, "Male breast ca", "III", "61", "M",
                 "9876543213", "", "Near bus stand, Kerala", ""],
            ],
            "Lung": [
                REGISTER_HEADERS,
            ],
        },
    )
