from __future__ import annotations

from pathlib import Path

from patient_import.cli import main as cli_main
from patient_import.cli.app import EXIT_COMPLETED_WITH_ERRORS, EXIT_FATAL, EXIT_SUCCESS

"""Exit code contract: 0 no errors / 2 completed with errors / 1 fatal."""


def test_exit_code_values():
    assert (EXIT_SUCCESS, EXIT_FATAL, EXIT_COMPLETED_WITH_ERRORS) == (0, 1, 2)


def test_exit_code_fatal_startup(temp_workdir: Path, capsys):
    # config/import.yml 無し → exit 1
    code = cli_main(["--file", "data/register.xlsx"])
    assert code == 1
    assert "ERROR config:" in capsys.readouterr().out


def test_exit_code_all_success(write_config, register_workbook: Path, monkeypatch):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    assert cli_main(["--file", str(register_workbook)]) == 0


def test_exit_code_validation_errors(write_config, workbook_factory):
    excel = workbook_factory("bad.xlsx", {"Breast": [["Name", "MRN No.", "Age"], ["A B", "1", "old"]]})
    assert cli_main(["--file", str(excel), "--validate-only"]) == 2


def test_exit_code_unreadable_workbook_is_not_fatal(write_config, temp_workdir: Path, monkeypatch):
    # ワークブックが壊れていても outcome のエラーとして扱う (exit 2)
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    broken = temp_workdir / "data" / "broken.xlsx"
    broken.write_bytes(b"garbage")
    assert cli_main(["--file", str(broken)]) == 2
