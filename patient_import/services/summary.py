from __future__ import annotations

from ..models.import_outcome import ImportOutcome

"""Result rendering for the CLI.

- render_summary_line(): the single machine-readable SUMMARY line
- render_report(): the human-readable results block (totals, first errors,
  first warnings)
"""

__all__ = [
    "render_summary_line",
    "render_report",
    "MAX_ERRORS_SHOWN",
    "MAX_WARNINGS_SHOWN",
]

MAX_ERRORS_SHOWN = 20
MAX_WARNINGS_SHOWN = 10


def _format_seconds(seconds: float) -> str:
    # 指数表記を避け、整数値は小数点なしで出す
    if seconds == 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return f"{seconds:.2f}"


def render_summary_line(outcome: ImportOutcome, mode: str) -> str:
    """Render the SUMMARY line.

    Format:
    SUMMARY mode={mode} total={total} success={success} skipped={skipped}
    errors={errors} elapsed_sec={elapsed}

    >>> from datetime import datetime, timezone
    >>> t = datetime(2024, 1, 1, tzinfo=timezone.utc)
    >>> render_summary_line(ImportOutcome(start_time=t, end_time=t, total_records=3,
    ...     successful_imports=2, skipped_records=1), "import")
    'SUMMARY mode=import total=3 success=2 skipped=1 errors=0 elapsed_sec=0'
    """
    return (
        f"SUMMARY mode={mode} "
        f"total={outcome.total_records} "
        f"success={outcome.successful_imports} "
        f"skipped={outcome.skipped_records} "
        f"errors={outcome.errors} "
        f"elapsed_sec={_format_seconds(outcome.duration_seconds)}"
    )


def render_report(outcome: ImportOutcome, validation_only: bool = False) -> list[str]:
    operation = "Validation" if validation_only else "Import"
    lines = [
        f"=== {operation} Results ===",
        f"Total Records: {outcome.total_records}",
        f"Successful: {outcome.successful_imports}",
        f"Skipped: {outcome.skipped_records}",
        f"Errors: {outcome.errors}",
        f"Duration: {outcome.duration_seconds:.2f} seconds",
    ]

    if outcome.error_messages:
        lines.append("=== Errors ===")
        lines.extend(f"  {e}" for e in outcome.error_messages[:MAX_ERRORS_SHOWN])
        remaining = len(outcome.error_messages) - MAX_ERRORS_SHOWN
        if remaining > 0:
            lines.append(f"  ... and {remaining} more errors")

    if outcome.warning_messages:
        lines.append("=== Warnings ===")
        lines.extend(f"  {w}" for w in outcome.warning_messages[:MAX_WARNINGS_SHOWN])
    return lines
