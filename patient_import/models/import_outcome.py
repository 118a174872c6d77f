from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from .patient import CancerSite

"""Import outcome models for the patient register importer.

SheetOutcome holds the counters of one worksheet; ImportOutcome aggregates a
whole run. Both are frozen: the importer accumulates plain counters while it
runs and builds these objects once the sheet/run is finished.
"""

__all__ = [
    "SheetOutcome",
    "ImportOutcome",
]


@dataclass(frozen=True)
class SheetOutcome:
    """Per-sheet counters and messages (messages are NOT sheet-prefixed)."""
    sheet_name: str
    cancer_site: CancerSite
    total_records: int = 0  # name と MRN を持つ行数
    successful_imports: int = 0
    skipped_records: int = 0  # 既存 MRN (重複) によるスキップ
    errors: int = 0
    error_messages: tuple[str, ...] = ()
    warning_messages: tuple[str, ...] = ()


@dataclass(frozen=True)
class ImportOutcome:
    """Run-level outcome returned to the caller (CLI / admin trigger).

    error_messages are "{sheet}: {message}" (import) or
    "{sheet} Row {n}: {message}" (validation); run-level failures such as a
    missing file carry no sheet prefix.
    """
    start_time: datetime
    end_time: datetime
    total_records: int = 0
    successful_imports: int = 0
    skipped_records: int = 0
    errors: int = 0
    error_messages: tuple[str, ...] = ()
    warning_messages: tuple[str, ...] = ()
    sheets: tuple[SheetOutcome, ...] = field(default_factory=tuple)

    @property
    def duration_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()

    @property
    def has_errors(self) -> bool:
        return self.errors > 0
