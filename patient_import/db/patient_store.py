from __future__ import annotations

import logging
from typing import Any

from ..models.patient import PATIENT_COLUMNS, NormalizedPatient

"""Patient stores: the importer's only view of persistence.

Contract used by services.importer:
- exists(original_mrn) -> bool   (exact, literal MRN match)
- add(patient) -> None           (one row, one transaction; PatientStoreError on failure)

PostgresPatientStore works on a psycopg2 cursor whose connection is in autocommit
mode, so the explicit BEGIN / COMMIT / ROLLBACK here are the only transaction
boundaries. A failed INSERT is rolled back before the error is raised, so no
partial state survives a bad row and earlier rows stay committed.

InMemoryPatientStore has the same contract (DISABLE_DB_CONNECT=1 and tests).
"""

__all__ = [
    "PatientStoreError",
    "PostgresPatientStore",
    "InMemoryPatientStore",
    "PATIENTS_TABLE",
    "CREATE_TABLE_SQL",
]

logger = logging.getLogger(__name__)

PATIENTS_TABLE = "patients"

CREATE_TABLE_SQL = f"""
CREATE TABLE IF NOT EXISTS {PATIENTS_TABLE} (
    id SERIAL PRIMARY KEY,
    patient_id VARCHAR(20) NOT NULL UNIQUE,
    first_name VARCHAR(100) NOT NULL,
    last_name VARCHAR(100) NOT NULL,
    age INTEGER NOT NULL,
    gender CHAR(1) NOT NULL,
    mobile_number VARCHAR(20) NOT NULL,
    secondary_contact_phone VARCHAR(20),
    tertiary_contact_phone VARCHAR(20),
    address TEXT,
    city VARCHAR(100),
    state VARCHAR(100),
    country VARCHAR(100) NOT NULL DEFAULT 'India',
    primary_cancer_site VARCHAR(20) NOT NULL,
    cancer_stage VARCHAR(10),
    site_specific_diagnosis VARCHAR(500),
    diagnosis_date TIMESTAMPTZ,
    treatment_pathway VARCHAR(20) NOT NULL,
    current_status VARCHAR(20) NOT NULL,
    risk_level VARCHAR(20) NOT NULL,
    registration_year INTEGER,
    registration_date TIMESTAMPTZ NOT NULL,
    date_logged_in TIMESTAMPTZ,
    date_of_birth TIMESTAMPTZ,
    excel_sheet_source VARCHAR(100),
    excel_row_number INTEGER,
    original_mrn VARCHAR(50),
    imported_from_excel BOOLEAN NOT NULL DEFAULT FALSE,
    created_by TEXT,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
)
"""


class PatientStoreError(Exception):
    pass


class PostgresPatientStore:
    """psycopg2-backed store. Each add() is its own transaction."""

    def __init__(self, cursor: Any, table: str = PATIENTS_TABLE) -> None:
        self.cursor = cursor
        self.table = table
        cols_sql = ",".join(f'"{c}"' for c in PATIENT_COLUMNS)
        placeholders = ",".join(["%s"] * len(PATIENT_COLUMNS))
        self._insert_sql = f"INSERT INTO {table} ({cols_sql}) VALUES ({placeholders})"

    def ensure_table(self) -> None:
        try:
            self.cursor.execute(CREATE_TABLE_SQL)
        except Exception as e:
            raise PatientStoreError(f"failed creating table {self.table}: {e}") from e

    def exists(self, original_mrn: str) -> bool:
        # 正規化なしの完全一致 (MRN の表記ゆれは別患者扱い)
        self.cursor.execute(
            f"SELECT 1 FROM {self.table} WHERE original_mrn = %s LIMIT 1",
            (original_mrn,),
        )
        return self.cursor.fetchone() is not None

    def add(self, patient: NormalizedPatient) -> None:
        row = patient.to_row()
        values = tuple(row[c] for c in PATIENT_COLUMNS)
        try:
            self.cursor.execute("BEGIN")
            self.cursor.execute(self._insert_sql, values)
            self.cursor.execute("COMMIT")
        except Exception as e:
            try:
                self.cursor.execute("ROLLBACK")
            except Exception as rollback_e:  # pragma: no cover
                logger.debug("rollback failed patient_id=%s: %s", patient.patient_id, rollback_e)
            raise PatientStoreError(str(e)) from e

    def list_imported(self, sheet_name: str | None = None) -> list[dict[str, Any]]:
        """Imported patients ordered by sheet source, then worksheet row."""
        sql = f"SELECT {','.join(PATIENT_COLUMNS)} FROM {self.table} WHERE imported_from_excel"
        params: tuple[Any, ...] = ()
        if sheet_name:
            sql += " AND excel_sheet_source = %s"
            params = (sheet_name,)
        sql += " ORDER BY excel_sheet_source, excel_row_number"
        self.cursor.execute(sql, params)
        return [dict(zip(PATIENT_COLUMNS, r, strict=False)) for r in self.cursor.fetchall()]


class InMemoryPatientStore:
    """Dict-backed store keyed by original MRN; enforces unique patient_id."""

    def __init__(self) -> None:
        self.patients: dict[str, NormalizedPatient] = {}
        self._patient_ids: set[str] = set()

    def ensure_table(self) -> None:
        return None

    def exists(self, original_mrn: str) -> bool:
        return original_mrn in self.patients

    def add(self, patient: NormalizedPatient) -> None:
        if patient.patient_id in self._patient_ids:
            raise PatientStoreError(
                f'duplicate key value violates unique constraint "patient_id" ({patient.patient_id})'
            )
        self.patients[patient.original_mrn] = patient
        self._patient_ids.add(patient.patient_id)

    def list_imported(self, sheet_name: str | None = None) -> list[dict[str, Any]]:
        rows = [
            p.to_row() for p in self.patients.values()
            if sheet_name is None or p.excel_sheet_source == sheet_name
        ]
        return sorted(rows, key=lambda r: (r["excel_sheet_source"], r["excel_row_number"]))

    def __len__(self) -> int:
        return len(self.patients)
