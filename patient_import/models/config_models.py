from __future__ import annotations

from dataclasses import dataclass

"""Config dataclasses for the patient register importer.

These are the typed result of ``patient_import.config.loader.load_config``.
The loader owns parsing/validation; this module only defines the shape.
"""


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection configuration.

    Used as fallback when environment variables are not set.
    Environment variables (DATABASE_URL / PGDSN / PG*) take precedence.
    """
    host: str | None
    port: int | None
    user: str | None
    password: str | None
    database: str | None
    dsn: str | None


@dataclass(frozen=True)
class ImportConfig:
    """Root configuration object for one import run."""
    created_by: str  # CreatedBy stamp written on every imported patient
    country: str  # Country column (all register rows share one country)
    default_country_code: str  # 10桁電話番号に付与する国番号
    error_log_dir: str  # JSON Lines error log directory
    database: DatabaseConfig
