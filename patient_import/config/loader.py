from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import DatabaseConfig, ImportConfig

"""Config loader.

Responsibilities:
- Load YAML config (default: config/import.yml)
- Validate against the bundled JSON schema (config_schema.json)
- Apply defaults for optional keys
"""

__all__ = [
    "ConfigError",
    "load_config",
    "SCHEMA_PATH",
]

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")

DEFAULT_CREATED_BY = "DataMigrationTool"
DEFAULT_COUNTRY = "India"
DEFAULT_COUNTRY_CODE = "+91"
DEFAULT_ERROR_LOG_DIR = "./logs"


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing / not valid JSON, or the config data
            violates the schema (missing required keys, wrong types, extra keys).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def load_config(path: Path) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")

    _validate_config_schema(data)

    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    return ImportConfig(
        created_by=data.get("created_by", DEFAULT_CREATED_BY),
        country=data.get("country", DEFAULT_COUNTRY),
        default_country_code=data.get("default_country_code", DEFAULT_COUNTRY_CODE),
        error_log_dir=data.get("error_log_dir", DEFAULT_ERROR_LOG_DIR),
        database=db,
    )
