from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

"""Config loader for the specimen importer.

Responsibilities:
- Load YAML config (default: config/import.yml, override via PETRO_IMPORT_CONFIG)
- Validate against the bundled JSON schema
- Apply defaults (batch sizes, pacing delay, code strategy, upload limit)
"""

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/import.yml")
CONFIG_ENV_VAR = "PETRO_IMPORT_CONFIG"

DEFAULT_BATCH_SIZES = {"rocks": 50, "minerals": 100}
DEFAULT_BATCH_DELAY_SECONDS = 0.3
DEFAULT_UPLOAD_MAX_BYTES = 10 * 1024 * 1024


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class EntityConfig:
    """Per-entity import settings (rocks / minerals)."""
    default_file: str | None
    batch_size: int
    batch_delay_seconds: float = DEFAULT_BATCH_DELAY_SECONDS
    skip_sheets: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class ImportConfig:
    entities: dict[str, EntityConfig]
    code_strategy: str = "index"
    check_existing: bool = False
    upload_max_bytes: int = DEFAULT_UPLOAD_MAX_BYTES
    error_log_dir: str = "./logs"
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    def entity(self, key: str) -> EntityConfig:
        try:
            return self.entities[key]
        except KeyError:
            raise ConfigError(f"entity not configured: {key}") from None


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the bundled JSON schema.

    Raises:
        ConfigError: If the schema file is missing or invalid, or if the config
            data fails validation (missing keys, wrong types, unknown keys).
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


def _build_entity(key: str, raw: dict[str, Any]) -> EntityConfig:
    return EntityConfig(
        default_file=raw.get("default_file"),
        batch_size=raw.get("batch_size", DEFAULT_BATCH_SIZES.get(key, 50)),
        batch_delay_seconds=float(raw.get("batch_delay_seconds", DEFAULT_BATCH_DELAY_SECONDS)),
        skip_sheets=frozenset(raw.get("skip_sheets", [])),
    )


def resolve_config_path(path: Path | None = None) -> Path:
    if path is not None:
        return path
    env_path = os.getenv(CONFIG_ENV_VAR)
    return Path(env_path) if env_path else DEFAULT_CONFIG_PATH


def load_config(path: Path | None = None) -> ImportConfig:
    path = resolve_config_path(path)
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e

    _validate_config_schema(data)

    entities = {key: _build_entity(key, raw or {}) for key, raw in data["entities"].items()}
    db_raw = data.get("database", {})
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    return ImportConfig(
        entities=entities,
        code_strategy=data.get("code_strategy", "index"),
        check_existing=data.get("check_existing", False),
        upload_max_bytes=data.get("upload", {}).get("max_bytes", DEFAULT_UPLOAD_MAX_BYTES),
        error_log_dir=data.get("error_log_dir", "./logs"),
        database=db,
    )
