from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from src.models.config_models import (
    DEFAULT_GROUP_MAP_PATH,
    DEFAULT_MINOR_AGE_THRESHOLD,
    ClientConfig,
    ImportConfig,
)

"""Config loader.

Responsibilities:
- Load YAML config (config/import.yml by default)
- Validate against the bundled JSON schema (config_schema.json)
- Apply defaults and environment overrides (IMPORT_RUN_CHARACTER, IMPORT_THREAD_COUNT)
"""

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/import.yml")

ENV_RUN_CHARACTER = "IMPORT_RUN_CHARACTER"
ENV_THREAD_COUNT = "IMPORT_THREAD_COUNT"


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against JSON schema.

    Raises:
        ConfigError: schema file missing/invalid, or the config violates it
            (missing required keys, wrong types, unknown keys).
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


def _env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    merged = dict(data)
    run_char = os.getenv(ENV_RUN_CHARACTER)
    if run_char:
        merged["run_character"] = run_char
    threads = os.getenv(ENV_THREAD_COUNT)
    if threads:
        try:
            merged["thread_count"] = int(threads)
        except ValueError as e:
            raise ConfigError(f"{ENV_THREAD_COUNT} must be an integer: {threads!r}") from e
    return merged


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping, got {type(data).__name__}")

    data = _env_overrides(data)
    # Overrides are validated too (thread_count >= 1 etc.)
    _validate_config_schema(data)

    client_raw = data.get("client") or {}
    run_char = data.get("run_character")
    return ImportConfig(
        source_directory=data["source_directory"],
        thread_count=data.get("thread_count"),
        workers=dict(data.get("workers") or {}),
        run_character=str(run_char) if run_char is not None else None,
        skip_rows=data.get("skip_rows", 0),
        minor_age_threshold=data.get("minor_age_threshold", DEFAULT_MINOR_AGE_THRESHOLD),
        group_map_path=data.get("group_map_path", DEFAULT_GROUP_MAP_PATH),
        check_email_domains=data.get("check_email_domains", True),
        timezone=data.get("timezone", "UTC"),
        client=ClientConfig(
            factory=client_raw.get("factory"),
            options=dict(client_raw.get("options") or {}),
        ),
    )
