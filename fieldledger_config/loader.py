"""
Configuration Loader (``fieldledger_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into the frozen dataclasses of
``fieldledger_config.schema``.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  No dependency on kernel or
modules; the kernel never imports from here.

Invariants enforced
-------------------
* Unknown keys are rejected so a typo never silently falls back to a
  default.
* ``DATABASE_URL`` in the environment overrides ``database.url``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or invalid values  -> ``ValueError``.
"""

from __future__ import annotations

import os
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from fieldledger_config.schema import (
    DatabaseSettings,
    FieldLedgerSettings,
    NumberingSettings,
    RiskSettings,
)

CONFIG_PATH_ENV = "FIELDLEDGER_CONFIG"
DATABASE_URL_ENV = "DATABASE_URL"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def _parse_section(cls: type, section: str, data: Any) -> Any:
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ValueError(f"{section}: expected a mapping")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"{section}: unknown keys {unknown}")
    return cls(**data)


def parse_settings(data: dict[str, Any]) -> FieldLedgerSettings:
    """Parse ``FieldLedgerSettings`` from a dict (e.g. a loaded YAML file)."""
    unknown = sorted(set(data) - {"database", "risk", "numbering"})
    if unknown:
        raise ValueError(f"unknown top-level keys {unknown}")
    return FieldLedgerSettings(
        database=_parse_section(DatabaseSettings, "database", data.get("database")),
        risk=_parse_section(RiskSettings, "risk", data.get("risk")),
        numbering=_parse_section(NumberingSettings, "numbering", data.get("numbering")),
    )


def load_settings(
    path: Path | str | None = None,
    environ: dict[str, str] | None = None,
) -> FieldLedgerSettings:
    """
    Load settings from ``path``, ``$FIELDLEDGER_CONFIG``, or defaults.

    ``$DATABASE_URL`` overrides the database URL from any source.
    """
    env = os.environ if environ is None else environ
    source = path or env.get(CONFIG_PATH_ENV)
    data = load_yaml_file(Path(source)) if source else {}

    database_url = env.get(DATABASE_URL_ENV)
    if database_url:
        database = dict(data.get("database") or {})
        database["url"] = database_url
        data = {**data, "database": database}

    return parse_settings(data)
