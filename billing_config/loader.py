"""
Settings loader (``billing_config.loader``).

Loads a YAML settings file and parses it into the frozen dataclasses of
``billing_config.schema``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys  -> ``ValueError`` naming the section and key.
* Invalid values  -> ``ValueError`` from the dataclass ``__post_init__``.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from billing_config.schema import (
    BillingSettings,
    DatabaseSettings,
    LedgerSettings,
    LoggingSettings,
)

_SECTIONS: dict[str, type] = {
    "database": DatabaseSettings,
    "ledger": LedgerSettings,
    "logging": LoggingSettings,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _parse_section(name: str, data: dict[str, Any] | None):
    cls = _SECTIONS[name]
    data = data or {}
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown keys in '{name}' settings: {sorted(unknown)}")
    return cls(**data)


def parse_settings(data: dict[str, Any]) -> BillingSettings:
    """Parse a settings dict (as loaded from YAML) into BillingSettings."""
    unknown = set(data) - set(_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown settings sections: {sorted(unknown)}")
    return BillingSettings(
        database=_parse_section("database", data.get("database")),
        ledger=_parse_section("ledger", data.get("ledger")),
        logging=_parse_section("logging", data.get("logging")),
    )


def load_settings(path: Path | str) -> BillingSettings:
    """Load and validate a YAML settings file."""
    return parse_settings(load_yaml_file(Path(path)))


def apply_overrides(settings: BillingSettings, *, database_url: str | None) -> BillingSettings:
    """Return a copy with a different database URL, if one is given."""
    if not database_url:
        return settings
    return dataclasses.replace(
        settings,
        database=dataclasses.replace(settings.database, url=database_url),
    )


def compute_checksum(settings: BillingSettings) -> str:
    """
    Deterministic SHA-256 of the settings, with the database URL excluded
    so credentials never reach the logs.
    """
    payload = dataclasses.asdict(settings)
    payload["database"].pop("url", None)
    canonical = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
