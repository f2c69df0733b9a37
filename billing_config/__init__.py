"""
billing_config -- single public entrypoint for runtime settings.

Responsibility:
    ``get_active_settings()`` is the only way services obtain settings.
    It resolves the settings file from the ``BILLING_CONFIG`` environment
    variable, else the packaged ``defaults.yaml``, then applies the
    ``DATABASE_URL`` override.

Architecture position:
    Configuration.  Sits beside ``billing_kernel``: the kernel never
    imports from ``billing_config``; the process entry point reads the
    settings and passes plain values into ``Database`` and ``LedgerEngine``.

Failure modes:
    - ``FileNotFoundError`` -- BILLING_CONFIG points at a missing file.
    - ``ValueError`` -- unknown keys or invalid values.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from billing_config.loader import apply_overrides, compute_checksum, load_settings
from billing_config.schema import (
    BillingSettings,
    DatabaseSettings,
    LedgerSettings,
    LoggingSettings,
)

_logger = logging.getLogger("billing_kernel.config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_settings(path: Path | str | None = None) -> BillingSettings:
    """
    Load the active settings.

    Args:
        path: Explicit settings file.  Defaults to $BILLING_CONFIG, then
            the packaged defaults.
    """
    source = Path(path or os.environ.get("BILLING_CONFIG") or DEFAULTS_PATH)
    settings = apply_overrides(
        load_settings(source),
        database_url=os.environ.get("DATABASE_URL"),
    )
    _logger.info(
        "settings_loaded",
        extra={
            "source": str(source),
            "checksum": compute_checksum(settings),
        },
    )
    return settings


__all__ = [
    "BillingSettings",
    "DatabaseSettings",
    "LedgerSettings",
    "LoggingSettings",
    "get_active_settings",
    "load_settings",
]
