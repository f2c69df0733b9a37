"""
Settings schema.

Typed, frozen settings for the billing engine.  YAML files are parsed into
these types by ``billing_config.loader``; validation runs at construction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection and pool settings for ``billing_kernel.db.Database``."""

    url: str = "sqlite://"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    transaction_timeout_seconds: float = 10.0

    def __post_init__(self) -> None:
        if not self.url or not self.url.strip():
            raise ValueError("database url cannot be empty")
        if self.pool_size < 1:
            raise ValueError("pool_size must be at least 1")
        if self.max_overflow < 0:
            raise ValueError("max_overflow cannot be negative")
        if self.pool_timeout <= 0:
            raise ValueError("pool_timeout must be positive")
        if self.transaction_timeout_seconds <= 0:
            raise ValueError("transaction_timeout_seconds must be positive")

    def engine_kwargs(self) -> dict:
        """Keyword arguments for ``Database(url, **kwargs)``."""
        return {
            "echo": self.echo,
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.pool_timeout,
            "pool_recycle": self.pool_recycle,
            "transaction_timeout_seconds": self.transaction_timeout_seconds,
        }


@dataclass(frozen=True)
class LedgerSettings:
    """
    Behavioural switches for the document engine.

    reconcile_in_transaction:
        Recompute customer balances inside the mutating transaction instead
        of in a follow-up transaction after commit.
    clamp_discounts:
        Clamp a FIXED discount larger than its base to the base.  When
        False such input is rejected.
    round_total_to_whole:
        Round document totals to whole rupees and record the round-off.
    estimate_validity_days:
        Default expiry of a new estimate.
    """

    reconcile_in_transaction: bool = False
    clamp_discounts: bool = False
    round_total_to_whole: bool = True
    estimate_validity_days: int = 30

    def __post_init__(self) -> None:
        if self.estimate_validity_days < 0:
            raise ValueError("estimate_validity_days cannot be negative")


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"

    def __post_init__(self) -> None:
        if self.level.upper() not in _LEVELS:
            raise ValueError(f"level must be one of {sorted(_LEVELS)}, got '{self.level}'")

    @property
    def level_number(self) -> int:
        return logging.getLevelName(self.level.upper())


@dataclass(frozen=True)
class BillingSettings:
    """Root settings object."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
