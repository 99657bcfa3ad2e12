"""
Configuration schema (``fieldledger_config.schema``).

Frozen dataclasses describing runtime settings.  Values are validated on
construction so an invalid YAML file fails at load time, not in the middle
of a request.
"""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_DATABASE_URL = "sqlite:///fieldledger.db"


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection settings passed to ``init_engine_from_url``."""
    url: str = DEFAULT_DATABASE_URL
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    sqlite_busy_timeout: int = 30

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("database.url must be non-empty")
        if self.pool_size < 1:
            raise ValueError("database.pool_size must be >= 1")
        if self.max_overflow < 0:
            raise ValueError("database.max_overflow must be >= 0")


@dataclass(frozen=True)
class RiskSettings:
    """Aging thresholds (days) and trend window (weeks) for the at-risk report.

    A ticket is fresh when its age is at most ``warning_days``, warning when
    at most ``critical_days``, and critical beyond that.
    """
    warning_days: int = 3
    critical_days: int = 7
    trend_weeks: int = 8

    def __post_init__(self) -> None:
        if self.warning_days < 1 or self.critical_days < 1:
            raise ValueError("risk thresholds must be positive")
        if self.warning_days >= self.critical_days:
            raise ValueError(
                f"risk.warning_days ({self.warning_days}) must be less than "
                f"risk.critical_days ({self.critical_days})"
            )
        if self.trend_weeks < 1:
            raise ValueError("risk.trend_weeks must be >= 1")


@dataclass(frozen=True)
class NumberingSettings:
    """Ticket number format ``{prefix}-{year}-{seq}`` and allocation retries."""
    prefix: str = "FT"
    width: int = 5
    max_allocation_attempts: int = 3

    def __post_init__(self) -> None:
        if not self.prefix:
            raise ValueError("numbering.prefix must be non-empty")
        if self.width < 1:
            raise ValueError("numbering.width must be >= 1")
        if self.max_allocation_attempts < 1:
            raise ValueError("numbering.max_allocation_attempts must be >= 1")


@dataclass(frozen=True)
class FieldLedgerSettings:
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    risk: RiskSettings = field(default_factory=RiskSettings)
    numbering: NumberingSettings = field(default_factory=NumberingSettings)
