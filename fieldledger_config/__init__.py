"""
fieldledger_config -- runtime settings for the field ticket engine.

Responsibility:
    Provides typed, validated settings (database connection, at-risk
    thresholds, ticket numbering) loaded from YAML with environment
    overrides.

Architecture position:
    Configuration.  Sits beside ``fieldledger_kernel``; the kernel never
    imports from this package.  Services receive the individual settings
    objects they need through their constructors.
"""

from fieldledger_config.loader import load_settings, load_yaml_file, parse_settings
from fieldledger_config.schema import (
    DatabaseSettings,
    FieldLedgerSettings,
    NumberingSettings,
    RiskSettings,
)

__all__ = [
    "DatabaseSettings",
    "FieldLedgerSettings",
    "NumberingSettings",
    "RiskSettings",
    "load_settings",
    "load_yaml_file",
    "parse_settings",
]
