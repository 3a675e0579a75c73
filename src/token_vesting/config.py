"""
Vesting ledger configuration.

All settings come from environment variables so the same build runs
locally and in deployment without code changes.
"""

from __future__ import annotations

import os


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DB_PATH = os.getenv("VESTING_DB_PATH", os.path.join("data", "vesting", "ledger.db"))
LOG_LEVEL = os.getenv("VESTING_LOG_LEVEL", "INFO").strip().upper()
LOG_FILE = os.getenv("VESTING_LOG_FILE", "").strip()
ENVIRONMENT = os.getenv("VESTING_ENVIRONMENT", "development").strip()


def validate_config(log_level: str = LOG_LEVEL, db_path: str = DB_PATH) -> None:
    """Raise ConfigurationError if a setting cannot be used."""
    if log_level.upper() not in VALID_LOG_LEVELS:
        raise ConfigurationError(
            f"VESTING_LOG_LEVEL must be one of {', '.join(VALID_LOG_LEVELS)}, got {log_level!r}"
        )
    if not db_path:
        raise ConfigurationError("VESTING_DB_PATH cannot be empty")
