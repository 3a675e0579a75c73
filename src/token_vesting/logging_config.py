"""
JSON logging for the vesting ledger.

Ledger modules log through ``logging.getLogger(__name__)`` with an
``event`` name and context in ``extra``. This module turns those records
into one JSON object per line.

Token amounts are uint256 values. Integers beyond the range a JSON
consumer can hold exactly (2**53) are written as decimal strings.

Usage:
    from token_vesting.logging_config import setup_logging

    setup_logging(level="DEBUG", log_file="/var/log/vesting/ledger.json")
"""

import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from . import config

JSON_SAFE_INT = 2**53

LEDGER_LOGGER = "token_vesting"


def _json_safe(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, int):
        return value
    if -JSON_SAFE_INT <= value <= JSON_SAFE_INT:
        return value
    return str(value)


class LedgerJsonFormatter(jsonlogger.JsonFormatter):
    """Formatter adding service, environment and call-site fields."""

    def __init__(self, environment: str = "production", service: str = LEDGER_LOGGER):
        super().__init__(fmt="%(timestamp)s %(level)s %(name)s %(message)s")
        self.environment = environment
        self.service = service

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        for key, value in list(log_record.items()):
            log_record[key] = _json_safe(value)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.fromtimestamp(record.created, timezone.utc).isoformat()
        if not log_record.get("level"):
            log_record["level"] = record.levelname.lower()
        log_record["service"] = self.service
        log_record["environment"] = self.environment
        log_record["source"] = {
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }


def setup_logging(
    name: str = LEDGER_LOGGER,
    level: str = "INFO",
    log_file: Optional[str] = None,
    environment: str = "production",
    console: bool = True,
    max_bytes: int = 50 * 1024 * 1024,  # 50MB
    backup_count: int = 5,
) -> logging.Logger:
    """
    Attach JSON handlers to the ``name`` logger.

    Calling it again replaces the handlers from the previous call.

    Args:
        name: Logger to configure; child module loggers inherit it
        level: Logging level name
        log_file: Rotating JSON log file (optional)
        environment: Value of the ``environment`` field
        console: Whether to also log to stderr
        max_bytes: Size at which the log file rotates
        backup_count: Rotated files to keep

    Returns:
        The configured logger
    """
    numeric_level = getattr(logging, level.upper())
    logger = logging.getLogger(name)
    logger.setLevel(numeric_level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = LedgerJsonFormatter(environment=environment, service=name.split(".")[0])

    if console:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    if log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_file, maxBytes=max_bytes, backupCount=backup_count
            )
        except OSError as exc:
            logger.warning("Cannot open log file %s: %s", log_file, exc)
        else:
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger


def configure_from_env(console: bool = True) -> logging.Logger:
    """Configure the ledger logger from the ``VESTING_*`` settings."""
    return setup_logging(
        name=LEDGER_LOGGER,
        level=config.LOG_LEVEL,
        log_file=config.LOG_FILE or None,
        environment=config.ENVIRONMENT,
        console=console,
    )
