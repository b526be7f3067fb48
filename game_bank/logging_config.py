"""
Structured Logging Configuration Module

Every record written through `log_operation` is tied to the atomic unit that
produced it: the operation name and id, the account that initiated it and
the thread it ran on (request workers or the settlement timer). The JSON
formatter flattens those into one object per line; the text formatter
appends the operation id.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Any, Optional

OPERATION_FIELDS = ("operation_name", "operation_id", "account_id")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, operation context at the top level"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        for name in OPERATION_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value
        fields = getattr(record, "fields", None)
        if fields:
            log_entry["fields"] = fields

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class OperationTextFormatter(logging.Formatter):
    """Plain text for development; the operation id goes in brackets"""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)s %(name)s [%(threadName)s]: %(message)s")

    def format(self, record):
        line = super().format(record)
        operation_id = getattr(record, "operation_id", None)
        if operation_id:
            line = f"{line} [op {operation_id}]"
        return line


def setup_logging(level: str = "INFO", logger_name: str = "game_bank",
                  log_format: str = "json") -> logging.Logger:
    """
    Attach a single stream handler to the package logger

    Args:
        level: Log level name
        logger_name: Root logger of the package
        log_format: "json" or "text"
    """
    logger = logging.getLogger(logger_name)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if log_format == "json" else OperationTextFormatter())
    logger.addHandler(handler)
    logger.setLevel(level.upper())
    logger.propagate = False
    return logger


def get_logger(name: str = "game_bank") -> logging.Logger:
    return logging.getLogger(name)


def log_operation(logger: logging.Logger, level: str, message: str,
                  operation: Any = None, account_id: Optional[str] = None,
                  **fields: Any) -> None:
    """
    Log a message in the context of an atomic unit

    Args:
        logger: Logger to write to
        level: Level name (info, warning, error)
        message: Human-readable message
        operation: The unit's Operation; its name and id are attached
        account_id: Account that initiated the unit, when there is one
        **fields: Additional structured data, kept under "fields"
    """
    context = {
        "operation_name": getattr(operation, "name", None),
        "operation_id": getattr(operation, "id", None),
        "account_id": account_id,
        "fields": fields or None,
    }
    logger.log(logging.getLevelName(level.upper()), message, extra=context, stacklevel=2)
