"""Dual logging system - JSON structured and traditional text logs."""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

LOGGER_NAME = "algo_provision"

# Extra attributes log_with_context may attach to a record
_CONTEXT_FIELDS = ("address", "desired_address", "phase", "event", "details")

# Third-party loggers that are chatty at INFO
_QUIET_LOGGERS = ("urllib3", "requests")


class JSONFormatter(logging.Formatter):
    """One JSON object per line, carrying device context when present."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        entry.update({
            name: getattr(record, name) for name in _CONTEXT_FIELDS if hasattr(record, name)
        })
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable single-line format."""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s - %(threadName)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


def setup_logging(
    log_dir: Path,
    log_level: str = "INFO",
    console_output: bool = True
) -> logging.Logger:
    """
    Set up dual logging system.

    Writes logs/structured/algo-provision-YYYYMMDD.json and
    logs/text/algo-provision-YYYYMMDD.log, plus stdout when console_output
    is set. Calling it again replaces the previous handlers.

    Args:
        log_dir: Directory for log files
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        console_output: Whether to output to console

    Returns:
        Configured logger instance
    """
    stamp = datetime.now().strftime('%Y%m%d')
    sinks = [
        (Path(log_dir) / "structured" / f"algo-provision-{stamp}.json", JSONFormatter()),
        (Path(log_dir) / "text" / f"algo-provision-{stamp}.log", TextFormatter()),
    ]

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper()))
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)

    for path, formatter in sinks:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    if console_output:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(TextFormatter())
        logger.addHandler(console)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """Get logger instance."""
    return logging.getLogger(name)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    address: Optional[str] = None,
    desired_address: Optional[str] = None,
    phase: Optional[str] = None,
    event: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    exc_info: bool = False
) -> None:
    """
    Log message with device context.

    Args:
        logger: Logger instance
        level: Log level (debug, info, warning, error, critical)
        message: Log message
        address: Original device address
        desired_address: Address the device is moving to
        phase: Current pipeline phase
        event: Provisioning event kind
        details: Additional details dictionary
        exc_info: Include exception information
    """
    context = {
        "address": address,
        "desired_address": desired_address,
        "phase": phase,
        "event": event,
        "details": details,
    }
    extra = {key: value for key, value in context.items() if value}

    getattr(logger, level.lower())(message, extra=extra, exc_info=exc_info)
