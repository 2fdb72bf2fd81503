#!/usr/bin/env python3
"""
Structured Logging Module

Provides centralized logging for the extraction core:
- One named logger per module (get_logger("page_fetcher"))
- File rotation (daily logs, keep 30 days) plus a separate error log
- Structured JSON lines for files, readable lines for the console
- Performance logging for public entry points
"""
import os
import sys
import json
import time
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from datetime import datetime
from functools import wraps
from typing import Dict, Optional

# =============================================================================
# CONFIGURATION
# =============================================================================

LOG_DIR = Path(os.environ.get("LOG_DIR", Path(__file__).parent.parent.parent / "logs"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.environ.get("LOG_FORMAT", "structured")  # "structured" or "simple"
LOG_TO_FILE = os.environ.get("LOG_TO_FILE", "true").lower() == "true"
LOG_TO_CONSOLE = os.environ.get("LOG_TO_CONSOLE", "true").lower() == "true"
LOG_ROTATE_WHEN = os.environ.get("LOG_ROTATE_WHEN", "midnight")  # midnight, D, H
LOG_INTERVAL = int(os.environ.get("LOG_INTERVAL", "1"))

ROOT_LOGGER_NAME = "cardpop"

# Attributes every LogRecord carries; anything else came in through extra=
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


# =============================================================================
# FORMATTERS
# =============================================================================

class StructuredFormatter(logging.Formatter):
    """JSON-structured log formatter for better parsing."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in log_data:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class SimpleFormatter(logging.Formatter):
    """Simple human-readable log formatter."""

    def __init__(self):
        super().__init__(
            fmt='[%(asctime)s] %(levelname)-8s %(name)s: %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


# =============================================================================
# LOGGER SETUP
# =============================================================================

def _configure_root(level: str = None) -> logging.Logger:
    """Attach handlers once to the package root logger."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if root.handlers:
        return root

    log_level = getattr(logging, level or LOG_LEVEL, logging.INFO)
    root.setLevel(log_level)

    if LOG_FORMAT == "structured":
        file_formatter = StructuredFormatter()
    else:
        file_formatter = SimpleFormatter()

    if LOG_TO_FILE:
        LOG_DIR.mkdir(parents=True, exist_ok=True)

        file_handler = TimedRotatingFileHandler(
            filename=LOG_DIR / f"{ROOT_LOGGER_NAME}.log",
            when=LOG_ROTATE_WHEN,
            interval=LOG_INTERVAL,
            backupCount=30,
            encoding='utf-8',
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(file_formatter)
        root.addHandler(file_handler)

        error_handler = TimedRotatingFileHandler(
            filename=LOG_DIR / f"{ROOT_LOGGER_NAME}_errors.log",
            when=LOG_ROTATE_WHEN,
            interval=LOG_INTERVAL,
            backupCount=30,
            encoding='utf-8',
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(file_formatter)
        root.addHandler(error_handler)

    if LOG_TO_CONSOLE:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(SimpleFormatter())
        root.addHandler(console_handler)

    if not root.handlers:
        root.addHandler(logging.NullHandler())

    root.propagate = False
    return root


_loggers: Dict[str, logging.Logger] = {}


def setup_logger(name: str = ROOT_LOGGER_NAME, level: str = None) -> logging.Logger:
    """
    Set up a module logger under the package root.

    Args:
        name: Logger name (e.g. "page_fetcher")
        level: Optional log level override for this logger

    Returns:
        Configured logger
    """
    _configure_root()
    full_name = name if name.startswith(ROOT_LOGGER_NAME) else f"{ROOT_LOGGER_NAME}.{name}"
    logger = logging.getLogger(full_name)
    if level:
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Get or create a named logger."""
    if name not in _loggers:
        _loggers[name] = setup_logger(name)
    return _loggers[name]


# =============================================================================
# PERFORMANCE LOGGING
# =============================================================================

def log_performance(func):
    """Decorator to log function execution time."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        logger = get_logger("performance")
        start_time = time.time()

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            logger.error(
                f"{func.__name__} failed: {e}",
                extra={
                    "function_name": func.__name__,
                    "duration_seconds": round(time.time() - start_time, 3),
                    "status": "error",
                },
                exc_info=True
            )
            raise

        status = "success"
        if getattr(result, "success", True) is False:
            status = "failure"
        logger.info(
            f"{func.__name__} completed",
            extra={
                "function_name": func.__name__,
                "duration_seconds": round(time.time() - start_time, 3),
                "status": status,
            }
        )
        return result

    return wrapper
