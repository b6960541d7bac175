#!/usr/bin/env python3
"""
mumble-control Logging Configuration

Centralized logging setup for consistent formatting across the project.
Console output is coloured on terminals; a log file is only written when
MUMBLE_LOG_FILE names one.

Usage:
    from mumble_shared.log import get_logger

    logger = get_logger(__name__)
    logger.info("Connecting...")
    logger.debug("Discarded message", extra={"msg_type": "CryptSetup"})
"""

from __future__ import annotations
import logging
import os
import sys
from pathlib import Path
from typing import Any, Optional


LOG_LEVEL_ENV = "MUMBLE_LOG_LEVEL"
LOG_FILE_ENV = "MUMBLE_LOG_FILE"


# ========================================
#           LOGGING FORMATTERS
# ========================================

class GenericFormatter(logging.Formatter):
    """Prefixes session context passed through ``extra``."""

    def format(self, record: logging.LogRecord) -> str:
        context = []

        if hasattr(record, 'username'):
            context.append(f"user={record.username}")
        if hasattr(record, 'session_id'):
            context.append(f"session={record.session_id}")
        if hasattr(record, 'channel_id'):
            context.append(f"channel={record.channel_id}")
        if hasattr(record, 'msg_type'):
            context.append(f"msg={record.msg_type}")

        formatted = super().format(record)
        if context:
            return f"[{' '.join(context)}] {formatted}"
        return formatted


class ColoredFormatter(GenericFormatter):
    """Colored formatter for console output, keeping the context prefix"""

    # ANSI Color codes
    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'       # Reset
    }

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


# ========================================
#           LOGGING CONFIGURATION
# ========================================

_loggers_configured = set()

def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger for the given module.

    Args:
        name: Usually __name__ from the calling module
        level: Override log level ("DEBUG", "INFO", "WARNING", "ERROR")

    Returns:
        Configured logger instance

    Examples:
        logger = get_logger(__name__)
        logger.info("Connected")

        # With context
        logger.warning("Server rejected us", extra={
            "username": "justabot",
            "msg_type": "Reject",
        })
    """
    logger = logging.getLogger(name)

    # Only configure each logger once
    if name not in _loggers_configured:
        _configure_logger(logger, level)
        _loggers_configured.add(name)

    return logger


def _configure_logger(logger: logging.Logger, level: Optional[str] = None) -> None:
    """Configure a logger with appropriate handlers and formatters"""

    logger.setLevel(_get_log_level(level))

    # Clear existing handlers to avoid duplicates
    logger.handlers.clear()

    _add_console_handler(logger, colored=True)
    log_file = os.getenv(LOG_FILE_ENV)
    if log_file:
        _add_file_handler(logger, Path(log_file))

    # Prevent duplicate messages from parent loggers
    logger.propagate = False


def _get_log_level(level: Optional[str] = None) -> int:
    """Determine appropriate log level"""

    level = level or os.getenv(LOG_LEVEL_ENV)
    if level:
        return getattr(logging, level.upper(), logging.INFO)
    return logging.INFO


def _add_console_handler(logger: logging.Logger, colored: bool = True) -> None:
    """Add console handler with appropriate formatter"""

    fmt = '[%(levelname)-8s][%(asctime)s][%(name)-5s]: %(message)s'
    handler = logging.StreamHandler(sys.stdout)

    if colored and _supports_color():
        formatter: logging.Formatter = ColoredFormatter(fmt=fmt, datefmt='%H:%M:%S')
    else:
        formatter = GenericFormatter(fmt=fmt, datefmt='%Y-%m-%d %H:%M:%S')

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _add_file_handler(logger: logging.Logger, log_file: Path) -> None:
    """Add file handler writing to ``log_file``"""

    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file)

    formatter = GenericFormatter(
        fmt='%(asctime)s | %(name)-30s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _supports_color() -> bool:
    """Check if terminal supports color output"""

    # stdout must be a terminal
    if not (hasattr(sys.stdout, "isatty") and sys.stdout.isatty()):
        return False

    # TERM should not be dumb
    if os.getenv("TERM", "") == "dumb":
        return False

    if sys.platform == "win32":
        return os.getenv("ANSICON") is not None or os.getenv("WT_SESSION") is not None or os.getenv("TERM_PROGRAM") == "vscode"

    return True
# ========================================
#           CONVENIENCE FUNCTIONS
# ========================================

def configure_root_logging(level: str = "INFO") -> None:
    """
    Configure root logging for the entire application.
    Call this once at application startup.

    Args:
        level: Root log level ("DEBUG", "INFO", "WARNING", "ERROR")
    """
    root_logger = logging.getLogger()
    _configure_logger(root_logger, level)
    # Loggers handed out before this call keep their own level otherwise
    for name in _loggers_configured:
        logging.getLogger(name).setLevel(_get_log_level(level))


def log_control_message(logger: logging.Logger, level: str, message: str,
                        control_message: Any = None,
                        **context: Any) -> None:
    """
    Log a control protocol message with structured context.

    Args:
        logger: Logger instance
        level: Log level ("debug", "info", "warning", "error")
        message: Log message
        control_message: typed control message, its type becomes ``msg_type``
        **context: Additional context fields

    Example:
        log_control_message(logger, "debug", "Discarding message during sync",
                            msg, username="justabot")
    """

    extra_context = {}

    if control_message is not None:
        msg_type = getattr(control_message, "type_name", None) or type(control_message).__name__
        extra_context['msg_type'] = msg_type

    extra_context.update(context)

    log_func = getattr(logger, level.lower())
    log_func(message, extra=extra_context)
