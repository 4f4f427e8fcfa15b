"""Logging configuration for Horizen.

Provides consistent logging across all modules with:
- Console output with colors (via Rich)
- File logging for debugging
- Configurable log levels

Never pass passwords, keys or decrypted payloads to a logger; records from
the vault and backup loggers additionally have payload arguments stripped.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


# Global console for rich output (stderr keeps stdout clean for piped exports)
console = Console(stderr=True)

# Default log format
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
SIMPLE_FORMAT = "%(message)s"

# Loggers whose records may sit next to key material
SENSITIVE_LOGGERS = ("horizen.vault", "horizen.backup")
REDACTED = "[redacted]"

# Argument types that can carry keys, ciphertext or decrypted sections
PAYLOAD_TYPES = (bytes, bytearray, memoryview, dict, list, tuple, set)


class PayloadRedactionFilter(logging.Filter):
    """
    Strip payload arguments from records of the sensitive loggers.

    Messages from ``horizen.vault`` and ``horizen.backup`` may interpolate
    counts, ids and error text only. Any bytes or container argument (and a
    non-string message) is replaced with ``[redacted]`` before a handler
    formats the record.
    """

    def __init__(self, prefixes: tuple[str, ...] = SENSITIVE_LOGGERS):
        super().__init__()
        self.prefixes = prefixes

    def _sensitive(self, name: str) -> bool:
        return any(name == prefix or name.startswith(prefix + ".") for prefix in self.prefixes)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._sensitive(record.name):
            return True
        if not isinstance(record.msg, str):
            record.msg = REDACTED
            record.args = None
        elif isinstance(record.args, dict):
            if "%(" not in record.msg:
                # A single mapping argument is itself a payload
                record.args = (REDACTED,)
            else:
                record.args = {
                    key: REDACTED if isinstance(value, PAYLOAD_TYPES) else value
                    for key, value in record.args.items()
                }
        elif record.args:
            record.args = tuple(
                REDACTED if isinstance(arg, PAYLOAD_TYPES) else arg for arg in record.args
            )
        return True


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    rich_output: bool = True,
) -> logging.Logger:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file to write logs to
        rich_output: Whether to use Rich for console output

    Returns:
        Configured package logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger("horizen")
    logger.setLevel(log_level)

    # Clear existing handlers
    logger.handlers.clear()

    if rich_output:
        console_handler = RichHandler(
            console=console,
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
        )
        console_handler.setFormatter(logging.Formatter(SIMPLE_FORMAT))
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    redaction = PayloadRedactionFilter()

    console_handler.setLevel(log_level)
    console_handler.addFilter(redaction)
    logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler.setLevel(logging.DEBUG)  # File gets all messages
        file_handler.addFilter(redaction)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    Args:
        name: Module name (e.g., "horizen.vault.session")

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
