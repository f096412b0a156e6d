"""
Logging infrastructure for the session lock probe.

Provides text or JSON formatting, secret redaction and a per-run correlation id.
"""

import logging
import logging.handlers
import json
import sys
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional
from contextvars import ContextVar

# Context variable for correlation IDs
correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

# Logger used by the Azure SDK
AZURE_LOGGER_NAME = "azure"


class SensitiveDataFilter(logging.Filter):
    """Filter to redact secrets from log messages."""

    PATTERNS = [
        (re.compile(r'(SharedAccessKey=)[^;\s]+', re.IGNORECASE), r'\1***REDACTED***'),
        (re.compile(r'(AccountKey=)[^;\s]+', re.IGNORECASE), r'\1***REDACTED***'),
        (re.compile(r'(SharedAccessSignature=)[^;&\s]+', re.IGNORECASE), r'\1***REDACTED***'),
        (re.compile(r'(sig=)[^;&\s]+', re.IGNORECASE), r'\1***REDACTED***'),
        (re.compile(r'(Authorization:\s+)(?:Bearer\s+)?\S+', re.IGNORECASE), r'\1***REDACTED***'),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact secrets from the rendered message of a log record."""
        if record.args:
            # Arguments may carry secrets too (e.g. SDK debug output)
            try:
                record.msg = record.getMessage()
                record.args = ()
            except (TypeError, ValueError):
                return True
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)
        return True


def redact(text: str) -> str:
    """Apply every redaction pattern to ``text``."""
    for pattern, replacement in SensitiveDataFilter.PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }

        if corr_id := correlation_id.get():
            log_data["correlation_id"] = corr_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "context"):
            log_data["context"] = record.context

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter with ISO-8601 local timestamps."""

    def __init__(self):
        fmt = "%(asctime)s [%(levelname).3s] [%(threadName)s] %(name)s: %(message)s"
        super().__init__(fmt=fmt)

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        return datetime.fromtimestamp(record.created).astimezone().isoformat()

    def format(self, record: logging.LogRecord) -> str:
        """Append any structured context as key=value pairs."""
        output = super().format(record)
        context = getattr(record, "context", None)
        if not context:
            return output

        fields = [f"{key}={value}" for key, value in context.items()]
        corr_id = correlation_id.get()
        if corr_id:
            fields.append(f"correlation_id={corr_id}")

        # Keep a traceback below the summary line
        first, newline, rest = output.partition("\n")
        return f"{first} [{' '.join(fields)}]{newline}{rest}"


def setup_logging(
    level: str = "INFO",
    format_type: str = "text",
    log_file: Optional[str] = None,
    rotation_size: str = "10MB",
    rotation_count: int = 5,
    module_levels: Optional[Dict[str, str]] = None,
    console_level: str = "INFO",
    azure_level: str = "WARNING",
) -> None:
    """
    Configure probe logging.

    Args:
        level: Root log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: Log format ("json" or "text")
        log_file: Optional file path for log output (receives every level)
        rotation_size: Size limit for log rotation (e.g., "10MB")
        rotation_count: Number of rotated log files to keep
        module_levels: Optional dict of module-specific log levels
                      e.g., {"sessionprobe.servicebus.probe": "DEBUG"}
        console_level: Minimum level written to the console
        azure_level: Level of the Azure SDK loggers
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    if format_type == "json":
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = TextFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, console_level.upper()))
    console_handler.setFormatter(formatter)
    console_handler.addFilter(SensitiveDataFilter())
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        max_bytes = _parse_size(rotation_size)

        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_file,
            maxBytes=max_bytes,
            backupCount=rotation_count,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(SensitiveDataFilter())
        root_logger.addHandler(file_handler)

        root_logger.debug(f"Logging to file: {log_file} (rotation: {rotation_size}, count: {rotation_count})")

    logging.getLogger(AZURE_LOGGER_NAME).setLevel(getattr(logging, azure_level.upper()))

    if module_levels:
        for module_name, module_level in module_levels.items():
            module_logger = logging.getLogger(module_name)
            module_logger.setLevel(getattr(logging, module_level.upper()))
            root_logger.debug(f"Module '{module_name}' log level set to {module_level}")

    root_logger.debug(f"Logging configured: level={level}, format={format_type}")


def _parse_size(size_str: str) -> int:
    """
    Parse size string to bytes.

    Args:
        size_str: Size string (e.g., "10MB", "1GB")

    Returns:
        Size in bytes
    """
    size_str = size_str.upper().strip()

    # Check longer suffixes first to avoid matching 'B' in 'MB'
    multipliers = [
        ('GB', 1024 ** 3),
        ('MB', 1024 ** 2),
        ('KB', 1024),
        ('B', 1),
    ]

    for suffix, multiplier in multipliers:
        if size_str.endswith(suffix):
            number = size_str[:-len(suffix)].strip()
            return int(float(number) * multiplier)

    return int(size_str)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a module."""
    return logging.getLogger(name)


def set_correlation_id(corr_id: str) -> None:
    """Set correlation ID for current context."""
    correlation_id.set(corr_id)


def clear_correlation_id() -> None:
    """Clear correlation ID from current context."""
    correlation_id.set(None)


def log_with_context(logger: logging.Logger, level: int, message: str, **context: Any) -> None:
    """
    Log a message with additional context.

    Args:
        logger: Logger instance
        level: Log level
        message: Log message
        **context: Additional context to include in log
    """
    extra = {"context": context} if context else {}
    logger.log(level, message, extra=extra)
