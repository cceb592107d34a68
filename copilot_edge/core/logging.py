"""Logging setup for CopilotEdge.

Call ``setup_logging`` once at startup; modules obtain loggers through
``get_logger(__name__)``.
"""

import json
import logging
import re
import sys
from typing import Optional

_SENSITIVE_PATTERNS = [
    re.compile(r"bearer\s+[a-zA-Z0-9._\-]+", re.IGNORECASE),
    re.compile(
        r"((?:api[_-]?key|api[_-]?token|password|secret|credential)s?\s*[=:]\s*)[^\s,;&]+",
        re.IGNORECASE,
    ),
]

REDACTED = "[REDACTED]"


def redact(text: str) -> str:
    """Mask credentials in a log line."""
    text = _SENSITIVE_PATTERNS[0].sub(f"Bearer {REDACTED}", text)
    return _SENSITIVE_PATTERNS[1].sub(lambda m: m.group(1) + REDACTED, text)


class RedactingFilter(logging.Filter):
    """Rewrites records so tokens and secrets never reach a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


class JsonFormatter(logging.Formatter):
    """Formats log records as a JSON string."""

    def format(self, record):
        log_object = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_object["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(log_object)


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> logging.Logger:
    """Configure the root logger.

    Args:
        log_level: Level name such as ``INFO`` or ``DEBUG``.
        log_format: ``json`` for structured output, anything else for plain text.

    Returns:
        The configured root logger.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level.upper())

    if log_format == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(RedactingFilter())

    # Clear existing handlers to avoid duplicates
    if root_logger.hasHandlers():
        root_logger.handlers.clear()
    root_logger.addHandler(handler)

    return root_logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a named logger."""
    return logging.getLogger(name)
