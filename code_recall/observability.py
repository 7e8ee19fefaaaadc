"""
Structured logging for the CLI and the embedding worker.

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed here by the entry points.
"""

import json
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, TextIO


ROOT_LOGGER = "code_recall"


@dataclass
class LogRecord:
    """A structured log record."""

    timestamp: datetime = field(default_factory=datetime.now)
    level: str = "INFO"
    message: str = ""
    logger_name: str = ""
    attributes: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        result = {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
            "message": self.message,
            "logger": self.logger_name,
        }
        if self.attributes:
            result["attributes"] = self.attributes
        if self.exception:
            result["exception"] = self.exception
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def to_text(self) -> str:
        """Convert to human-readable text."""
        parts = [
            self.timestamp.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3],
            f"[{self.level}]",
            self.logger_name,
            "-",
            self.message,
        ]
        if self.attributes:
            attrs = " ".join(f"{k}={v}" for k, v in self.attributes.items())
            parts.append(f"[{attrs}]")

        text = " ".join(parts)
        if self.exception:
            text += f"\n{self.exception}"
        return text


class StructuredFormatter(logging.Formatter):
    """
    Formatter producing JSON or text records.

    Extra fields are passed as ``extra={"attributes": {...}}``.
    """

    def __init__(self, json_output: bool = False):
        super().__init__()
        self.json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        attributes = getattr(record, "attributes", None)
        log_record = LogRecord(
            timestamp=datetime.fromtimestamp(record.created),
            level=record.levelname,
            message=record.getMessage(),
            logger_name=record.name,
            attributes=attributes if isinstance(attributes, dict) else {},
            exception=self.formatException(record.exc_info) if record.exc_info else None,
        )
        if self.json_output:
            return log_record.to_json()
        return log_record.to_text()


def setup_logging(
    verbose: bool = False,
    json_output: bool = False,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Install a structured handler on the package logger.

    Args:
        verbose: Log at DEBUG instead of WARNING
        json_output: Emit one JSON object per line
        stream: Destination, stderr by default

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)

    for handler in list(logger.handlers):
        if getattr(handler, "_code_recall", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter(json_output))
    handler._code_recall = True
    logger.addHandler(handler)
    logger.propagate = False
    return logger
