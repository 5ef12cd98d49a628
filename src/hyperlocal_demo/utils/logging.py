"""Logging setup for the hyperlocal demo client.

Modules log through ``logging.getLogger(__name__)`` and prefix each
message with a bracketed category, e.g. ``[WORKFLOW] idle -> capturing``.

This module provides:
- LogCategory: The category prefixes in use
- LogEntry: A structured record parsed from a log message
- JsonlLogHandler: A logging handler writing one JSON entry per line
- setup_logging: Console (and optional JSONL file) configuration for the CLI
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

# =============================================================================
# LOG CATEGORIES
# =============================================================================

class LogCategory(str, Enum):
    """Log categories for structured filtering and analysis."""
    WORKFLOW = "WORKFLOW"    # Phase transitions and mode switches
    CAPTURE = "CAPTURE"      # Frame-capture sessions
    FRAMES = "FRAMES"        # Payload frame materialization
    ESTIMATE = "ESTIMATE"    # Estimation service calls
    PAYLOAD = "PAYLOAD"      # Payload validation
    STORAGE = "STORAGE"      # Config and payload persistence
    GEO = "GEO"              # Geolocation lookups
    SYSTEM = "SYSTEM"        # Anything without a category prefix


_PREFIX_RE = re.compile(r"^\[([A-Z]+)\]\s*")


# =============================================================================
# LOG ENTRY
# =============================================================================

class LogEntry:
    """A structured log entry built from a standard logging record."""

    def __init__(
        self,
        category: LogCategory,
        level: str,
        message: str,
        logger_name: str = "",
        timestamp: datetime | None = None,
        extras: dict[str, Any] | None = None,
    ):
        self.timestamp = timestamp or datetime.now()
        self.category = category
        self.level = level
        self.message = message
        self.logger_name = logger_name
        self.extras = extras or {}

    @classmethod
    def from_record(cls, record: logging.LogRecord) -> LogEntry:
        """Split the category prefix off a record's message."""
        message = record.getMessage()
        category = LogCategory.SYSTEM
        match = _PREFIX_RE.match(message)
        if match and match.group(1) in LogCategory.__members__:
            category = LogCategory(match.group(1))
            message = message[match.end():]
        extras = {}
        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            extras["exception"] = f"{type(exc).__name__}: {exc}"
        return cls(
            category=category,
            level=record.levelname,
            message=message,
            logger_name=record.name,
            timestamp=datetime.fromtimestamp(record.created),
            extras=extras,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        d = {
            "timestamp": self.timestamp.isoformat(),
            "category": self.category.value,
            "level": self.level,
            "logger": self.logger_name,
            "message": self.message,
        }
        if self.extras:
            d["extras"] = self.extras
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


# =============================================================================
# HANDLERS
# =============================================================================

class JsonlLogHandler(logging.Handler):
    """Writes each record as a JSON line to a file."""

    def __init__(self, path: Path, level: int = logging.DEBUG) -> None:
        super().__init__(level)
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self._path, "a", encoding="utf-8")

    @property
    def path(self) -> Path:
        return self._path

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._file.write(LogEntry.from_record(record).to_json() + "\n")
            self._file.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()
        super().close()


def setup_logging(verbose: bool = False, log_path: Path | None = None) -> JsonlLogHandler | None:
    """Configure logging for the CLI.

    Args:
        verbose: Show DEBUG on the console (WARNING otherwise).
        log_path: Optional JSONL file that receives every record.

    Returns:
        The JSONL handler when ``log_path`` is given, else None.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    if log_path is None:
        return None

    handler = JsonlLogHandler(log_path)
    package_logger = logging.getLogger("hyperlocal_demo")
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG)
    # Console stays at the requested verbosity
    for console in logging.getLogger().handlers:
        console.setLevel(level)
    return handler
