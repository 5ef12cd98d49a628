"""Utility functions and configuration."""

from hyperlocal_demo.utils.config import FRAME_THRESHOLD, MOCK_LOCATION_ID
from hyperlocal_demo.utils.logging import (
    JsonlLogHandler,
    LogCategory,
    LogEntry,
    setup_logging,
)

__all__ = [
    "FRAME_THRESHOLD",
    "JsonlLogHandler",
    "LogCategory",
    "LogEntry",
    "MOCK_LOCATION_ID",
    "setup_logging",
]
