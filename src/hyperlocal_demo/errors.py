"""Exception hierarchy for the hyperlocal demo client."""

from __future__ import annotations

import json
from typing import Any


class HyperlocalError(Exception):
    """Base class for all errors raised by this package."""


# =============================================================================
# Workflow
# =============================================================================

class WorkflowError(HyperlocalError):
    """An action was requested that the workflow cannot perform right now."""


class WorkflowBusyError(WorkflowError):
    """A start was requested while an attempt is still capturing or estimating."""


class NotReadyError(WorkflowError):
    """A start was requested while the readiness check fails."""

    def __init__(self, hint: str) -> None:
        super().__init__(hint)
        self.hint = hint


class CaptureUnavailableError(WorkflowError):
    """Camera mode was started without a live video source."""

    def __init__(self, message: str = "No live video source available") -> None:
        super().__init__(message)


# =============================================================================
# Collaborators
# =============================================================================

class MaterializationError(HyperlocalError):
    """Fetching a remote image reference returned a failure status."""

    def __init__(self, status: int, url: str) -> None:
        super().__init__(f"Failed to fetch image ({status}): {url}")
        self.status = status
        self.url = url


class GeolocationError(HyperlocalError):
    """A geolocation lookup was denied or failed."""


def describe_error(error: Any) -> str:
    """Render an error detail for display.

    Exceptions render as ``Name: message``; anything else is serialized
    as JSON, falling back to ``repr`` when it is not JSON-serializable.
    """
    if isinstance(error, BaseException):
        message = str(error)
        name = type(error).__name__
        return f"{name}: {message}" if message else name
    try:
        return json.dumps(error, indent=2)
    except (TypeError, ValueError):
        return repr(error)
