"""Abstract base classes for the external collaborators.

The workflow controller depends only on these interfaces and the
schemas, never on concrete implementations. Real implementations (a
browser camera bridge, the estimation SDK) live outside this package;
``hyperlocal_demo.modules.stubs`` provides synthetic ones.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable

if TYPE_CHECKING:
    from hyperlocal_demo.schemas import (
        CapturedFrame,
        EstimationOptions,
        EstimationResult,
        GeoHint,
    )


FrameThresholdHandler = Callable[[list["CapturedFrame"]], Awaitable[None]]


# =============================================================================
# Storage
# =============================================================================


class KeyValueStorage(ABC):
    """Durable string-keyed string storage (localStorage-like)."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value, or None if the key is absent."""
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value under a key, replacing any previous value."""
        ...


# =============================================================================
# Camera and Capture
# =============================================================================


class CameraStream(ABC):
    """Provider of the live video source used for frame capture."""

    @property
    @abstractmethod
    def video_source(self) -> Any | None:
        """The current live video source, or None when none is attached."""
        ...


@dataclass(frozen=True)
class CaptureOptions:
    """Options for a capture session."""

    frame_threshold: int
    show_preview: bool
    on_frame_threshold: FrameThresholdHandler


class FrameCaptureService(ABC):
    """Accumulates frames from a video source until a threshold is reached.

    Once ``frame_threshold`` frames have been captured the service calls
    ``on_frame_threshold`` with the accumulated batch.
    """

    @abstractmethod
    def start_capture(self, video_source: Any, options: CaptureOptions) -> None:
        """Begin accumulating frames from ``video_source``.

        Args:
            video_source: Live video source from a CameraStream.
            options: Threshold, preview flag and completion handler.
        """
        ...

    @property
    @abstractmethod
    def captured_count(self) -> int:
        """Number of frames captured in the current session."""
        ...

    @property
    @abstractmethod
    def preview_urls(self) -> list[str]:
        """Preview URLs of captured frames (empty unless previews are on)."""
        ...

    @abstractmethod
    def reset(self) -> None:
        """Discard accumulated frames and preview state."""
        ...


# =============================================================================
# Estimation and Geolocation
# =============================================================================


class PositionEstimator(ABC):
    """Asynchronous position-estimation service."""

    @abstractmethod
    async def estimate_position(
        self,
        frames: list[CapturedFrame],
        location_id: str,
        hint: GeoHint,
        options: EstimationOptions,
    ) -> EstimationResult:
        """Estimate a position from a batch of frames.

        Args:
            frames: Captured frames, consumed once.
            location_id: Location identifier.
            hint: Coarse geographic hint.
            options: Mock flag or environment selector.

        Returns:
            A success- or failure-tagged result. Infrastructure problems
            are raised instead.
        """
        ...


class GeolocationProvider(ABC):
    """One-shot device geolocation lookup."""

    @abstractmethod
    async def locate(self) -> GeoHint:
        """Look up the current position.

        Raises:
            GeolocationError: When the lookup is denied or fails.
        """
        ...
