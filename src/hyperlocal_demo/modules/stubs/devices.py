"""Stub camera stream and geolocation provider."""

from __future__ import annotations

from typing import Any

from hyperlocal_demo.core.interfaces import CameraStream, GeolocationProvider
from hyperlocal_demo.errors import GeolocationError
from hyperlocal_demo.schemas import GeoHint


class StaticCameraStream(CameraStream):
    """Camera stream with a fixed video source (None means detached)."""

    def __init__(self, video_source: Any | None = "stub-camera") -> None:
        self._video_source = video_source

    @property
    def video_source(self) -> Any | None:
        return self._video_source

    def detach(self) -> None:
        self._video_source = None


class StubGeolocationProvider(GeolocationProvider):
    """Geolocation that returns a fixed position, or denies when it has none."""

    def __init__(self, position: GeoHint | None = None) -> None:
        self._position = position
        self.lookup_count = 0

    async def locate(self) -> GeoHint:
        self.lookup_count += 1
        if self._position is None:
            raise GeolocationError("Geolocation permission denied")
        return self._position
