"""Mock position estimator."""

from __future__ import annotations

import asyncio
import hashlib

from hyperlocal_demo.core.interfaces import PositionEstimator
from hyperlocal_demo.schemas import (
    CapturedFrame,
    EstimationOptions,
    EstimationResult,
    GeoHint,
)


class MockPositionEstimator(PositionEstimator):
    """Returns a deterministic position derived from the hint and frames.

    An empty batch yields a failure result, mirroring how the real
    service reports business-level failures.
    """

    def __init__(self, latency: float = 0.0) -> None:
        self._latency = latency
        self.call_count = 0

    async def estimate_position(
        self,
        frames: list[CapturedFrame],
        location_id: str,
        hint: GeoHint,
        options: EstimationOptions,
    ) -> EstimationResult:
        self.call_count += 1
        if self._latency:
            await asyncio.sleep(self._latency)

        if not frames:
            return EstimationResult.failure(
                reason="no_frames",
                message="No frames supplied",
                locationId=location_id,
            )

        digest = hashlib.sha256()
        for frame in frames:
            digest.update(frame.image_data)
        # Small, stable offset (< ~10 m) so repeated runs agree
        jitter = int.from_bytes(digest.digest()[:2], "big") / 65535 - 0.5
        return EstimationResult.success(
            locationId=location_id,
            position={
                "latitude": round(hint.latitude + jitter * 1e-4, 7),
                "longitude": round(hint.longitude - jitter * 1e-4, 7),
                "floor": 0,
            },
            confidence=0.9,
            frameCount=len(frames),
            options=options.to_dict(),
        )
