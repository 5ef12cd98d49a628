"""Captured frame data contract."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from hyperlocal_demo.utils.config import DEFAULT_IMAGE_MIME_TYPE


class CapturedFrame(BaseModel):
    """A single image handed to the estimation service.

    Produced either by the frame-capture service (camera mode) or by the
    frame materializer (payload mode). Immutable once created.
    """

    timestamp: datetime = Field(
        default_factory=datetime.now,
        description="When this frame was captured or materialized",
    )
    image_data: bytes = Field(..., description="Encoded image bytes")
    mime_type: str = Field(
        default=DEFAULT_IMAGE_MIME_TYPE,
        description="MIME type of image_data",
    )

    model_config = {"frozen": True}

    @property
    def size_bytes(self) -> int:
        return len(self.image_data)
