"""Stub frame-capture service that synthesizes frames."""

from __future__ import annotations

import asyncio
import base64
import io
import logging
import random
from datetime import datetime
from typing import Any

from PIL import Image, ImageDraw

from hyperlocal_demo.core.interfaces import CaptureOptions, FrameCaptureService
from hyperlocal_demo.schemas import CapturedFrame

logger = logging.getLogger(__name__)


class StubFrameCapture(FrameCaptureService):
    """Synthetic capture service producing small deterministic JPEG frames.

    Frames are generated on the running event loop, one every
    ``frame_interval`` seconds. Once the threshold is reached the
    completion handler is awaited with the batch. ``reset`` abandons a
    running session; its handler is never called.
    """

    def __init__(
        self,
        frame_interval: float = 0.0,
        image_size: tuple[int, int] = (64, 48),
        seed: int = 42,
    ) -> None:
        """Initialize the stub capture service.

        Args:
            frame_interval: Seconds between synthesized frames.
            image_size: Width and height of each frame.
            seed: Random seed for deterministic frame colors.
        """
        self._frame_interval = frame_interval
        self._image_size = image_size
        self._seed = seed
        self._session = 0
        self._frames: list[CapturedFrame] = []
        self._preview_urls: list[str] = []
        self._task: asyncio.Task | None = None

    @property
    def captured_count(self) -> int:
        return len(self._frames)

    @property
    def preview_urls(self) -> list[str]:
        return list(self._preview_urls)

    @property
    def task(self) -> asyncio.Task | None:
        """The task running the current session, if any."""
        return self._task

    def start_capture(self, video_source: Any, options: CaptureOptions) -> None:
        self.reset()
        self._task = asyncio.get_running_loop().create_task(
            self._run(self._session, video_source, options)
        )

    def reset(self) -> None:
        self._session += 1
        self._frames = []
        self._preview_urls = []

    def _synthesize(self, index: int) -> bytes:
        rng = random.Random(self._seed + index)
        color = tuple(rng.randrange(256) for _ in range(3))
        image = Image.new("RGB", self._image_size, color)
        ImageDraw.Draw(image).text((4, 4), f"#{index + 1}", fill=(255, 255, 255))
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG")
        return buffer.getvalue()

    async def _run(self, session: int, video_source: Any, options: CaptureOptions) -> None:
        logger.debug(f"[CAPTURE] Session {session} started on {video_source!r}")
        for index in range(options.frame_threshold):
            await asyncio.sleep(self._frame_interval)
            if session != self._session:
                logger.debug(f"[CAPTURE] Session {session} abandoned after reset")
                return
            image_data = self._synthesize(index)
            self._frames.append(CapturedFrame(
                timestamp=datetime.now(),
                image_data=image_data,
                mime_type="image/jpeg",
            ))
            if options.show_preview:
                encoded = base64.b64encode(image_data).decode("ascii")
                self._preview_urls.append(f"data:image/jpeg;base64,{encoded}")

        try:
            await options.on_frame_threshold(list(self._frames))
        except Exception as e:
            logger.error(f"[CAPTURE] Threshold handler failed: {e}", exc_info=True)
