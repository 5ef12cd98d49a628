"""Frame materialization for payload mode.

Turns image references into CapturedFrame records:
- ``data:`` URIs are decoded locally
- ``http://``/``https://`` URLs are fetched with httpx

All references are processed concurrently. The batch is all-or-nothing:
the call returns only after every reference has settled, and any failure
is raised instead of returning a partial frame list.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from datetime import datetime
from urllib.parse import unquote_to_bytes

import httpx

from hyperlocal_demo.errors import MaterializationError
from hyperlocal_demo.schemas import CapturedFrame
from hyperlocal_demo.utils.config import DEFAULT_IMAGE_MIME_TYPE, HTTP_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


def decode_data_uri(reference: str) -> tuple[bytes, str]:
    """Decode a ``data:`` URI into (bytes, mime_type).

    Args:
        reference: URI of the form ``data:[<mime>][;base64],<data>``.

    Returns:
        Decoded bytes and the declared MIME type, or
        DEFAULT_IMAGE_MIME_TYPE when none is declared.

    Raises:
        ValueError: If the URI has no comma or the base64 is malformed.
    """
    header, sep, encoded = reference[len("data:"):].partition(",")
    if not sep:
        raise ValueError("data: URI has no ',' separator")
    params = header.split(";")
    mime_type = params[0].strip() or DEFAULT_IMAGE_MIME_TYPE
    if "base64" in (p.strip().lower() for p in params[1:]):
        return base64.b64decode(encoded, validate=True), mime_type
    return unquote_to_bytes(encoded), mime_type


class FrameMaterializer:
    """Converts image references into timestamped frames.

    An httpx.AsyncClient may be injected (tests pass one with a
    MockTransport). Otherwise a client is opened per batch, and only when
    the batch contains a remote reference.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the materializer.

        Args:
            client: Optional shared HTTP client. The caller owns its lifecycle.
            timeout: Request timeout in seconds for an owned client.
        """
        self._client = client
        self._timeout = timeout

    async def materialize(self, images: list[str]) -> list[CapturedFrame]:
        """Materialize every reference, in input order.

        Args:
            images: Validated image references.

        Returns:
            One CapturedFrame per reference, same order as ``images``.

        Raises:
            MaterializationError: A remote reference returned a non-2xx status.
            ValueError: A data: URI could not be decoded.
            httpx.HTTPError: A transport-level failure.
        """
        needs_network = any(not ref.startswith("data:") for ref in images)
        if self._client is not None or not needs_network:
            return await self._gather(images, self._client)

        async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
            return await self._gather(images, client)

    async def _gather(
        self,
        images: list[str],
        client: httpx.AsyncClient | None,
    ) -> list[CapturedFrame]:
        outcomes = await asyncio.gather(
            *(self._materialize_one(ref, client) for ref in images),
            return_exceptions=True,
        )
        for ref, outcome in zip(images, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"[FRAMES] Batch of {len(images)} aborted on {ref[:60]}: {outcome}")
                raise outcome
        logger.info(f"[FRAMES] Materialized {len(outcomes)} frames")
        return list(outcomes)

    async def _materialize_one(
        self,
        reference: str,
        client: httpx.AsyncClient | None,
    ) -> CapturedFrame:
        if reference.startswith("data:"):
            image_data, mime_type = decode_data_uri(reference)
        else:
            if client is None:
                raise RuntimeError("Remote image reference requires an HTTP client")
            response = await client.get(reference)
            if not response.is_success:
                raise MaterializationError(response.status_code, reference)
            image_data = response.content
            content_type = response.headers.get("content-type", "")
            mime_type = content_type.split(";")[0].strip() or DEFAULT_IMAGE_MIME_TYPE
            logger.debug(f"[FRAMES] Fetched {reference} ({len(image_data)} bytes)")

        return CapturedFrame(
            timestamp=datetime.now(),
            image_data=image_data,
            mime_type=mime_type,
        )
