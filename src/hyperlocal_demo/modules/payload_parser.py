"""Validation and parsing of pasted test payloads.

A payload is a JSON object such as::

    {
      "locationId": "loc1",
      "lat": -33.86,
      "lng": 151.20,
      "images": ["data:image/jpeg;base64,/9j/4AAQSkZJRg..."],
      "mock": false,
      "environment": 4
    }

Rejection is never raised: ``parse`` returns None and ``explain`` says why.
Both share one checking routine, so they always agree.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any

from hyperlocal_demo.schemas import Environment, ParsedPayload
from hyperlocal_demo.utils.config import (
    MIN_DATA_PAYLOAD_LENGTH,
    MIN_IMAGE_REFERENCE_LENGTH,
)

logger = logging.getLogger(__name__)


def is_image_reference(value: Any) -> bool:
    """Check whether a value is a usable image reference.

    Accepts a ``data:`` URI whose post-comma segment is longer than
    MIN_DATA_PAYLOAD_LENGTH, or an ``http://``/``https://`` URL. Either
    way the string must be at least MIN_IMAGE_REFERENCE_LENGTH long.
    """
    if not isinstance(value, str) or len(value) < MIN_IMAGE_REFERENCE_LENGTH:
        return False
    if value.startswith("data:"):
        _, sep, encoded = value.partition(",")
        return bool(sep) and len(encoded) > MIN_DATA_PAYLOAD_LENGTH
    return value.startswith(("http://", "https://"))


def _is_number(value: Any) -> bool:
    # JSON true/false decode to bool, which is an int subclass
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(float(value))
    except OverflowError:
        return False


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant {name}")


def _check(raw: str) -> tuple[ParsedPayload | None, str | None]:
    """Validate raw text, returning (payload, None) or (None, reason)."""
    try:
        data = json.loads(raw, parse_constant=_reject_constant)
    except (TypeError, ValueError) as e:
        return None, f"Payload is not valid JSON: {e}"

    if not isinstance(data, dict):
        return None, "Payload must be a JSON object"

    location_id = data.get("locationId")
    if not isinstance(location_id, str) or not location_id:
        return None, "Payload needs a non-empty 'locationId' string"

    if not _is_number(data.get("lat")) or not _is_number(data.get("lng")):
        return None, "Payload needs numeric 'lat' and 'lng'"

    images = data.get("images")
    if not isinstance(images, list) or not images:
        return None, "Payload needs a non-empty 'images' list"

    for index, image in enumerate(images):
        if not is_image_reference(image):
            return None, (
                f"images[{index}] is not a data: URI or http(s) URL "
                f"of at least {MIN_IMAGE_REFERENCE_LENGTH} characters"
            )

    mock = data.get("mock")
    if mock is not None and not isinstance(mock, bool):
        return None, "'mock' must be true or false"

    environment = data.get("environment")
    if environment is not None:
        if not isinstance(environment, int) or isinstance(environment, bool) \
                or environment not in set(Environment):
            return None, "'environment' must be one of " + ", ".join(
                f"{int(env)} ({env.label})" for env in Environment
            )
        environment = Environment(environment)

    payload = ParsedPayload(
        mock=mock,
        locationId=location_id,
        environment=environment,
        lat=float(data["lat"]),
        lng=float(data["lng"]),
        images=list(images),
    )
    return payload, None


def parse(raw: str) -> ParsedPayload | None:
    """Parse raw payload text into a verified payload.

    Args:
        raw: Text as pasted by the user; may be anything.

    Returns:
        The ParsedPayload, or None if any check fails. Never a partial
        object.
    """
    payload, reason = _check(raw)
    if reason is not None:
        logger.debug(f"[PAYLOAD] Rejected: {reason}")
    return payload


def explain(raw: str) -> str | None:
    """Return why ``raw`` would be rejected, or None if it is accepted."""
    return _check(raw)[1]
