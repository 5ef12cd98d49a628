"""Verified test payload contract."""

from __future__ import annotations

from pydantic import BaseModel, Field

from hyperlocal_demo.schemas.settings import Environment


class ParsedPayload(BaseModel):
    """A pasted test payload that passed validation.

    Derived from the raw payload text on every read and never persisted.
    Optional fields stay ``None`` when the payload omits them so callers
    can apply their own defaults.
    """

    mock: bool | None = Field(default=None, description="Use the mock estimation path")
    location_id: str = Field(..., alias="locationId", min_length=1)
    environment: Environment | None = Field(default=None)
    latitude: float = Field(..., alias="lat")
    longitude: float = Field(..., alias="lng")
    images: list[str] = Field(
        ...,
        min_length=1,
        description="Ordered image references (data: URIs or HTTP(S) URLs)",
    )

    model_config = {"frozen": True, "populate_by_name": True}
