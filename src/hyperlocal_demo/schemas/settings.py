"""Persisted user settings and the estimation environment selector."""

from __future__ import annotations

from enum import IntEnum

from pydantic import BaseModel, Field

from hyperlocal_demo.utils.config import MOCK_LATITUDE, MOCK_LONGITUDE


class Environment(IntEnum):
    """Estimation service environment, exposed as a labeled selector."""

    UNSPECIFIED = 0
    DEV_PREVIEW = 1
    DEV_PUBLIC = 2
    PROD_PREVIEW = 3
    PROD_PUBLIC = 4

    @property
    def label(self) -> str:
        """Human-readable label shown in selectors."""
        return _ENVIRONMENT_LABELS[self]

    @classmethod
    def parse(cls, value: str | int) -> Environment:
        """Resolve an environment from its label or integer value.

        Args:
            value: Label (case-insensitive, e.g. "ProdPublic") or integer.

        Returns:
            The matching Environment.

        Raises:
            ValueError: If nothing matches.
        """
        if isinstance(value, int) and not isinstance(value, bool):
            return cls(value)
        text = str(value).strip()
        if text.lstrip("-").isdigit():
            return cls(int(text))
        for env in cls:
            if text.lower() in (env.label.lower(), env.name.lower()):
                return env
        choices = ", ".join(env.label for env in cls)
        raise ValueError(f"Unknown environment '{value}' (expected one of: {choices})")


_ENVIRONMENT_LABELS = {
    Environment.UNSPECIFIED: "Unspecified",
    Environment.DEV_PREVIEW: "DevPreview",
    Environment.DEV_PUBLIC: "DevPublic",
    Environment.PROD_PREVIEW: "ProdPreview",
    Environment.PROD_PUBLIC: "ProdPublic",
}


class Config(BaseModel):
    """User-editable settings, persisted as camelCase JSON.

    Coordinates are kept as the raw text the user typed; they are only
    converted to numbers when an estimation request is built.
    """

    mock_enabled: bool = Field(
        default=True,
        alias="mockEnabled",
        description="Use the mock estimation path with a placeholder location",
    )
    location_id: str = Field(
        default="",
        alias="locationId",
        description="Location identifier sent to the estimation service",
    )
    environment: Environment = Field(
        default=Environment.PROD_PUBLIC,
        description="Estimation service environment",
    )
    latitude: str = Field(
        default=str(MOCK_LATITUDE),
        description="Latitude hint as entered",
    )
    longitude: str = Field(
        default=str(MOCK_LONGITUDE),
        description="Longitude hint as entered",
    )
    gps_auto: bool = Field(
        default=False,
        alias="gpsAuto",
        description="Fill coordinates from a geolocation lookup",
    )

    model_config = {"frozen": True, "populate_by_name": True}

    def to_storage_dict(self) -> dict:
        """Convert to the JSON-serializable layout used in storage."""
        return self.model_dump(mode="json", by_alias=True)
