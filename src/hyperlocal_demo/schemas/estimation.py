"""Estimation request and result data contracts.

These mirror the contract of the external position-estimation service:
``estimate_position(frames, location_id, hint, options) -> EstimationResult``.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from hyperlocal_demo.schemas.settings import Environment


class GeoHint(BaseModel):
    """Coarse geographic hint used to narrow matching."""

    latitude: float
    longitude: float

    model_config = {"frozen": True}


class EstimationOptions(BaseModel):
    """Either ``{mock: true}`` or ``{environment: <Environment>}``."""

    mock: bool = False
    environment: Environment | None = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _exactly_one(self) -> EstimationOptions:
        if self.mock and self.environment is not None:
            raise ValueError("mock options must not carry an environment")
        if not self.mock and self.environment is None:
            raise ValueError("non-mock options require an environment")
        return self

    @classmethod
    def mock_mode(cls) -> EstimationOptions:
        return cls(mock=True)

    @classmethod
    def for_environment(cls, environment: Environment) -> EstimationOptions:
        return cls(environment=environment)

    def to_dict(self) -> dict[str, Any]:
        """Wire form passed to the estimation service."""
        if self.mock:
            return {"mock": True}
        return {"environment": int(self.environment)}


class EstimationRequest(BaseModel):
    """Parameters of a single estimation call, minus the frames."""

    location_id: str
    hint: GeoHint
    options: EstimationOptions

    model_config = {"frozen": True}


class EstimationResult(BaseModel):
    """Tagged success/failure outcome of an estimation call.

    Everything beyond ``type`` is owned by the estimation service and kept
    opaque in ``data``.
    """

    type: Literal["success", "failure"]
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @property
    def is_success(self) -> bool:
        return self.type == "success"

    @classmethod
    def success(cls, **data: Any) -> EstimationResult:
        return cls(type="success", data=data)

    @classmethod
    def failure(cls, **data: Any) -> EstimationResult:
        return cls(type="failure", data=data)
