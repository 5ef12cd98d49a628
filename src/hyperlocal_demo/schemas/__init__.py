"""Data contracts for the hyperlocal demo client."""

from hyperlocal_demo.schemas.estimation import (
    EstimationOptions,
    EstimationRequest,
    EstimationResult,
    GeoHint,
)
from hyperlocal_demo.schemas.frames import CapturedFrame
from hyperlocal_demo.schemas.payload import ParsedPayload
from hyperlocal_demo.schemas.results import TransitionRecord
from hyperlocal_demo.schemas.settings import Config, Environment
from hyperlocal_demo.schemas.workflow import (
    BUSY_PHASES,
    InputMode,
    Phase,
    WorkflowState,
)

__all__ = [
    "BUSY_PHASES",
    "CapturedFrame",
    "Config",
    "Environment",
    "EstimationOptions",
    "EstimationRequest",
    "EstimationResult",
    "GeoHint",
    "InputMode",
    "ParsedPayload",
    "Phase",
    "TransitionRecord",
    "WorkflowState",
]
