"""Workflow controller, transitions and collaborator interfaces."""

from hyperlocal_demo.core.controller import (
    CaptureProgress,
    WorkflowController,
    build_request,
)
from hyperlocal_demo.core.interfaces import (
    CameraStream,
    CaptureOptions,
    FrameCaptureService,
    GeolocationProvider,
    KeyValueStorage,
    PositionEstimator,
)
from hyperlocal_demo.core.transitions import reduce

__all__ = [
    "CameraStream",
    "CaptureOptions",
    "CaptureProgress",
    "FrameCaptureService",
    "GeolocationProvider",
    "KeyValueStorage",
    "PositionEstimator",
    "WorkflowController",
    "build_request",
    "reduce",
]
