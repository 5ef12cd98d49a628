"""Stub collaborator implementations for demos and tests."""

from hyperlocal_demo.modules.stubs.capture import StubFrameCapture
from hyperlocal_demo.modules.stubs.devices import StaticCameraStream, StubGeolocationProvider
from hyperlocal_demo.modules.stubs.estimator import MockPositionEstimator

__all__ = [
    "MockPositionEstimator",
    "StaticCameraStream",
    "StubFrameCapture",
    "StubGeolocationProvider",
]
