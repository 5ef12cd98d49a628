"""Workflow phase, input mode, and the explicit workflow state object."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from hyperlocal_demo.schemas.estimation import EstimationResult


class Phase(str, Enum):
    """Workflow phases. Exactly one is active at a time."""

    IDLE = "idle"
    CAPTURING = "capturing"
    ESTIMATING = "estimating"
    DONE = "done"
    ERROR = "error"


class InputMode(str, Enum):
    """Where the frames for an attempt come from."""

    CAMERA = "camera"    # Live capture through the frame-capture service
    PAYLOAD = "payload"  # Pasted JSON payload with encoded/remote images


BUSY_PHASES = frozenset({Phase.CAPTURING, Phase.ESTIMATING})


@dataclass(frozen=True)
class WorkflowState:
    """Snapshot of the workflow.

    ``result`` and ``error`` are mutually exclusive. ``attempt`` tags the
    current attempt so completions from an older one can be recognized
    and dropped.
    """

    phase: Phase = Phase.IDLE
    mode: InputMode = InputMode.CAMERA
    result: EstimationResult | None = None
    error: Any = None
    attempt: int = 0

    @property
    def is_busy(self) -> bool:
        return self.phase in BUSY_PHASES

    @property
    def is_consistent(self) -> bool:
        """Whether phase agrees with the result/error slots."""
        if self.phase in (Phase.IDLE, Phase.CAPTURING, Phase.ESTIMATING):
            return self.result is None and self.error is None
        if self.phase == Phase.DONE:
            return self.result is not None and self.result.is_success and self.error is None
        failed_result = self.result is not None and not self.result.is_success
        return failed_result != (self.error is not None)
