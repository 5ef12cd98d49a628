"""Workflow events and the pure transition function.

``reduce(state, event)`` is the only place phase transitions happen. It
never performs side effects, so every transition can be tested without a
camera, an estimator or an event loop.

Transition table::

    AttemptStarted      idle/done/error   -> capturing | estimating
    FramesCaptured      capturing         -> estimating
    EstimationResolved  estimating        -> done (success) | error (failure)
    AttemptFailed       capturing/estimating -> error
    Reset               any               -> idle
    ModeSelected        idle/done/error   -> (same phase, new mode)

Events tagged with an attempt other than the current one are stale and
leave the state unchanged. Reset advances the tag, which orphans every
in-flight completion.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Union

from hyperlocal_demo.schemas import (
    BUSY_PHASES,
    EstimationResult,
    InputMode,
    Phase,
    WorkflowState,
)


# =============================================================================
# Events
# =============================================================================

@dataclass(frozen=True)
class AttemptStarted:
    """A new attempt begins in ``phase`` (capturing or estimating)."""

    attempt: int
    phase: Phase


@dataclass(frozen=True)
class FramesCaptured:
    """The capture service reached its frame threshold."""

    attempt: int


@dataclass(frozen=True)
class EstimationResolved:
    """The estimation service returned a tagged result."""

    attempt: int
    result: EstimationResult


@dataclass(frozen=True)
class AttemptFailed:
    """Capture, materialization or estimation raised."""

    attempt: int
    error: Any


@dataclass(frozen=True)
class Reset:
    pass


@dataclass(frozen=True)
class ModeSelected:
    mode: InputMode


WorkflowEvent = Union[
    AttemptStarted,
    FramesCaptured,
    EstimationResolved,
    AttemptFailed,
    Reset,
    ModeSelected,
]


# =============================================================================
# Reducer
# =============================================================================

def _is_stale(state: WorkflowState, attempt: int) -> bool:
    return attempt != state.attempt


def reduce(state: WorkflowState, event: WorkflowEvent) -> WorkflowState:
    """Apply an event to a state.

    Args:
        state: Current workflow state.
        event: Event to apply.

    Returns:
        The next state. The same object is returned when the event does
        not apply (stale tag, wrong phase).
    """
    replace = dataclasses.replace

    if isinstance(event, Reset):
        return WorkflowState(mode=state.mode, attempt=state.attempt + 1)

    if isinstance(event, ModeSelected):
        if state.is_busy or event.mode == state.mode:
            return state
        return replace(state, mode=event.mode)

    if isinstance(event, AttemptStarted):
        if state.is_busy or event.phase not in BUSY_PHASES:
            return state
        return WorkflowState(phase=event.phase, mode=state.mode, attempt=event.attempt)

    if not isinstance(event, (FramesCaptured, EstimationResolved, AttemptFailed)):
        raise TypeError(f"Unknown workflow event: {event!r}")

    if _is_stale(state, event.attempt):
        return state

    if isinstance(event, FramesCaptured):
        if state.phase != Phase.CAPTURING:
            return state
        return replace(state, phase=Phase.ESTIMATING)

    if isinstance(event, EstimationResolved):
        if state.phase != Phase.ESTIMATING:
            return state
        phase = Phase.DONE if event.result.is_success else Phase.ERROR
        return replace(state, phase=phase, result=event.result, error=None)

    # AttemptFailed
    if not state.is_busy:
        return state
    return replace(state, phase=Phase.ERROR, result=None, error=event.error)
