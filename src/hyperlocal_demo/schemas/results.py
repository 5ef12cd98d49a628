"""Run log data contracts."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from hyperlocal_demo.errors import describe_error
from hyperlocal_demo.schemas.workflow import InputMode, Phase, WorkflowState
from hyperlocal_demo.utils.config import LOG_VERSION


class TransitionRecord(BaseModel):
    """One workflow state change, as written to the JSONL run log."""

    log_version: str = Field(default=LOG_VERSION, description="Log format version")
    run_id: str = Field(..., description="Identifier of the CLI run")
    timestamp: datetime = Field(default_factory=datetime.now)
    event: str = Field(..., description="Name of the event that caused the change")
    attempt: int = Field(default=0, description="Attempt tag after the change")
    mode: InputMode
    from_phase: Phase
    to_phase: Phase
    result_type: str | None = Field(
        default=None,
        description="success/failure tag of the held result, if any",
    )
    error: str | None = Field(default=None, description="Rendered error detail, if any")
    extras: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_transition(
        cls,
        run_id: str,
        event_name: str,
        before: WorkflowState,
        after: WorkflowState,
    ) -> TransitionRecord:
        return cls(
            run_id=run_id,
            event=event_name,
            attempt=after.attempt,
            mode=after.mode,
            from_phase=before.phase,
            to_phase=after.phase,
            result_type=after.result.type if after.result is not None else None,
            error=describe_error(after.error) if after.error is not None else None,
        )

    def to_log_dict(self) -> dict[str, Any]:
        """Convert to a dictionary suitable for JSONL logging.

        Ensures consistent field ordering and ISO timestamp format.
        """
        return {
            "log_version": self.log_version,
            "run_id": self.run_id,
            "timestamp": self.timestamp.isoformat(),
            "event": self.event,
            "attempt": self.attempt,
            "mode": self.mode.value,
            "from_phase": self.from_phase.value,
            "to_phase": self.to_phase.value,
            "result_type": self.result_type,
            "error": self.error,
            "extras": self.extras,
        }
