"""JSONL run log of workflow state changes."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

from hyperlocal_demo.schemas import TransitionRecord

if TYPE_CHECKING:
    from hyperlocal_demo.core.transitions import WorkflowEvent
    from hyperlocal_demo.schemas import WorkflowState


class LogWriter:
    """Writes transition records to a JSONL log file.

    Creates a consistent log format with one JSON object per line. An
    instance can be subscribed to a WorkflowController directly.
    """

    def __init__(self, log_path: Path, run_id: str = "") -> None:
        """Initialize the log writer.

        Args:
            log_path: Path to the JSONL log file.
            run_id: Identifier stamped on every record.
        """
        self._log_path = log_path
        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        self._run_id = run_id
        self._records_written = 0
        # Open file in append mode
        self._file = open(self._log_path, "a", encoding="utf-8")

    @property
    def records_written(self) -> int:
        return self._records_written

    def write(self, record: TransitionRecord) -> None:
        """Write a transition record to the log."""
        line = json.dumps(record.to_log_dict(), separators=(",", ":"))
        self._file.write(line + "\n")
        self._file.flush()
        self._records_written += 1

    def __call__(
        self,
        event: WorkflowEvent,
        before: WorkflowState,
        after: WorkflowState,
    ) -> None:
        self.write(TransitionRecord.from_transition(
            run_id=self._run_id,
            event_name=type(event).__name__,
            before=before,
            after=after,
        ))

    def close(self) -> None:
        """Close the log file."""
        self._file.close()

    def __enter__(self) -> "LogWriter":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
