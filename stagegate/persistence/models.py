"""Data models for persisted run state."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from ..contracts import ErrorRecord, RunResult, RunStatus, SuspendEnvelope, utcnow
from ..errors import InvalidTransition


class HistoryEntry(BaseModel):
    """Audit record of one step invocation. Never rewritten once appended."""

    step_id: str
    step_index: int
    entered_at: datetime
    left_at: datetime
    outcome_kind: str


class RunRecord(BaseModel):
    """Persisted state of one run; the sole source of truth for resuming."""

    run_id: str
    workflow_id: str
    status: RunStatus = RunStatus.RUNNING
    current_step_index: int = 0
    current_step_id: Optional[str] = None
    input: Any = None
    last_output: Any = None
    suspend_envelope: Optional[SuspendEnvelope] = None
    final_result: Any = None
    error: Optional[ErrorRecord] = None
    history: List[HistoryEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def check_invariants(self) -> None:
        """Raise :class:`InvalidTransition` if status and payload disagree."""
        present = {
            "suspend_envelope": self.suspend_envelope is not None,
            "final_result": self.final_result is not None,
            "error": self.error is not None,
        }
        expected = {
            RunStatus.RUNNING: None,
            RunStatus.SUSPENDED: "suspend_envelope",
            RunStatus.COMPLETED: "final_result",
            RunStatus.FAILED: "error",
        }[self.status]
        for name, is_set in present.items():
            if is_set != (name == expected):
                raise InvalidTransition(
                    f"Run {self.run_id} in status {self.status.value!r} "
                    f"{'must not' if is_set else 'must'} carry {name}"
                )
        if self.current_step_index < 0:
            raise InvalidTransition(f"Run {self.run_id} has a negative step index")

    def to_result(self) -> RunResult:
        envelope = (
            self.suspend_envelope.model_dump(mode="json", by_alias=True)
            if self.suspend_envelope is not None
            else None
        )
        return RunResult(
            run_id=self.run_id,
            workflow_id=self.workflow_id,
            status=self.status,
            current_step_id=self.current_step_id,
            suspend_envelope=envelope,
            partial_output=self.last_output,
            final_result=self.final_result,
            error=self.error,
        )
