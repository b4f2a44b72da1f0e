"""Core contracts for the stagegate run engine.

Steps communicate with the engine through three outcome types
(:class:`Continue`, :class:`Suspend`, :class:`Fail`). A suspending step emits a
:class:`SuspendEnvelope`, which is self-describing: it lists the fields a
caller must supply in the eventual resume payload.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunStatus(str, Enum):
    """Lifecycle status of a run."""

    RUNNING = "running"
    SUSPENDED = "suspended"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)


class ErrorRecord(BaseModel):
    """Structured error stored on a failed run."""

    kind: str
    message: str
    step_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


# ----------------------------------------------------------------------
# Suspend envelope


class EnvelopeModel(BaseModel):
    """Envelope parts serialize as camelCase for clients."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


SuspendReason = Literal[
    "awaiting_human_input",
    "awaiting_approval",
    "missing_information",
    "conflicting_instructions",
    "quality_check_required",
    "external_dependency",
    "manual_intervention_required",
    "other",
]

ActionType = Literal[
    "provide_input",
    "approve",
    "edit",
    "clarify",
    "resolve_conflict",
    "supply_data",
    "review",
    "other",
]

Priority = Literal["low", "medium", "high", "critical"]


class RequiredAction(EnvelopeModel):
    action_type: ActionType
    instructions: str
    required_fields: List[str] = Field(default_factory=list)


class StateSnapshot(EnvelopeModel):
    last_completed_step: str = ""
    pending_steps: List[str] = Field(default_factory=list)
    partial_output: Any = None


class ResumeConditions(EnvelopeModel):
    required_inputs: List[str] = Field(default_factory=list)
    approval_required_from: List[str] = Field(default_factory=list)
    auto_resume_allowed: bool = False


class SuspendContext(EnvelopeModel):
    entity_type: str
    entity_id: str
    workflow_stage: str
    version: Optional[str] = None


class SuspendMetadata(EnvelopeModel):
    suspended_at: Optional[datetime] = None
    expected_resume_by: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    notes: Optional[str] = None


class SuspendEnvelope(EnvelopeModel):
    """Payload a step emits when it cannot proceed without external input.

    Steps may declare a subclass as their ``suspend_shape`` to narrow the
    fields. Extra fields are kept so subclass data survives persistence.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    reason: SuspendReason
    description: str
    required_action: RequiredAction
    state_snapshot: StateSnapshot = Field(default_factory=StateSnapshot)
    resume_conditions: ResumeConditions = Field(default_factory=ResumeConditions)
    priority: Priority = "medium"
    context: Optional[SuspendContext] = None
    metadata: Optional[SuspendMetadata] = None

    @property
    def required_inputs(self) -> List[str]:
        """Field names a resume payload must carry."""
        names = list(self.resume_conditions.required_inputs)
        for name in self.required_action.required_fields:
            if name not in names:
                names.append(name)
        return names


# ----------------------------------------------------------------------
# Step outcomes


@dataclass(frozen=True)
class Continue:
    """The step finished and produced ``output``."""

    output: Any
    kind: str = "continue"


@dataclass(frozen=True)
class Suspend:
    """The step needs external input before it can finish."""

    envelope: Union[SuspendEnvelope, Dict[str, Any]]
    kind: str = "suspend"


@dataclass(frozen=True)
class Fail:
    """The step failed; the run becomes permanently ``failed``."""

    error: ErrorRecord
    kind: str = "fail"

    @classmethod
    def because(
        cls, message: str, *, kind: str = "StepFailure", step_id: Optional[str] = None, **details: Any
    ) -> "Fail":
        return cls(
            ErrorRecord(kind=kind, message=message, step_id=step_id, details=details)
        )


Outcome = Union[Continue, Suspend, Fail]


# ----------------------------------------------------------------------
# Boundary results


class RunResult(BaseModel):
    """What ``start``, ``resume`` and ``status`` hand back to callers."""

    run_id: str
    workflow_id: str
    status: RunStatus
    current_step_id: Optional[str] = None
    suspend_envelope: Optional[Dict[str, Any]] = None
    partial_output: Optional[Any] = None
    final_result: Optional[Any] = None
    error: Optional[ErrorRecord] = None
