"""Error taxonomy for stagegate."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .contracts import ErrorRecord


class StagegateError(Exception):
    """Base class for all engine errors.

    ``kind`` is the stable name clients match on; it survives persistence in
    :class:`~stagegate.contracts.ErrorRecord`.
    """

    kind = "StagegateError"

    def __init__(self, message: str, *, step_id: Optional[str] = None, **details: Any):
        super().__init__(message)
        self.message = message
        self.step_id = step_id
        self.details: Dict[str, Any] = details

    def to_record(self, step_id: Optional[str] = None) -> ErrorRecord:
        return ErrorRecord(
            kind=self.kind,
            message=self.message,
            step_id=step_id or self.step_id,
            details=dict(self.details),
        )


class WorkflowDefinitionError(StagegateError):
    """A workflow definition is malformed."""

    kind = "WorkflowDefinitionError"


class UnknownWorkflow(StagegateError):
    kind = "UnknownWorkflow"


class NotFound(StagegateError):
    kind = "NotFound"


class SchemaValidationError(StagegateError):
    """Data did not conform to a declared shape."""

    kind = "SchemaValidationError"

    def __init__(
        self,
        message: str,
        *,
        errors: Optional[List[Dict[str, Any]]] = None,
        step_id: Optional[str] = None,
    ):
        super().__init__(message, step_id=step_id, errors=errors or [])
        self.errors = errors or []


class StepMismatch(StagegateError):
    """A resume targeted a step other than the current suspension point."""

    kind = "StepMismatch"


class IncompleteResume(StagegateError):
    """A resume payload is missing fields the envelope declared as required."""

    kind = "IncompleteResume"

    def __init__(self, message: str, *, missing: List[str], step_id: Optional[str] = None):
        super().__init__(message, step_id=step_id, missing=missing)
        self.missing = missing


class InvalidTransition(StagegateError):
    """The operation is illegal for the run's current status."""

    kind = "InvalidTransition"


class AgentFailure(StagegateError):
    """The generation agent failed, timed out or returned garbage."""

    kind = "AgentFailure"


class PollTimeout(StagegateError):
    """Client-side polling gave up; the run itself has not failed."""

    kind = "PollTimeout"


__all__ = [
    "StagegateError",
    "WorkflowDefinitionError",
    "UnknownWorkflow",
    "NotFound",
    "SchemaValidationError",
    "StepMismatch",
    "IncompleteResume",
    "InvalidTransition",
    "AgentFailure",
    "PollTimeout",
]
