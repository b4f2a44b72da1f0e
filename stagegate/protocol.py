"""Suspend/resume gating.

Every check here runs before any step logic and never touches the store, so a
rejected resume leaves the run record exactly as it was.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel

from .contracts import RunStatus, SuspendEnvelope
from .errors import IncompleteResume, InvalidTransition, SchemaValidationError, StepMismatch
from .persistence.models import RunRecord
from .schema import Shape, validate_shape, wire_names
from .workflow import StepSpec, WorkflowDefinition

logger = logging.getLogger(__name__)


def ensure_resumable(record: RunRecord, step_id: str) -> None:
    """Check that ``record`` is suspended at ``step_id``."""
    if record.status.is_terminal:
        raise InvalidTransition(
            f"Run {record.run_id} is {record.status.value}; it cannot be resumed",
            step_id=step_id,
        )
    if record.status != RunStatus.SUSPENDED:
        raise InvalidTransition(
            f"Run {record.run_id} is {record.status.value}, not suspended",
            step_id=step_id,
        )
    if record.current_step_id != step_id:
        raise StepMismatch(
            f"Run {record.run_id} is suspended at {record.current_step_id!r}, not {step_id!r}",
            step_id=step_id,
            current_step_id=record.current_step_id,
        )


def _aliases(shape: Optional[Shape]) -> Dict[str, set[str]]:
    groups: Dict[str, set[str]] = {}
    if shape is None:
        return groups
    for name, field in shape.model_fields.items():
        names = {name, field.alias or name}
        for key in names:
            groups[key] = names
    return groups


def missing_inputs(
    envelope: SuspendEnvelope, resume_data: Mapping[str, Any], resume_shape: Optional[Shape] = None
) -> List[str]:
    """Names from the envelope's required inputs absent from ``resume_data``.

    A field counts as present under either its name or its alias, and only
    when its value is not ``None``.
    """
    groups = _aliases(resume_shape)
    missing = []
    for required in envelope.required_inputs:
        candidates = groups.get(required, {required})
        if all(resume_data.get(name) is None for name in candidates):
            missing.append(required)
    return missing


def check_resume(
    workflow: WorkflowDefinition, record: RunRecord, step_id: str, resume_data: Any
) -> Dict[str, Any]:
    """Vet a resume request and return the validated payload.

    Raises:
        InvalidTransition: The run is not suspended.
        StepMismatch: ``step_id`` is not the current suspension point.
        IncompleteResume: Required inputs are missing.
        SchemaValidationError: The payload fails the step's resume shape.
    """
    ensure_resumable(record, step_id)
    spec = workflow.steps[record.current_step_index]
    if spec.id != step_id:
        raise StepMismatch(
            f"Workflow {workflow.id!r} has {spec.id!r} at index "
            f"{record.current_step_index}, not {step_id!r}",
            step_id=step_id,
        )

    if isinstance(resume_data, BaseModel):
        resume_data = resume_data.model_dump(mode="json", by_alias=True)
    if resume_data is None:
        resume_data = {}
    if not isinstance(resume_data, Mapping):
        raise SchemaValidationError(
            f"Resume payload for {step_id!r} must be an object, got {type(resume_data).__name__}",
            step_id=step_id,
        )

    missing = missing_inputs(record.suspend_envelope, resume_data, spec.resume_shape)
    if missing:
        logger.warning(f"Rejected resume of run {record.run_id}: missing {missing}")
        raise IncompleteResume(
            f"Resume payload for {step_id!r} is missing required inputs: {', '.join(missing)}",
            missing=missing,
            step_id=step_id,
        )

    try:
        return validate_shape(spec.resume_shape, dict(resume_data), label=f"Resume payload for {step_id!r}")
    except SchemaValidationError as exc:
        exc.step_id = step_id
        raise


def accept_envelope(spec: StepSpec, envelope: Any) -> SuspendEnvelope:
    """Validate an envelope emitted by ``spec`` and normalize it.

    The envelope must conform to the step's suspend shape, and every required
    input it names must be a field of the step's resume shape, so clients can
    always build a valid payload from the envelope alone.
    """
    if spec.suspend_shape is None:
        raise SchemaValidationError(
            f"Step {spec.id!r} suspended but declares no suspend_shape", step_id=spec.id
        )
    label = f"Suspend envelope of {spec.id!r}"
    data = validate_shape(spec.suspend_shape, envelope, label=label)
    normalized = SuspendEnvelope.model_validate(validate_shape(SuspendEnvelope, data, label=label))

    known = wire_names(spec.resume_shape)
    unknown = [name for name in normalized.required_inputs if name not in known]
    if unknown:
        raise SchemaValidationError(
            f"Suspend envelope of {spec.id!r} requires inputs {unknown} "
            f"that {spec.resume_shape.__name__} does not define",
            step_id=spec.id,
        )
    return normalized
