"""Tests for resume gating and envelope acceptance."""

from typing import Optional

import pytest
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from stagegate import (
    IncompleteResume,
    InvalidTransition,
    RequiredAction,
    ResumeConditions,
    RunStatus,
    SchemaValidationError,
    StepMismatch,
    SuspendEnvelope,
    WorkflowDefinition,
)
from stagegate.contracts import ErrorRecord, SuspendContext
from stagegate.persistence import RunRecord
from stagegate.protocol import accept_envelope, check_resume, ensure_resumable, missing_inputs
from stagegate.workflow import StepSpec


class Text(BaseModel):
    text: str


class Review(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    review_status: str
    score: Optional[int] = Field(default=None, ge=0, le=10)


class ContextSuspend(SuspendEnvelope):
    context: SuspendContext


def _envelope(*required):
    return SuspendEnvelope(
        reason="awaiting_approval",
        description="Review it",
        required_action=RequiredAction(action_type="review", instructions="Review"),
        resume_conditions=ResumeConditions(required_inputs=list(required)),
    )


def _gate(step_id="gate", suspend_shape=SuspendEnvelope):
    return StepSpec(
        id=step_id,
        input_shape=Text,
        output_shape=Text,
        resume_shape=Review,
        suspend_shape=suspend_shape,
        run=lambda ctx: ctx.input,
    )


@pytest.fixture
def workflow():
    plain = StepSpec(id="prepare", input_shape=Text, output_shape=Text, run=lambda ctx: ctx.input)
    return WorkflowDefinition(id="wf", steps=[plain, _gate()])


def _suspended(**overrides):
    fields = dict(
        run_id="r1",
        workflow_id="wf",
        status=RunStatus.SUSPENDED,
        current_step_index=1,
        current_step_id="gate",
        last_output={"text": "draft"},
        suspend_envelope=_envelope("reviewStatus"),
    )
    fields.update(overrides)
    return RunRecord(**fields)


def test_missing_inputs_accepts_name_or_alias():
    envelope = _envelope("reviewStatus")
    assert missing_inputs(envelope, {"reviewStatus": "ok"}, Review) == []
    assert missing_inputs(envelope, {"review_status": "ok"}, Review) == []
    assert missing_inputs(envelope, {"reviewStatus": None}, Review) == ["reviewStatus"]
    assert missing_inputs(envelope, {}, Review) == ["reviewStatus"]


def test_ensure_resumable_rejects_terminal_and_running():
    with pytest.raises(InvalidTransition):
        ensure_resumable(
            _suspended(status=RunStatus.COMPLETED, suspend_envelope=None, final_result={"text": "x"}),
            "gate",
        )
    with pytest.raises(InvalidTransition):
        ensure_resumable(
            _suspended(
                status=RunStatus.FAILED,
                suspend_envelope=None,
                error=ErrorRecord(kind="StepError", message="boom"),
            ),
            "gate",
        )
    with pytest.raises(InvalidTransition, match="not suspended"):
        ensure_resumable(_suspended(status=RunStatus.RUNNING, suspend_envelope=None), "gate")


def test_check_resume_rejects_other_step(workflow):
    with pytest.raises(StepMismatch) as excinfo:
        check_resume(workflow, _suspended(), "prepare", {"reviewStatus": "ok"})
    assert excinfo.value.details["current_step_id"] == "gate"


def test_check_resume_requires_declared_inputs(workflow):
    with pytest.raises(IncompleteResume) as excinfo:
        check_resume(workflow, _suspended(), "gate", {"score": 3})
    assert excinfo.value.missing == ["reviewStatus"]


def test_incomplete_is_reported_before_schema_errors(workflow):
    with pytest.raises(IncompleteResume):
        check_resume(workflow, _suspended(), "gate", {"score": 99})


def test_check_resume_validates_schema(workflow):
    with pytest.raises(SchemaValidationError) as excinfo:
        check_resume(workflow, _suspended(), "gate", {"reviewStatus": "ok", "score": 99})
    assert excinfo.value.step_id == "gate"

    with pytest.raises(SchemaValidationError):
        check_resume(workflow, _suspended(), "gate", ["reviewStatus"])


def test_check_resume_returns_normalized_payload(workflow):
    payload = check_resume(workflow, _suspended(), "gate", Review(review_status="ok", score=7))
    assert payload == {"reviewStatus": "ok", "score": 7}


def test_check_resume_treats_none_as_empty(workflow):
    record = _suspended(suspend_envelope=_envelope())
    with pytest.raises(SchemaValidationError):
        check_resume(workflow, record, "gate", None)


def test_accept_envelope_normalizes_subclass():
    spec = _gate(suspend_shape=ContextSuspend)
    emitted = ContextSuspend(
        **_envelope("reviewStatus").model_dump(exclude={"context"}),
        context=SuspendContext(entity_type="draft", entity_id="d1", workflow_stage="gate"),
    )

    accepted = accept_envelope(spec, emitted)
    assert type(accepted) is SuspendEnvelope
    assert accepted.context.entity_id == "d1"
    assert accepted.required_inputs == ["reviewStatus"]


def test_accept_envelope_enforces_suspend_shape():
    spec = _gate(suspend_shape=ContextSuspend)
    with pytest.raises(SchemaValidationError):
        accept_envelope(spec, _envelope("reviewStatus"))


def test_accept_envelope_rejects_unknown_required_inputs():
    with pytest.raises(SchemaValidationError, match="does not define"):
        accept_envelope(_gate(), _envelope("reviewStatus", "signature"))


def test_accept_envelope_requires_suspend_shape():
    plain = StepSpec(id="plain", input_shape=Text, output_shape=Text, run=lambda ctx: ctx.input)
    with pytest.raises(SchemaValidationError, match="declares no suspend_shape"):
        accept_envelope(plain, _envelope())
