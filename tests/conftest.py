"""Shared fixtures: small workflows and repository backends."""

import asyncio
from typing import Optional

import pytest
from pydantic import BaseModel

import stagegate.persistence as persistence
from stagegate import (
    Continue,
    RequiredAction,
    ResumeConditions,
    SuspendEnvelope,
    WorkflowDefinition,
    step,
)
from stagegate.persistence import InMemoryRunRepository, SQLiteRunRepository


class Numbers(BaseModel):
    x: int


class Doubled(BaseModel):
    x: int
    doubled: int


class Summary(BaseModel):
    total: int


class Draft(BaseModel):
    text: str


class Approval(BaseModel):
    approved: bool
    note: Optional[str] = None


def approval_envelope(step_id: str) -> SuspendEnvelope:
    return SuspendEnvelope(
        reason="awaiting_approval",
        description=f"Approve the draft produced by {step_id}",
        required_action=RequiredAction(
            action_type="approve",
            instructions="Resume with approved: true",
            required_fields=["approved"],
        ),
        resume_conditions=ResumeConditions(required_inputs=["approved"]),
    )


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("STAGEGATE_CONFIG", str(tmp_path / "missing-config.yaml"))
    monkeypatch.delenv("STAGEGATE_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    persistence._repository_instance = None
    yield
    persistence._repository_instance = None


@pytest.fixture(params=["inmemory", "sqlite"])
def repository(request, tmp_path):
    if request.param == "inmemory":
        return InMemoryRunRepository()
    return SQLiteRunRepository(tmp_path / "runs.db")


@pytest.fixture
def calls():
    """Names of steps in the order their logic ran."""
    return []


@pytest.fixture
def arithmetic_workflow(calls):
    @step("double", input_shape=Numbers, output_shape=Doubled)
    def double(ctx):
        calls.append("double")
        return Doubled(x=ctx.input.x, doubled=ctx.input.x * 2)

    @step("sum", input_shape=Doubled, output_shape=Summary)
    async def total(ctx):
        calls.append("sum")
        return Continue({"total": ctx.input.x + ctx.input.doubled})

    return WorkflowDefinition(id="arithmetic", steps=[double, total])


@pytest.fixture
def review_workflow(calls):
    """prepare -> review (gate) -> publish."""

    @step("prepare", input_shape=Numbers, output_shape=Draft)
    def prepare(ctx):
        calls.append("prepare")
        return Draft(text=f"draft {ctx.input.x}")

    @step(
        "review",
        input_shape=Draft,
        output_shape=Draft,
        resume_shape=Approval,
        suspend_shape=SuspendEnvelope,
    )
    def review(ctx):
        calls.append("review")
        if ctx.resume is not None and ctx.resume.approved:
            return Draft(text=ctx.input.text + " (approved)")
        return ctx.suspend(approval_envelope(ctx.step_id))

    @step("publish", input_shape=Draft, output_shape=Draft)
    def publish(ctx):
        calls.append("publish")
        return Draft(text=ctx.input.text.upper())

    return WorkflowDefinition(id="review", steps=[prepare, review, publish])


@pytest.fixture
def single_gate_workflow(calls):
    """One step that suspends until ``approved`` is true."""

    @step(
        "approve",
        input_shape=Draft,
        output_shape=Draft,
        resume_shape=Approval,
        suspend_shape=SuspendEnvelope,
    )
    def approve(ctx):
        calls.append("approve")
        if ctx.resume is not None and ctx.resume.approved is True:
            return Continue(ctx.input)
        return ctx.suspend(approval_envelope(ctx.step_id))

    return WorkflowDefinition(id="single-gate", steps=[approve])


@pytest.fixture
def agent_workflow(calls):
    """outline -> expand (generation agent) -> publish."""

    @step("outline", input_shape=Numbers, output_shape=Draft)
    def outline(ctx):
        calls.append("outline")
        return Draft(text=f"outline {ctx.input.x}")

    @step("expand", input_shape=Draft, output_shape=Draft)
    async def expand(ctx):
        calls.append("expand")
        text = await ctx.generate(f"Expand: {ctx.input.text}")
        return Draft(text=text)

    @step("publish", input_shape=Draft, output_shape=Draft)
    def publish(ctx):
        calls.append("publish")
        return ctx.input

    return WorkflowDefinition(id="agent", steps=[outline, expand, publish])


@pytest.fixture
def release():
    return asyncio.Event()


@pytest.fixture
def slow_gate_workflow(calls, release):
    """A gate whose approved branch waits for ``release`` before continuing."""

    @step(
        "gate",
        input_shape=Draft,
        output_shape=Draft,
        resume_shape=Approval,
        suspend_shape=SuspendEnvelope,
    )
    async def gate(ctx):
        calls.append("gate")
        if ctx.resume is None or not ctx.resume.approved:
            return ctx.suspend(approval_envelope(ctx.step_id))
        await release.wait()
        return ctx.input

    @step("finish", input_shape=Draft, output_shape=Draft)
    def finish(ctx):
        calls.append("finish")
        return ctx.input

    return WorkflowDefinition(id="slow-gate", steps=[gate, finish])
