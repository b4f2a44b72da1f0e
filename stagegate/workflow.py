"""Workflow and step definitions."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, model_validator

from .agent import GenerationAgent
from .contracts import Fail, Suspend, SuspendEnvelope
from .errors import AgentFailure, WorkflowDefinitionError
from .schema import unsatisfied_fields

logger = logging.getLogger(__name__)


@dataclass
class StepContext:
    """Everything a step sees while it runs."""

    run_id: str
    workflow_id: str
    step_id: str
    step_index: int
    input_data: Dict[str, Any]
    resume_data: Optional[Dict[str, Any]]
    input_shape: Type[BaseModel]
    resume_shape: Optional[Type[BaseModel]] = None
    agent: Optional[GenerationAgent] = None

    @property
    def input(self) -> BaseModel:
        """``input_data`` parsed into the step's input shape."""
        return self.input_shape.model_validate(self.input_data)

    @property
    def resume(self) -> Optional[BaseModel]:
        """``resume_data`` parsed into the step's resume shape, if resuming."""
        if self.resume_data is None or self.resume_shape is None:
            return None
        return self.resume_shape.model_validate(self.resume_data)

    @property
    def is_resuming(self) -> bool:
        return self.resume_data is not None

    async def generate(self, prompt: str) -> str:
        """Call the generation agent.

        Raises:
            AgentFailure: If no agent is configured, the agent raises, or it
                returns an empty or non-text response.
        """
        if self.agent is None:
            raise AgentFailure("No generation agent configured", step_id=self.step_id)
        try:
            text = await self.agent.generate(prompt)
        except AgentFailure:
            raise
        except Exception as exc:
            raise AgentFailure(
                f"Generation agent failed: {exc}",
                step_id=self.step_id,
                error_type=type(exc).__name__,
            ) from exc
        if not isinstance(text, str):
            raise AgentFailure(
                f"Generation agent returned {type(text).__name__}, expected text",
                step_id=self.step_id,
            )
        if not text.strip():
            raise AgentFailure("Generation agent returned an empty response", step_id=self.step_id)
        return text

    def suspend(self, envelope: SuspendEnvelope | Dict[str, Any]) -> Suspend:
        return Suspend(envelope)

    def fail(self, message: str, *, kind: str = "StepFailure", **details: Any) -> Fail:
        return Fail.because(message, kind=kind, step_id=self.step_id, **details)


StepFunction = Callable[[StepContext], Any]


class StepSpec(BaseModel):
    """One named unit of work in a workflow.

    ``run`` receives a :class:`StepContext` and returns an outcome
    (:class:`~stagegate.contracts.Continue`, :class:`~stagegate.contracts.Suspend`
    or :class:`~stagegate.contracts.Fail`). Returning a plain ``dict`` or model
    is shorthand for ``Continue``. ``run`` may be a coroutine function.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    id: str
    input_shape: Type[BaseModel]
    output_shape: Type[BaseModel]
    resume_shape: Optional[Type[BaseModel]] = None
    suspend_shape: Optional[Type[SuspendEnvelope]] = None
    description: Optional[str] = None
    run: StepFunction

    @model_validator(mode="after")
    def _check_suspend_contract(self) -> "StepSpec":
        if not self.id:
            raise WorkflowDefinitionError("Step id must be a non-empty string")
        if (self.resume_shape is None) != (self.suspend_shape is None):
            raise WorkflowDefinitionError(
                f"Step {self.id!r} must declare both resume_shape and suspend_shape, or neither",
                step_id=self.id,
            )
        return self

    @property
    def can_suspend(self) -> bool:
        return self.suspend_shape is not None


def step(
    id: str,
    *,
    input_shape: Type[BaseModel],
    output_shape: Type[BaseModel],
    resume_shape: Optional[Type[BaseModel]] = None,
    suspend_shape: Optional[Type[SuspendEnvelope]] = None,
) -> Callable[[StepFunction], StepSpec]:
    """Decorator turning a function into a :class:`StepSpec`."""

    def decorator(func: StepFunction) -> StepSpec:
        return StepSpec(
            id=id,
            input_shape=input_shape,
            output_shape=output_shape,
            resume_shape=resume_shape,
            suspend_shape=suspend_shape,
            description=inspect.getdoc(func),
            run=func,
        )

    return decorator


class WorkflowDefinition(BaseModel):
    """Immutable, strictly linear sequence of steps.

    Construction fails with :class:`WorkflowDefinitionError` when step ids
    repeat or when a step's input shape cannot be satisfied by the output of
    the step before it (or, for the first step, by the workflow input shape).
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    id: str
    steps: Tuple[StepSpec, ...]
    input_shape: Optional[Type[BaseModel]] = None
    description: Optional[str] = None

    @model_validator(mode="after")
    def _check_chain(self) -> "WorkflowDefinition":
        if not self.steps:
            raise WorkflowDefinitionError(f"Workflow {self.id!r} has no steps")

        seen: set[str] = set()
        for spec in self.steps:
            if spec.id in seen:
                raise WorkflowDefinitionError(
                    f"Duplicate step id {spec.id!r} in workflow {self.id!r}", step_id=spec.id
                )
            seen.add(spec.id)

        producer = self.input_shape or self.steps[0].input_shape
        producer_label = "workflow input"
        for spec in self.steps:
            missing = unsatisfied_fields(producer, spec.input_shape)
            if missing:
                raise WorkflowDefinitionError(
                    f"Step {spec.id!r} input requires {missing} which {producer_label} "
                    f"({producer.__name__}) does not provide",
                    step_id=spec.id,
                    missing=missing,
                )
            producer = spec.output_shape
            producer_label = f"step {spec.id!r} output"
        logger.debug(f"Workflow {self.id!r} validated with {len(self.steps)} steps")
        return self

    @property
    def step_ids(self) -> List[str]:
        return [spec.id for spec in self.steps]

    @property
    def output_shape(self) -> Type[BaseModel]:
        return self.steps[-1].output_shape

    def is_last(self, index: int) -> bool:
        return index == len(self.steps) - 1

    def index_of(self, step_id: str) -> int:
        return self.step_ids.index(step_id)

    def pending_after(self, index: int) -> List[str]:
        """Ids of the steps that follow ``index``."""
        return self.step_ids[index + 1 :]
