"""Step execution engine for stagegate workflows."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel

from .agent import GenerationAgent
from .contracts import Continue, ErrorRecord, Fail, Outcome, RunStatus, Suspend, utcnow
from .errors import StagegateError
from .persistence import RunRecord, RunRepository
from .persistence.models import HistoryEntry
from .protocol import accept_envelope, check_resume, ensure_resumable
from .schema import validate_shape
from .workflow import StepContext, StepSpec, WorkflowDefinition

logger = logging.getLogger(__name__)


def as_outcome(result: Any, spec: StepSpec) -> Outcome:
    """Interpret a step's return value."""
    if isinstance(result, (Continue, Suspend, Fail)):
        return result
    if isinstance(result, (BaseModel, dict)):
        return Continue(result)
    return Fail.because(
        f"Step {spec.id!r} returned {type(result).__name__}; expected an outcome or output",
        kind="StepError",
        step_id=spec.id,
    )


class StepExecutor:
    """Drives the steps of one run and records every transition.

    The executor chains non-suspending steps itself: after a ``Continue`` it
    immediately runs the next step. It stops when a step suspends, fails, or
    the last step completes.
    """

    def __init__(self, repository: RunRepository, agent: Optional[GenerationAgent] = None) -> None:
        self._repository = repository
        self._agent = agent

    # ------------------------------------------------------------------
    # Entry points
    def validate_start_input(self, workflow: WorkflowDefinition, data: Any) -> Dict[str, Any]:
        """Validate initial input against the first step's input shape."""
        first = workflow.steps[0]
        if workflow.input_shape is not None:
            data = validate_shape(workflow.input_shape, data, label=f"Input of workflow {workflow.id!r}")
        return validate_shape(first.input_shape, data, label=f"Input of step {first.id!r}")

    async def start(self, workflow: WorkflowDefinition, run_id: str, data: Dict[str, Any]) -> RunRecord:
        """Run a freshly created record from step 0."""
        logger.info(f"Starting run {run_id} of workflow {workflow.id!r}")
        return await self._run_chain(workflow, run_id, 0, data, None)

    async def resume(
        self,
        workflow: WorkflowDefinition,
        record: RunRecord,
        step_id: str,
        resume_data: Any,
    ) -> RunRecord:
        """Re-run the suspended step of ``record`` with ``resume_data``.

        All protocol checks happen before the record is touched. The
        ``suspended -> running`` transition is a compare-and-set inside the
        store, so a competing resume that slipped past the checks still loses.
        """
        payload = check_resume(workflow, record, step_id, resume_data)

        def begin(rec: RunRecord) -> None:
            ensure_resumable(rec, step_id)
            rec.status = RunStatus.RUNNING
            rec.suspend_envelope = None

        current = await self._repository.update(record.run_id, begin)
        index = current.current_step_index
        input_data = current.last_output if index > 0 else current.input
        logger.info(f"Resuming run {record.run_id} at step {step_id!r}")
        return await self._run_chain(workflow, record.run_id, index, input_data, payload)

    # ------------------------------------------------------------------
    # Chaining loop
    async def _run_chain(
        self,
        workflow: WorkflowDefinition,
        run_id: str,
        index: int,
        input_data: Dict[str, Any],
        resume_data: Optional[Dict[str, Any]],
    ) -> RunRecord:
        while True:
            spec = workflow.steps[index]
            entered_at = utcnow()
            outcome = await self._invoke(workflow, spec, run_id, index, input_data, resume_data)
            outcome = self._interpret(workflow, index, outcome)
            entry = HistoryEntry(
                step_id=spec.id,
                step_index=index,
                entered_at=entered_at,
                left_at=utcnow(),
                outcome_kind=outcome.kind,
            )

            if isinstance(outcome, Fail):
                record = await self._repository.update(run_id, _fail(entry, outcome.error))
                logger.error(
                    f"Run {run_id} failed at step {spec.id!r}: "
                    f"{outcome.error.kind}: {outcome.error.message}"
                )
                return record

            if isinstance(outcome, Suspend):
                record = await self._repository.update(run_id, _suspend(entry, outcome.envelope))
                logger.info(f"Run {run_id} suspended at step {spec.id!r}")
                return record

            if workflow.is_last(index):
                record = await self._repository.update(run_id, _complete(entry, outcome.output))
                logger.info(f"Run {run_id} of workflow {workflow.id!r} completed")
                return record

            next_spec = workflow.steps[index + 1]
            await self._repository.update(run_id, _advance(entry, outcome.output, next_spec))
            logger.info(f"Step {spec.id!r} completed for run {run_id}; advancing to {next_spec.id!r}")
            index += 1
            input_data = outcome.output
            resume_data = None

    async def _invoke(
        self,
        workflow: WorkflowDefinition,
        spec: StepSpec,
        run_id: str,
        index: int,
        input_data: Dict[str, Any],
        resume_data: Optional[Dict[str, Any]],
    ) -> Outcome:
        ctx = StepContext(
            run_id=run_id,
            workflow_id=workflow.id,
            step_id=spec.id,
            step_index=index,
            input_data=input_data,
            resume_data=resume_data,
            input_shape=spec.input_shape,
            resume_shape=spec.resume_shape,
            agent=self._agent,
        )
        logger.debug(f"Invoking step {spec.id!r} of run {run_id} (resuming={ctx.is_resuming})")
        try:
            result = spec.run(ctx)
            if inspect.isawaitable(result):
                result = await result
        except StagegateError as exc:
            return Fail(exc.to_record(spec.id))
        except Exception as exc:
            logger.exception(f"Step {spec.id!r} of run {run_id} raised")
            return Fail.because(
                str(exc) or type(exc).__name__,
                kind="StepError",
                step_id=spec.id,
                error_type=type(exc).__name__,
            )
        return as_outcome(result, spec)

    def _interpret(self, workflow: WorkflowDefinition, index: int, outcome: Outcome) -> Outcome:
        """Validate what the step produced; invalid data becomes a failure."""
        spec = workflow.steps[index]
        try:
            if isinstance(outcome, Continue):
                output = validate_shape(spec.output_shape, outcome.output, label=f"Output of step {spec.id!r}")
                if not workflow.is_last(index):
                    next_spec = workflow.steps[index + 1]
                    # gate only; the stored output stays the producer's full dump
                    validate_shape(next_spec.input_shape, output, label=f"Input of step {next_spec.id!r}")
                return Continue(output)
            if isinstance(outcome, Suspend):
                return Suspend(accept_envelope(spec, outcome.envelope))
        except StagegateError as exc:
            return Fail(exc.to_record(spec.id))
        except Exception as exc:
            logger.exception(f"Could not interpret the outcome of step {spec.id!r}")
            return Fail.because(
                str(exc) or type(exc).__name__,
                kind="StepError",
                step_id=spec.id,
                error_type=type(exc).__name__,
            )
        return outcome


# ----------------------------------------------------------------------
# Record mutators


def _fail(entry: HistoryEntry, error: ErrorRecord):
    def mutate(rec: RunRecord) -> None:
        rec.history.append(entry)
        rec.status = RunStatus.FAILED
        rec.suspend_envelope = None
        rec.error = error

    return mutate


def _suspend(entry: HistoryEntry, envelope):
    def mutate(rec: RunRecord) -> None:
        rec.history.append(entry)
        rec.status = RunStatus.SUSPENDED
        rec.suspend_envelope = envelope

    return mutate


def _complete(entry: HistoryEntry, output: Dict[str, Any]):
    def mutate(rec: RunRecord) -> None:
        rec.history.append(entry)
        rec.status = RunStatus.COMPLETED
        rec.final_result = output

    return mutate


def _advance(entry: HistoryEntry, output: Dict[str, Any], next_spec: StepSpec):
    def mutate(rec: RunRecord) -> None:
        rec.history.append(entry)
        rec.last_output = output
        rec.current_step_index += 1
        rec.current_step_id = next_spec.id

    return mutate
