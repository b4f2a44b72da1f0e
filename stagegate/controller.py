"""Run controller: the boundary external clients talk to."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterable, Optional

from .agent import GenerationAgent
from .contracts import RunResult
from .errors import UnknownWorkflow, WorkflowDefinitionError
from .execute import StepExecutor
from .persistence import RunRecord, RunRepository, get_repository
from .workflow import WorkflowDefinition

logger = logging.getLogger(__name__)


class RunController:
    """Start, resume and inspect runs by run id.

    Workflows and the generation agent are injected at construction. Mutating
    calls for the same run are serialized; different runs do not contend.
    """

    def __init__(
        self,
        workflows: Iterable[WorkflowDefinition] = (),
        agent: Optional[GenerationAgent] = None,
        repository: Optional[RunRepository] = None,
    ) -> None:
        self._workflows: Dict[str, WorkflowDefinition] = {}
        for workflow in workflows:
            self.register(workflow)
        self._repository = repository or get_repository()
        self._executor = StepExecutor(self._repository, agent)
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @property
    def repository(self) -> RunRepository:
        return self._repository

    @property
    def workflows(self) -> Dict[str, WorkflowDefinition]:
        return dict(self._workflows)

    def register(self, workflow: WorkflowDefinition) -> None:
        """Make ``workflow`` available to :meth:`start`."""
        if workflow.id in self._workflows:
            raise WorkflowDefinitionError(f"Workflow {workflow.id!r} is already registered")
        self._workflows[workflow.id] = workflow
        logger.debug(f"Registered workflow {workflow.id!r}: {workflow.step_ids}")

    def get_workflow(self, workflow_id: str) -> WorkflowDefinition:
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise UnknownWorkflow(f"Workflow {workflow_id!r} is not registered")
        return workflow

    @asynccontextmanager
    async def _exclusive(self, run_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(run_id, asyncio.Lock())
        self._lock_users[run_id] = self._lock_users.get(run_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[run_id] -= 1
            if not self._lock_users[run_id]:
                del self._lock_users[run_id]
                del self._locks[run_id]

    # ------------------------------------------------------------------
    # Boundary operations
    async def start(self, workflow_id: str, input: Any) -> RunResult:
        """Create a run and execute it until it suspends, completes or fails.

        Raises:
            UnknownWorkflow: ``workflow_id`` is not registered.
            SchemaValidationError: ``input`` does not fit the first step. No
                run record is created in this case.
        """
        workflow = self.get_workflow(workflow_id)
        data = self._executor.validate_start_input(workflow, input)
        run_id = await self._repository.create(workflow.id, data, workflow.steps[0].id)
        async with self._exclusive(run_id):
            record = await self._executor.start(workflow, run_id, data)
        return record.to_result()

    async def resume(self, run_id: str, step_id: str, resume_data: Any) -> RunResult:
        """Supply ``resume_data`` to the step a run is suspended at.

        Raises:
            NotFound: Unknown ``run_id``.
            InvalidTransition: The run is not suspended.
            StepMismatch: ``step_id`` is not the current suspension point.
            IncompleteResume: Required inputs are missing.
            SchemaValidationError: The payload fails the step's resume shape.
        """
        # unknown ids never get a lock entry
        await self._repository.get(run_id)
        async with self._exclusive(run_id):
            record = await self._repository.get(run_id)
            workflow = self.get_workflow(record.workflow_id)
            record = await self._executor.resume(workflow, record, step_id, resume_data)
        return record.to_result()

    async def get_status(self, run_id: str) -> RunRecord:
        """Read-only snapshot of the full run record."""
        return await self._repository.get(run_id)

    async def status(self, run_id: str) -> RunResult:
        """Status, current step, envelope and partial or final output."""
        record = await self._repository.get(run_id)
        return record.to_result()

    async def list_runs(self) -> list[RunRecord]:
        return await self._repository.list_runs()
