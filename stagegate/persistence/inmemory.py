"""In-memory implementation of the run repository."""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Dict

from ..errors import NotFound
from .models import RunRecord
from .repository import Mutator, RunRepository, apply_mutation


class InMemoryRunRepository(RunRepository):
    """Store run state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._runs: Dict[str, RunRecord] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    async def create(self, workflow_id: str, initial_input: Any, first_step_id: str) -> str:
        run_id = str(uuid.uuid4())
        self._runs[run_id] = RunRecord(
            run_id=run_id,
            workflow_id=workflow_id,
            current_step_id=first_step_id,
            input=initial_input,
        )
        self._locks[run_id] = asyncio.Lock()
        return run_id

    async def get(self, run_id: str) -> RunRecord:
        record = self._runs.get(run_id)
        if record is None:
            raise NotFound(f"Run {run_id} not found")
        return record.model_copy(deep=True)

    async def update(self, run_id: str, mutator: Mutator) -> RunRecord:
        lock = self._locks.get(run_id)
        if lock is None:
            raise NotFound(f"Run {run_id} not found")
        async with lock:
            updated = apply_mutation(self._runs[run_id], mutator)
            self._runs[run_id] = updated
            return updated.model_copy(deep=True)

    async def list_runs(self) -> list[RunRecord]:
        return [record.model_copy(deep=True) for record in self._runs.values()]
