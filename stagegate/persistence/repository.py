"""Repository abstraction for run state persistence."""

from __future__ import annotations

from typing import Any, Callable, Protocol

from ..contracts import utcnow
from ..errors import InvalidTransition
from .models import RunRecord

Mutator = Callable[[RunRecord], None]


class RunRepository(Protocol):
    """Protocol for run state persistence backends.

    ``update`` must be atomic with respect to other updates of the same run:
    the mutator sees the latest committed record and either its whole change
    is stored or nothing is.
    """

    async def create(self, workflow_id: str, initial_input: Any, first_step_id: str) -> str:
        """Persist a new ``running`` record and return its run id."""

    async def get(self, run_id: str) -> RunRecord:
        """Return a snapshot of the record, or raise ``NotFound``."""

    async def update(self, run_id: str, mutator: Mutator) -> RunRecord:
        """Apply ``mutator`` atomically and return the stored record."""

    async def list_runs(self) -> list[RunRecord]:
        """Return all persisted runs."""


def apply_mutation(record: RunRecord, mutator: Mutator) -> RunRecord:
    """Run ``mutator`` against a copy of ``record`` and vet the result.

    Raises:
        InvalidTransition: If the run is already terminal, or the mutation
            rewinds the step index, rewrites history or breaks the status
            invariant. ``record`` itself is never modified.
    """
    if record.status.is_terminal:
        raise InvalidTransition(
            f"Run {record.run_id} is {record.status.value} and cannot change"
        )
    updated = record.model_copy(deep=True)
    mutator(updated)
    if updated.run_id != record.run_id or updated.workflow_id != record.workflow_id:
        raise InvalidTransition(f"Run {record.run_id} identity cannot change")
    if updated.current_step_index < record.current_step_index:
        raise InvalidTransition(
            f"Run {record.run_id} cannot rewind from step index "
            f"{record.current_step_index} to {updated.current_step_index}"
        )
    if updated.history[: len(record.history)] != record.history:
        raise InvalidTransition(f"Run {record.run_id} history is append-only")
    updated.check_invariants()
    updated.updated_at = utcnow()
    return updated
