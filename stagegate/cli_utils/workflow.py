from __future__ import annotations

import importlib
import json
from typing import Any, Iterable, List

from ..contracts import RunResult, RunStatus, SuspendEnvelope
from ..workflow import WorkflowDefinition


def load_workflows(refs: Iterable[str]) -> List[WorkflowDefinition]:
    """Import workflows from ``module:attribute`` references.

    The attribute may be a single :class:`WorkflowDefinition` or an iterable
    of them.
    """
    workflows: List[WorkflowDefinition] = []
    for ref in refs:
        module_name, _, attr = ref.partition(":")
        if not module_name or not attr:
            raise ValueError(f"Workflow reference {ref!r} must look like 'module:attribute'")
        module = importlib.import_module(module_name)
        try:
            obj = getattr(module, attr)
        except AttributeError as exc:
            raise ValueError(f"Module {module_name!r} has no attribute {attr!r}") from exc
        if isinstance(obj, WorkflowDefinition):
            workflows.append(obj)
            continue
        try:
            items = list(obj)
        except TypeError as exc:
            raise ValueError(f"{ref!r} does not reference workflow definitions") from exc
        for item in items:
            if not isinstance(item, WorkflowDefinition):
                raise ValueError(f"{ref!r} does not reference workflow definitions")
        workflows.extend(items)
    return workflows


def _dumps(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


def _format_result(result: RunResult) -> List[str]:
    """Human readable lines describing a run result."""
    lines = [f"Run {result.run_id}: {result.status.value}"]
    if result.current_step_id:
        lines.append(f"Current step: {result.current_step_id}")
    if result.status == RunStatus.SUSPENDED and result.suspend_envelope:
        envelope = result.suspend_envelope
        lines.append(f"Waiting: {envelope.get('description', '')}")
        required = SuspendEnvelope.model_validate(envelope).required_inputs
        if required:
            lines.append(f"Required inputs: {', '.join(required)}")
        action = envelope.get("requiredAction", {})
        if action.get("instructions"):
            lines.append(f"Instructions: {action['instructions']}")
    if result.status == RunStatus.COMPLETED:
        lines.append(f"Result: {_dumps(result.final_result)}")
    if result.status == RunStatus.FAILED and result.error is not None:
        lines.append(f"Error: {result.error.kind}: {result.error.message}")
    return lines
