"""Command line interface for inspecting and driving stagegate runs."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, List, Optional

import typer

from stagegate.agent import build_agent
from stagegate.cli_utils.workflow import _format_result, load_workflows
from stagegate.client import RunPoller
from stagegate.config import load_config
from stagegate.controller import RunController
from stagegate.errors import NotFound, StagegateError
from stagegate.persistence import get_repository

app = typer.Typer(help="CLI for stagegate runs")

# Command groups
run_app = typer.Typer(help="Commands for managing runs")
workflow_app = typer.Typer(help="Commands for managing workflows")

app.add_typer(run_app, name="run")
app.add_typer(workflow_app, name="workflow")

WorkflowRefs = typer.Option(
    None,
    "--workflow-ref",
    "-w",
    help="Workflow to load as 'module:attribute' (repeatable; defaults to config)",
)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, help="Logging level (default: from config)"),
) -> None:
    """stagegate CLI entry point."""
    config = load_config()
    logging.basicConfig(
        level=(log_level or config.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _controller(refs: Optional[List[str]]) -> RunController:
    config = load_config()
    try:
        workflows = load_workflows(refs or config.workflows)
    except (ImportError, ValueError) as exc:
        typer.secho(f"Could not load workflows: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return RunController(
        workflows, agent=build_agent(config.agent), repository=get_repository()
    )


def _parse_json(value: Optional[str], label: str) -> Any:
    if value is None:
        return {}
    try:
        return json.loads(value)
    except json.JSONDecodeError as exc:
        typer.secho(f"Invalid JSON for {label}: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _fail(exc: StagegateError) -> None:
    typer.secho(f"{exc.kind}: {exc.message}", fg=typer.colors.RED)
    raise typer.Exit(code=1)


@run_app.command("list")
def run_list() -> None:
    """
    List all runs with their current status.

    Example:
        stagegate run list
        # Output: 3f2a...    fiction-generation-workflow    suspended    collect-character-data
    """
    repo = get_repository()
    runs = asyncio.run(repo.list_runs())
    if not runs:
        typer.echo("No runs found")
        return
    for run in runs:
        typer.echo(
            f"{run.run_id}\t{run.workflow_id}\t{run.status.value}\t{run.current_step_id or '-'}"
        )


@run_app.command("show")
def run_show(run_id: str) -> None:
    """
    Show status, suspend envelope and step history for a run.

    Args:
        run_id: Run to inspect (get from 'run list')
    """
    repo = get_repository()
    try:
        record = asyncio.run(repo.get(run_id))
    except NotFound:
        typer.echo("Run not found")
        raise typer.Exit(code=1)
    typer.echo(f"Workflow: {record.workflow_id}")
    for line in _format_result(record.to_result()):
        typer.echo(line)
    for entry in record.history:
        typer.echo(
            f"- {entry.step_id}: {entry.outcome_kind} ({entry.entered_at} -> {entry.left_at})"
        )


@run_app.command("start")
def run_start(
    workflow_id: str,
    input: Optional[str] = typer.Option(None, "--input", "-i", help="Run input as JSON"),
    workflow_refs: Optional[List[str]] = WorkflowRefs,
) -> None:
    """
    Start a run and execute it until it suspends, completes or fails.

    Example:
        stagegate run start fiction-generation-workflow --input '{"basicInfo": {...}}'
    """
    controller = _controller(workflow_refs)
    data = _parse_json(input, "--input")
    try:
        result = asyncio.run(controller.start(workflow_id, data))
    except StagegateError as exc:
        _fail(exc)
    for line in _format_result(result):
        typer.echo(line)


@run_app.command("resume")
def run_resume(
    run_id: str,
    step_id: str,
    data: Optional[str] = typer.Option(None, "--data", "-d", help="Resume payload as JSON"),
    workflow_refs: Optional[List[str]] = WorkflowRefs,
) -> None:
    """
    Resume a suspended run at STEP_ID with the given payload.

    Example:
        stagegate run resume 3f2a... collect-character-data --data '{"reviewStatus": "approved"}'
    """
    controller = _controller(workflow_refs)
    payload = _parse_json(data, "--data")
    try:
        result = asyncio.run(controller.resume(run_id, step_id, payload))
    except StagegateError as exc:
        _fail(exc)
    for line in _format_result(result):
        typer.echo(line)


@run_app.command("wait")
def run_wait(
    run_id: str,
    interval: Optional[float] = typer.Option(None, help="Seconds between polls"),
    max_attempts: Optional[int] = typer.Option(None, help="Polls before giving up"),
    workflow_refs: Optional[List[str]] = WorkflowRefs,
) -> None:
    """Poll a run until it suspends, completes or fails."""
    config = load_config()
    controller = _controller(workflow_refs)
    poller = RunPoller(
        controller,
        interval=interval if interval is not None else config.polling.interval,
        max_attempts=max_attempts if max_attempts is not None else config.polling.max_attempts,
    )
    try:
        result = asyncio.run(poller.wait_for(run_id))
    except StagegateError as exc:
        _fail(exc)
    for line in _format_result(result):
        typer.echo(line)


@workflow_app.command("list")
def workflow_list(workflow_refs: Optional[List[str]] = WorkflowRefs) -> None:
    """List loaded workflows and their steps."""
    controller = _controller(workflow_refs)
    if not controller.workflows:
        typer.echo("No workflows loaded")
        return
    for workflow in controller.workflows.values():
        typer.echo(f"{workflow.id} - {workflow.description or 'No description'}")
        for spec in workflow.steps:
            marker = " (gate)" if spec.can_suspend else ""
            typer.echo(f"  {spec.id}{marker}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
