import json
import re

from typer.testing import CliRunner

import stagegate.persistence as persistence
from stagegate.cli import app
from stagegate.cli_utils.workflow import _format_result
from stagegate.contracts import (
    RequiredAction,
    ResumeConditions,
    RunResult,
    RunStatus,
    SuspendEnvelope,
)
from stagegate.persistence import InMemoryRunRepository

CHARACTER = {
    "basicInfo": {"name": "Mara Vell", "role": "protagonist", "occupation": "cartographer"},
    "characterArc": {"startingState": "Guarded and alone"},
    "narrativeFunction": {"storyPurpose": "Maps the way home"},
}


def _setup_repo() -> InMemoryRunRepository:
    repo = InMemoryRunRepository()
    persistence._repository_instance = repo
    return repo


def _run_id(output: str) -> str:
    match = re.search(r"^Run (\S+): ", output, re.MULTILINE)
    assert match, f"No run id in output: {output}"
    return match.group(1)


def _start(runner: CliRunner) -> str:
    result = runner.invoke(
        app, ["run", "start", "fiction-generation-workflow", "--input", json.dumps(CHARACTER)]
    )
    assert result.exit_code == 0, f"Start failed with exit code {result.exit_code}. Output: {result.output}"
    return _run_id(result.output)


def test_run_start_suspends_at_first_gate():
    _setup_repo()
    runner = CliRunner()

    result = runner.invoke(
        app, ["run", "start", "fiction-generation-workflow", "-i", json.dumps(CHARACTER)]
    )

    assert result.exit_code == 0, f"Output: {result.output}"
    assert ": suspended" in result.output
    assert "Current step: collect-character-data" in result.output
    assert "Required inputs: reviewStatus" in result.output


def test_run_list_and_show():
    repo = _setup_repo()
    runner = CliRunner()
    run_id = _start(runner)

    result = runner.invoke(app, ["run", "list"])
    assert result.exit_code == 0
    assert run_id in result.output
    assert "fiction-generation-workflow" in result.output

    result = runner.invoke(app, ["run", "show", run_id])
    assert result.exit_code == 0, f"Output: {result.output}"
    assert "Workflow: fiction-generation-workflow" in result.output
    assert "- collect-character-data: suspend" in result.output

    result_missing = runner.invoke(app, ["run", "show", "missing-id"])
    assert result_missing.exit_code == 1
    assert "Run not found" in result_missing.output
    assert len(repo._runs) == 1


def test_run_list_empty():
    _setup_repo()
    result = CliRunner().invoke(app, ["run", "list"])
    assert result.exit_code == 0
    assert "No runs found" in result.output


def test_run_resume_reports_protocol_errors():
    _setup_repo()
    runner = CliRunner()
    run_id = _start(runner)

    wrong_step = runner.invoke(
        app,
        ["run", "resume", run_id, "generate-fiction-story", "--data", '{"reviewStatus": "approved"}'],
    )
    assert wrong_step.exit_code == 1
    assert "StepMismatch" in wrong_step.output

    incomplete = runner.invoke(app, ["run", "resume", run_id, "collect-character-data", "-d", "{}"])
    assert incomplete.exit_code == 1
    assert "IncompleteResume" in incomplete.output

    bad_json = runner.invoke(app, ["run", "resume", run_id, "collect-character-data", "-d", "{oops"])
    assert bad_json.exit_code == 1
    assert "Invalid JSON for --data" in bad_json.output


def test_run_resume_without_agent_fails_run():
    _setup_repo()
    runner = CliRunner()
    run_id = _start(runner)

    result = runner.invoke(
        app,
        ["run", "resume", run_id, "collect-character-data", "-d", '{"reviewStatus": "approved"}'],
    )

    assert result.exit_code == 0, f"Output: {result.output}"
    assert ": failed" in result.output
    assert "Error: AgentFailure: No generation agent configured" in result.output

    again = runner.invoke(
        app,
        ["run", "resume", run_id, "build-character-profile", "-d", "{}"],
    )
    assert again.exit_code == 1
    assert "InvalidTransition" in again.output


def test_run_start_errors():
    repo = _setup_repo()
    runner = CliRunner()

    unknown = runner.invoke(app, ["run", "start", "no-such-workflow", "-i", "{}"])
    assert unknown.exit_code == 1
    assert "UnknownWorkflow" in unknown.output

    invalid = runner.invoke(
        app, ["run", "start", "fiction-generation-workflow", "-i", '{"basicInfo": {}}']
    )
    assert invalid.exit_code == 1
    assert "SchemaValidationError" in invalid.output
    assert repo._runs == {}


def test_run_wait_returns_settled_run():
    _setup_repo()
    runner = CliRunner()
    run_id = _start(runner)

    result = runner.invoke(app, ["run", "wait", run_id, "--interval", "0", "--max-attempts", "1"])
    assert result.exit_code == 0, f"Output: {result.output}"
    assert f"Run {run_id}: suspended" in result.output


def test_workflow_list_marks_gates():
    _setup_repo()
    result = CliRunner().invoke(app, ["workflow", "list"])

    assert result.exit_code == 0, f"Output: {result.output}"
    assert "fiction-generation-workflow - " in result.output
    assert "collect-character-data (gate)" in result.output
    assert "build-character-profile\n" in result.output
    assert "collect-story-parameters (gate)" in result.output


def test_workflow_ref_errors_exit_cleanly():
    _setup_repo()
    runner = CliRunner()

    result = runner.invoke(app, ["workflow", "list", "-w", "not-a-reference"])
    assert result.exit_code == 1
    assert "Could not load workflows" in result.output

    result = runner.invoke(app, ["workflow", "list", "-w", "stagegate.constants:DEFAULT_POLL_INTERVAL"])
    assert result.exit_code == 1
    assert "does not reference workflow definitions" in result.output


def test_format_result_lists_every_required_input():
    envelope = SuspendEnvelope(
        reason="awaiting_human_input",
        description="Need a title and a sign-off",
        required_action=RequiredAction(
            action_type="provide_input",
            instructions="Send both",
            required_fields=["approved", "title"],
        ),
        resume_conditions=ResumeConditions(required_inputs=["approved"]),
    )
    result = RunResult(
        run_id="r1",
        workflow_id="wf",
        status=RunStatus.SUSPENDED,
        current_step_id="gate",
        suspend_envelope=envelope.model_dump(mode="json", by_alias=True),
    )

    lines = _format_result(result)
    assert "Required inputs: approved, title" in lines
    assert "Instructions: Send both" in lines
