"""Tests for the command-line interface."""

import asyncio
import json
from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner

from ai_dev_team.engine.state_manager import StateManager
from ai_dev_team.engine.states import WorkflowState
from ai_dev_team.engine.types import AgentResult, WorkflowStats
from ai_dev_team.main import cli


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def no_logging_setup():
    """Keep the CLI from reconfiguring structlog during tests."""
    with patch("ai_dev_team.main.configure_logging"):
        yield


@pytest.fixture
def config_file(tmp_path, temp_state_dir):
    path = tmp_path / "ai-dev-team.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "workflow": {"state_directory": str(temp_state_dir), "step_delay": 0},
                "recovery": {"error_log": str(tmp_path / "errors.log")},
            }
        )
    )
    return path


@pytest.fixture
def stored_workflow(state_manager, make_context, sample_checkpoints):
    """Persist a failed workflow with checkpoints."""
    context = make_context(
        WorkflowState.ERROR,
        current_step=3,
        checkpoints=sample_checkpoints,
        last_error="Request timeout",
        data={
            "failed_state": "code_testing",
            "recovery_options": {
                "retry": True,
                "retry_count": 0,
                "max_retries": 3,
                "rollback": True,
                "skip": True,
                "custom_action": None,
            },
        },
    )
    asyncio.run(state_manager.save("default", context, WorkflowStats(total_tokens_used=1234)))
    return context


def invoke(runner, config_file, *args, **kwargs):
    return runner.invoke(cli, ["--config", str(config_file), *args], **kwargs)


def test_help(runner):
    result = runner.invoke(cli, ["--help"])

    assert result.exit_code == 0
    for command in ("start", "resume", "recover", "status", "stats", "reset", "rollback", "validate"):
        assert command in result.output


def test_missing_config(runner, tmp_path):
    """Test an explicit missing config file is an error."""
    result = runner.invoke(cli, ["--config", str(tmp_path / "missing.yaml"), "status"])

    assert result.exit_code == 1
    assert "Configuration file not found" in result.output


def test_status_without_workflow(runner, config_file):
    result = invoke(runner, config_file, "status")

    assert result.exit_code == 0
    assert "No workflow." in result.output


def test_status(runner, config_file, stored_workflow):
    """Test the status report of a failed workflow."""
    result = invoke(runner, config_file, "status")

    assert result.exit_code == 0
    assert "State:       error" in result.output
    assert "Step:        3/10" in result.output
    assert "Checkpoints: 3" in result.output
    assert "Last error:  Request timeout" in result.output
    assert "Recovery:    retry, rollback, skip, abort" in result.output


def test_status_json(runner, config_file, stored_workflow):
    result = invoke(runner, config_file, "status", "--json")

    assert result.exit_code == 0
    payload = json.loads(result.output[result.output.index("{") :])
    assert payload["state"] == "error"
    assert len(payload["checkpoints"]) == 3


def test_stats(runner, config_file, stored_workflow):
    result = invoke(runner, config_file, "stats")

    assert result.exit_code == 0
    assert '"total_tokens_used": 1234' in result.output


def test_rollback(runner, config_file, stored_workflow, state_manager):
    """Test rolling the stored workflow back to a checkpoint."""
    result = invoke(runner, config_file, "rollback", "--index", "0")

    assert result.exit_code == 0
    assert "Rolled back." in result.output
    record = asyncio.run(state_manager.load("default"))
    assert record.context.state == WorkflowState.PAUSED
    assert record.context.data["paused_state"] == "initial_planning"
    assert len(record.context.checkpoints) == 1


def test_rollback_bad_index(runner, config_file, stored_workflow):
    result = invoke(runner, config_file, "rollback", "--index", "9")

    assert result.exit_code == 1
    assert "Rollback failed" in result.output


def test_validate(runner, config_file, stored_workflow, project_file):
    result = invoke(runner, config_file, "validate")
    assert result.exit_code == 0
    assert "Workflow is valid." in result.output

    project_file.unlink()
    result = invoke(runner, config_file, "validate")
    assert result.exit_code == 1


def test_reset_requires_confirmation(runner, config_file, stored_workflow, state_manager):
    """Test reset is aborted when not confirmed."""
    result = invoke(runner, config_file, "reset", input="n\n")

    assert result.exit_code == 1
    assert asyncio.run(state_manager.load("default")).context is not None


def test_reset(runner, config_file, stored_workflow, state_manager):
    result = invoke(runner, config_file, "reset", "--yes")

    assert result.exit_code == 0
    assert "Workflow reset." in result.output
    assert asyncio.run(state_manager.load("default")).context is None


def test_recover_requires_failed_workflow(runner, config_file):
    """Test recovery without a failed workflow exits with an error."""
    result = invoke(runner, config_file, "recover", "retry")

    assert result.exit_code == 1
    assert "Recovery requires a failed workflow" in result.output


def test_recover_rejects_unknown_action(runner, config_file):
    result = invoke(runner, config_file, "recover", "explode")

    assert result.exit_code == 2


def test_start_runs_workflow(runner, config_file, executors, project_file, workspace, state_manager):
    """Test a full run from the command line."""
    with patch("ai_dev_team.main.build_default_agents", return_value=executors):
        result = invoke(runner, config_file, "start", str(project_file), str(workspace))

    assert result.exit_code == 0, result.output
    assert "-> complete" in result.output
    assert "State:       complete" in result.output
    record = asyncio.run(state_manager.load("default"))
    assert record.context.state == WorkflowState.COMPLETE


def test_start_reports_failure(runner, config_file, executors, project_file, workspace):
    """Test a failed run exits non-zero and lists recovery actions."""
    executors["planner"].results.append(AgentResult(success=False, message="Request timeout"))
    with patch("ai_dev_team.main.build_default_agents", return_value=executors):
        result = invoke(runner, config_file, "start", str(project_file), str(workspace))

    assert result.exit_code == 1
    assert "State:       error" in result.output
    assert "Recovery:    retry, abort" in result.output
