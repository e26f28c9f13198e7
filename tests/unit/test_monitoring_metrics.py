"""Tests for Prometheus metrics."""

import pytest
import structlog
from prometheus_client import REGISTRY

from ai_dev_team.monitoring.metrics import MetricsCollector
from ai_dev_team.utils.logging_config import configure_logging, get_logger


def sample(name: str, labels: dict[str, str] | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


def test_record_execution():
    """Test executor calls are counted by status."""
    labels = {"executor": "tester", "action": "analyze_code", "status": "failed"}
    before = sample("ai_dev_team_executor_executions_total", labels)

    MetricsCollector.record_execution("tester", "analyze_code", False, 3.0)

    assert sample("ai_dev_team_executor_executions_total", labels) == before + 1


def test_token_usage_ignores_zero():
    """Test zero token counts are not recorded."""
    labels = {"executor": "planner"}
    before = sample("ai_dev_team_token_usage_total", labels)

    MetricsCollector.record_token_usage("planner", 0)
    MetricsCollector.record_token_usage("planner", 250)

    assert sample("ai_dev_team_token_usage_total", labels) == before + 250


def test_transitions_and_checkpoints():
    """Test transition and checkpoint counters."""
    transition = {"from_state": "code_testing", "to_state": "bug_fixing"}
    before_transition = sample("ai_dev_team_state_transitions_total", transition)
    before_checkpoint = sample("ai_dev_team_checkpoints_total", {"state": "code_testing"})

    MetricsCollector.record_transition("code_testing", "bug_fixing")
    MetricsCollector.record_checkpoint("code_testing")

    assert sample("ai_dev_team_state_transitions_total", transition) == before_transition + 1
    assert sample("ai_dev_team_checkpoints_total", {"state": "code_testing"}) == before_checkpoint + 1


def test_errors_and_recovery():
    """Test error and recovery counters."""
    error_labels = {"error_type": "transient", "operation": "implement_features"}
    recovery_labels = {"recovery_type": "rollback", "success": "True"}
    before_error = sample("ai_dev_team_errors_total", error_labels)
    before_recovery = sample("ai_dev_team_recovery_attempts_total", recovery_labels)

    MetricsCollector.record_error("transient", "implement_features")
    MetricsCollector.record_recovery_attempt("rollback", True)

    assert sample("ai_dev_team_errors_total", error_labels) == before_error + 1
    assert sample("ai_dev_team_recovery_attempts_total", recovery_labels) == before_recovery + 1


def test_gauges_and_export():
    """Test gauges, info and the exposition payload."""
    MetricsCollector.set_active_runs(1)
    MetricsCollector.set_system_info(version="0.1.0", workflow_id="default")
    MetricsCollector.record_run_outcome("complete")

    assert sample("ai_dev_team_active_runs") == 1.0
    payload = MetricsCollector.get_metrics()
    assert b"ai_dev_team_run_outcomes_total" in payload
    assert b'version="0.1.0"' in payload

    MetricsCollector.set_active_runs(0)
    assert sample("ai_dev_team_active_runs") == 0.0


@pytest.fixture
def restore_structlog():
    yield
    structlog.reset_defaults()


@pytest.mark.parametrize("json_output", [True, False])
def test_configure_logging(restore_structlog, json_output):
    """Test the processor chain ends in the requested renderer."""
    configure_logging("debug", json_output=json_output)

    renderer = structlog.get_config()["processors"][-1]
    expected = structlog.processors.JSONRenderer if json_output else structlog.dev.ConsoleRenderer
    assert isinstance(renderer, expected)


def test_get_logger(restore_structlog):
    assert get_logger("ai_dev_team.tests") is not None
