"""
Metrics collection for monitoring workflow performance.
Integrates with Prometheus for metrics export.
"""

from typing import Any

import structlog
from prometheus_client import Counter, Gauge, Histogram, Info, generate_latest

log = structlog.get_logger(__name__)

# Executor metrics
executor_executions = Counter(
    "ai_dev_team_executor_executions_total",
    "Total executor invocations",
    ["executor", "action", "status"],
)

executor_duration = Histogram(
    "ai_dev_team_executor_duration_seconds",
    "Executor call duration",
    ["executor"],
    buckets=(1, 5, 10, 30, 60, 120, 300, 600, 1800),
)

token_usage = Counter(
    "ai_dev_team_token_usage_total", "Total tokens used", ["executor"]
)

# Workflow metrics
active_runs = Gauge("ai_dev_team_active_runs", "Number of currently active workflow runs")

state_transitions = Counter(
    "ai_dev_team_state_transitions_total",
    "Workflow state transitions",
    ["from_state", "to_state"],
)

checkpoints_created = Counter(
    "ai_dev_team_checkpoints_total", "Checkpoints created", ["state"]
)

run_outcomes = Counter(
    "ai_dev_team_run_outcomes_total", "Finished workflow runs", ["final_state"]
)

# Error metrics
errors_total = Counter(
    "ai_dev_team_errors_total", "Total errors", ["error_type", "operation"]
)

recovery_attempts = Counter(
    "ai_dev_team_recovery_attempts_total",
    "Recovery attempts",
    ["recovery_type", "success"],
)

# System info
system_info = Info("ai_dev_team_system", "Workflow engine information")


class MetricsCollector:
    """Collect and export metrics."""

    @staticmethod
    def record_execution(executor: str, action: str, success: bool, duration: float) -> None:
        """Record one executor invocation."""
        status = "success" if success else "failed"
        executor_executions.labels(executor=executor, action=action, status=status).inc()
        executor_duration.labels(executor=executor).observe(duration)
        log.debug("metric_recorded", metric="executor_execution", executor=executor, status=status)

    @staticmethod
    def record_token_usage(executor: str, tokens: int) -> None:
        """Record token usage."""
        if tokens > 0:
            token_usage.labels(executor=executor).inc(tokens)

    @staticmethod
    def record_transition(from_state: str, to_state: str) -> None:
        """Record a state transition."""
        state_transitions.labels(from_state=from_state, to_state=to_state).inc()

    @staticmethod
    def record_checkpoint(state: str) -> None:
        """Record checkpoint creation."""
        checkpoints_created.labels(state=state).inc()

    @staticmethod
    def record_run_outcome(final_state: str) -> None:
        """Record how a run ended."""
        run_outcomes.labels(final_state=final_state).inc()

    @staticmethod
    def record_error(error_type: str, operation: str) -> None:
        """Record error occurrence."""
        errors_total.labels(error_type=error_type, operation=operation).inc()
        log.debug("error_metric_recorded", error_type=error_type, operation=operation)

    @staticmethod
    def record_recovery_attempt(recovery_type: str, success: bool) -> None:
        """Record recovery attempt."""
        recovery_attempts.labels(recovery_type=recovery_type, success=str(success)).inc()

    @staticmethod
    def set_active_runs(count: int) -> None:
        """Update active run count."""
        active_runs.set(count)

    @staticmethod
    def set_system_info(**kwargs: Any) -> None:
        """Set system information."""
        system_info.info({key: str(value) for key, value in kwargs.items()})

    @staticmethod
    def get_metrics() -> bytes:
        """Get metrics in Prometheus format."""
        return generate_latest()
