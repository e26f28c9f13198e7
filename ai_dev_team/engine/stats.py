"""Per-run and per-executor statistics.

``StatsTracker`` owns the ``WorkflowStats`` of the current run. Counters only
grow during a run; ``finalize`` stamps the end time and duration exactly once.
Every recorded value is mirrored into the Prometheus collectors.
"""

import structlog

from ai_dev_team.engine.types import AgentStats, WorkflowStats, utc_now
from ai_dev_team.monitoring.metrics import MetricsCollector

log = structlog.get_logger(__name__)


class StatsTracker:
    """Accumulate statistics for one workflow run at a time."""

    def __init__(self) -> None:
        self._stats: WorkflowStats | None = None
        self._finalized = False

    @property
    def stats(self) -> WorkflowStats | None:
        """Live stats object (engine use only; readers want ``snapshot``)."""
        return self._stats

    @property
    def finalized(self) -> bool:
        return self._finalized

    def start(self) -> WorkflowStats:
        """Begin a new run with zeroed counters."""
        self._stats = WorkflowStats()
        self._finalized = False
        return self._stats

    def resume(self, stats: WorkflowStats | None) -> WorkflowStats:
        """Continue accumulating into existing stats (resume/recover).

        The end of the previous run is cleared so the next ``finalize``
        stamps the new one.
        """
        if stats is None:
            return self.start()
        stats.end_time = None
        self._stats = stats
        self._finalized = False
        return stats

    def restore(self, stats: WorkflowStats | None) -> None:
        """Adopt persisted stats without starting a run."""
        self._stats = stats
        self._finalized = stats is not None and stats.end_time is not None

    def clear(self) -> None:
        self._stats = None
        self._finalized = False

    def _agent(self, executor: str) -> AgentStats:
        assert self._stats is not None
        return self._stats.agent_stats.setdefault(executor, AgentStats())

    def record_execution(
        self,
        executor: str,
        action: str,
        success: bool,
        duration: float,
        tokens: int | None = None,
        files_created: int = 0,
        files_modified: int = 0,
    ) -> None:
        """Record one executor call."""
        MetricsCollector.record_execution(executor, action, success, duration)
        if tokens:
            MetricsCollector.record_token_usage(executor, tokens)

        if self._stats is None:
            log.warning("stats_not_started", executor=executor, action=action)
            return

        agent = self._agent(executor)
        agent.execution_count += 1
        agent.total_duration += duration
        if tokens:
            agent.total_tokens += tokens
            self._stats.total_tokens_used += tokens
        if success:
            agent.success_count += 1
            self._stats.files_created += files_created
            self._stats.files_modified += files_modified
        else:
            agent.error_count += 1
            self._stats.errors_encountered += 1

    def record_checkpoint(self, state: str) -> None:
        MetricsCollector.record_checkpoint(state)
        if self._stats is not None:
            self._stats.checkpoints_created += 1

    def record_error(self, error_type: str, operation: str, metric: bool = True) -> None:
        """Record an engine-level error not tied to an executor call.

        Pass ``metric=False`` when the error is also routed through
        ``ErrorRecovery.handle_error``, which records the metric itself.
        """
        if metric:
            MetricsCollector.record_error(error_type, operation)
        if self._stats is not None:
            self._stats.errors_encountered += 1

    def finalize(self) -> bool:
        """Stamp end time and duration. Returns False if already finalized."""
        if self._stats is None or self._finalized:
            return False
        self._stats.end_time = utc_now()
        self._stats.duration = (self._stats.end_time - self._stats.start_time).total_seconds()
        self._finalized = True
        log.info(
            "stats_finalized",
            duration=round(self._stats.duration, 3),
            tokens=self._stats.total_tokens_used,
            errors=self._stats.errors_encountered,
            checkpoints=self._stats.checkpoints_created,
        )
        return True

    def snapshot(self) -> WorkflowStats | None:
        """Deep copy of the current stats, or None."""
        return self._stats.model_copy(deep=True) if self._stats else None
