"""Monitoring and observability for the workflow engine.

Key Components:
    - MetricsCollector: Prometheus counters, histograms and gauges for
      executor calls, token usage, state transitions, checkpoints, errors
      and recovery attempts.

Example:
    >>> from ai_dev_team.monitoring import MetricsCollector
    >>> MetricsCollector.record_execution("planner", "initial_plan", True, 4.2)
    >>> payload = MetricsCollector.get_metrics()
"""

from ai_dev_team.monitoring.metrics import MetricsCollector

__all__ = ["MetricsCollector"]
