"""Workflow orchestration engine.

This package provides the state machine that sequences task executors
through the development pipeline, together with the services it is built
from.

Key Components:
    - WorkflowOrchestrator: Run loop, cancellation, resume and recovery
      (``ai_dev_team.engine.orchestrator``)
    - StateManager: Atomic JSON persistence of the workflow record
    - CheckpointManager: Append-only log of completed steps
    - ErrorRecovery: Classification, retry, rollback, backup and integrity
    - AgentDispatcher: Routing of calls to registered executors
    - StatsTracker / ProgressTracker: Run metrics and progress reporting
    - EventChannel: Fan-out publish/subscribe

Only the leaf modules are re-exported here; import the services from their
modules.

Example:
    >>> from ai_dev_team.engine import WorkflowState, describe
    >>> describe(WorkflowState.BUG_FIXING)
    'Fixing identified issues'
"""

from ai_dev_team.engine.states import STATE_TABLE, WorkflowState, describe, route_for, step_for
from ai_dev_team.engine.types import (
    AgentResult,
    Checkpoint,
    EventType,
    ProgressInfo,
    RecoveryAction,
    RecoveryOptions,
    WorkflowContext,
    WorkflowEvent,
    WorkflowStats,
)

__all__ = [
    "STATE_TABLE",
    "AgentResult",
    "Checkpoint",
    "EventType",
    "ProgressInfo",
    "RecoveryAction",
    "RecoveryOptions",
    "WorkflowContext",
    "WorkflowEvent",
    "WorkflowState",
    "WorkflowStats",
    "describe",
    "route_for",
    "step_for",
]
