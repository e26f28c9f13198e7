"""Workflow states and the static table that describes them.

Every property of a state that the engine needs (its canonical step number,
its human-readable description, and the executor route that handles it) lives
in ``STATE_TABLE``. Progress reporting, rollback, checkpoint attribution and
dispatch all consult this one table, so adding a ``WorkflowState`` member
without a table row fails at import time.

Example:
    >>> from ai_dev_team.engine.states import WorkflowState, route_for, step_for
    >>> route_for(WorkflowState.CODE_TESTING)
    ExecutorRoute(executor='tester', action='analyze_code')
    >>> step_for(WorkflowState.COMPLETE)
    10
"""

from enum import Enum
from typing import NamedTuple


class WorkflowState(str, Enum):
    """States of the automated development workflow.

    ``COMPLETE`` and ``ERROR`` end a run. ``PAUSED`` ends a run but can be
    resumed into a new one.
    """

    IDLE = "idle"
    INITIAL_PLANNING = "initial_planning"
    CORE_DEVELOPMENT = "core_development"
    CODE_TESTING = "code_testing"
    BUG_FIXING = "bug_fixing"
    READY_FOR_ENHANCEMENT = "ready_for_enhancement"
    ENHANCEMENT_REVIEW = "enhancement_review"
    ENHANCEMENT_PLANNING = "enhancement_planning"
    IMPLEMENTING_ENHANCEMENT = "implementing_enhancement"
    COMPLETE = "complete"
    ERROR = "error"
    PAUSED = "paused"

    def __str__(self) -> str:
        return self.value


class ExecutorRoute(NamedTuple):
    """Executor identity and action that handle a state."""

    executor: str
    action: str


class StateInfo(NamedTuple):
    """Static properties of a workflow state."""

    step: int
    description: str
    route: ExecutorRoute | None = None


# Executor identities used for routing and stats
PLANNER = "planner"
DEVELOPER = "developer"
TESTER = "tester"
ENHANCER = "enhancer"

STATE_TABLE: dict[WorkflowState, StateInfo] = {
    WorkflowState.IDLE: StateInfo(0, "Ready to start"),
    WorkflowState.INITIAL_PLANNING: StateInfo(
        1, "Creating development plan", ExecutorRoute(PLANNER, "initial_plan")
    ),
    WorkflowState.CORE_DEVELOPMENT: StateInfo(
        2, "Implementing core features", ExecutorRoute(DEVELOPER, "implement_features")
    ),
    WorkflowState.CODE_TESTING: StateInfo(
        3, "Testing and analyzing code", ExecutorRoute(TESTER, "analyze_code")
    ),
    WorkflowState.BUG_FIXING: StateInfo(
        4, "Fixing identified issues", ExecutorRoute(DEVELOPER, "fix_bugs")
    ),
    WorkflowState.READY_FOR_ENHANCEMENT: StateInfo(
        5, "Preparing for enhancements", ExecutorRoute(PLANNER, "prepare_enhancement")
    ),
    WorkflowState.ENHANCEMENT_REVIEW: StateInfo(
        6, "Reviewing for improvements", ExecutorRoute(ENHANCER, "review_project")
    ),
    WorkflowState.ENHANCEMENT_PLANNING: StateInfo(
        7, "Planning enhancements", ExecutorRoute(PLANNER, "plan_enhancement")
    ),
    WorkflowState.IMPLEMENTING_ENHANCEMENT: StateInfo(
        8, "Implementing enhancements", ExecutorRoute(DEVELOPER, "implement_enhancement")
    ),
    WorkflowState.COMPLETE: StateInfo(10, "Workflow complete"),
    WorkflowState.ERROR: StateInfo(-1, "Error occurred"),
    WorkflowState.PAUSED: StateInfo(-1, "Workflow paused"),
}

_missing = set(WorkflowState) - set(STATE_TABLE)
if _missing:
    raise RuntimeError(f"STATE_TABLE is missing states: {sorted(s.value for s in _missing)}")

TERMINAL_STATES = frozenset({WorkflowState.COMPLETE, WorkflowState.ERROR})

# Executable states in canonical step order
PIPELINE: tuple[WorkflowState, ...] = tuple(
    sorted(
        (state for state, info in STATE_TABLE.items() if info.route is not None),
        key=lambda state: STATE_TABLE[state].step,
    )
)


def step_for(state: WorkflowState) -> int:
    """Return the canonical step number for a state."""
    return STATE_TABLE[state].step


def describe(state: WorkflowState) -> str:
    """Return the human-readable description of a state."""
    return STATE_TABLE[state].description


def route_for(state: WorkflowState) -> ExecutorRoute | None:
    """Return the executor route for a state, or None if it has none."""
    return STATE_TABLE[state].route


def next_in_pipeline(state: WorkflowState) -> WorkflowState:
    """Return the state that follows ``state`` in canonical step order.

    The last executable state is followed by ``COMPLETE``.

    Raises:
        ValueError: If ``state`` has no executor route.
    """
    if state not in PIPELINE:
        raise ValueError(f"State {state.value} is not part of the pipeline")
    index = PIPELINE.index(state)
    if index + 1 < len(PIPELINE):
        return PIPELINE[index + 1]
    return WorkflowState.COMPLETE
