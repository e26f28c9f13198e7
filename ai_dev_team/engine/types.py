"""Data model for workflow runs.

Persisted structures (``WorkflowContext``, ``Checkpoint``, ``WorkflowStats``)
are Pydantic models so that a JSON round-trip reconstructs every timestamp as
a ``datetime``. Transient values exchanged inside a run (executor results,
recovery options, progress, events) are plain dataclasses.

Example:
    Restoring a context from its persisted form::

        data = context.model_dump(mode="json")
        restored = WorkflowContext.model_validate(data)
        assert restored.checkpoints[0].timestamp == context.checkpoints[0].timestamp
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ai_dev_team.engine.states import WorkflowState


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


class Checkpoint(BaseModel):
    """Immutable record of one completed workflow step.

    Checkpoints are the audit trail used for rollback: every file created by
    the step is listed so that rolling back past it can remove them.
    """

    model_config = ConfigDict(frozen=True)

    state: WorkflowState
    timestamp: datetime = Field(default_factory=utc_now)
    files_created: tuple[str, ...] = ()
    files_modified: tuple[str, ...] = ()
    description: str = ""
    agent_name: str = "Unknown Agent"
    agent_display_name: str | None = None


class WorkflowContext(BaseModel):
    """Current state, progress and history of one workflow run."""

    state: WorkflowState
    project_path: str
    workspace_path: str
    current_step: int = 0
    total_steps: int = 10
    current_step_description: str | None = None
    last_error: str | None = None
    checkpoints: list[Checkpoint] = Field(default_factory=list)
    data: dict[str, Any] = Field(default_factory=dict)
    start_time: datetime = Field(default_factory=utc_now)
    last_update: datetime = Field(default_factory=utc_now)

    def snapshot(self) -> "WorkflowContext":
        """Return a deep copy safe to hand to readers."""
        return self.model_copy(deep=True)


class AgentStats(BaseModel):
    """Accumulated statistics for one executor."""

    execution_count: int = 0
    total_tokens: int = 0
    total_duration: float = 0.0
    success_count: int = 0
    error_count: int = 0


class WorkflowStats(BaseModel):
    """Aggregate statistics for one workflow run.

    Durations are in seconds.
    """

    start_time: datetime = Field(default_factory=utc_now)
    end_time: datetime | None = None
    duration: float = 0.0
    total_tokens_used: int = 0
    files_created: int = 0
    files_modified: int = 0
    errors_encountered: int = 0
    checkpoints_created: int = 0
    agent_stats: dict[str, AgentStats] = Field(default_factory=dict)


@dataclass
class AgentResult:
    """Outcome of one executor call.

    ``next_state`` is a suggestion; the engine ignores it when ``success`` is
    False. ``duration`` is measured by the dispatcher, in seconds.
    """

    success: bool
    message: str
    files_created: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    next_state: WorkflowState | None = None
    data: dict[str, Any] = field(default_factory=dict)
    tokens_used: int | None = None
    duration: float | None = None


@dataclass
class RecoveryOptions:
    """Remediations available for a classified failure."""

    retry: bool
    retry_count: int
    max_retries: int
    rollback: bool
    skip: bool
    custom_action: str | None = None


class RecoveryAction(str, Enum):
    """Remediation chosen by the caller for a failed run."""

    RETRY = "retry"
    ROLLBACK = "rollback"
    SKIP = "skip"
    ABORT = "abort"


@dataclass
class ProgressInfo:
    """Progress of the current run.

    ``estimated_time_remaining`` is in seconds and is None until at least one
    step has completed.
    """

    current_step: int
    total_steps: int
    percentage: int
    current_operation: str
    estimated_time_remaining: float | None = None
    files_processed: int = 0
    total_files: int = 0


class EventType(str, Enum):
    """Kinds of lifecycle notifications published by the engine."""

    STATE_CHANGE = "state_change"
    AGENT_START = "agent_start"
    AGENT_COMPLETE = "agent_complete"
    ERROR = "error"
    CHECKPOINT = "checkpoint"
    USER_ACTION = "user_action"


@dataclass(frozen=True)
class WorkflowEvent:
    """Lifecycle notification delivered to event subscribers."""

    event_type: EventType
    current_state: WorkflowState
    message: str
    timestamp: datetime = field(default_factory=utc_now)
    previous_state: WorkflowState | None = None
    agent_name: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
