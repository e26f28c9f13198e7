"""Pytest configuration and shared fixtures."""

from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

from ai_dev_team.config.settings import DevTeamSettings
from ai_dev_team.engine.orchestrator import WorkflowOrchestrator
from ai_dev_team.engine.recovery import ErrorRecovery
from ai_dev_team.engine.state_manager import StateManager
from ai_dev_team.engine.states import (
    DEVELOPER,
    ENHANCER,
    PLANNER,
    TESTER,
    WorkflowState,
    next_in_pipeline,
)
from ai_dev_team.engine.stats import StatsTracker
from ai_dev_team.engine.types import AgentResult, Checkpoint, WorkflowContext

Handler = Callable[[WorkflowContext, str], Awaitable[AgentResult]]


class ScriptedExecutor:
    """Executor double that replays queued results.

    With nothing queued it succeeds and suggests the next pipeline state.
    A ``handler`` takes precedence over queued results.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self.description = f"Scripted {name}"
        self.calls: list[tuple[WorkflowState, str]] = []
        self.results: list[AgentResult] = []
        self.handler: Handler | None = None

    def can_execute(self, context: WorkflowContext) -> bool:
        return bool(context.project_path) and bool(context.workspace_path)

    def estimate_tokens(self, context: WorkflowContext, action: str) -> int:
        return 1000

    async def execute(self, context: WorkflowContext, action: str, **kwargs: Any) -> AgentResult:
        self.calls.append((context.state, action))
        if self.handler is not None:
            return await self.handler(context, action)
        if self.results:
            return self.results.pop(0)
        return AgentResult(
            success=True,
            message=f"{action} done",
            next_state=next_in_pipeline(context.state),
            tokens_used=10,
        )


@pytest.fixture
def temp_state_dir(tmp_path: Path) -> Path:
    """Temporary state directory."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def state_manager(temp_state_dir: Path) -> StateManager:
    """StateManager instance with temp directory."""
    return StateManager(str(temp_state_dir))


@pytest.fixture
def project_file(tmp_path: Path) -> Path:
    """Project description file."""
    path = tmp_path / "project.md"
    path.write_text("# Todo App\n\nA small todo list web application.\n")
    return path


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Empty workspace directory."""
    path = tmp_path / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def make_context(project_file: Path, workspace: Path) -> Callable[..., WorkflowContext]:
    """Factory for workflow contexts bound to the temp project and workspace."""

    def factory(state: WorkflowState = WorkflowState.INITIAL_PLANNING, **kwargs: Any) -> WorkflowContext:
        return WorkflowContext(
            state=state,
            project_path=str(project_file),
            workspace_path=str(workspace),
            **kwargs,
        )

    return factory


@pytest.fixture
def sample_checkpoints() -> list[Checkpoint]:
    """Checkpoints for the first three pipeline steps."""
    return [
        Checkpoint(
            state=WorkflowState.INITIAL_PLANNING,
            files_created=("Dev_Checklist.md",),
            description="Created development checklist",
            agent_name="planner",
        ),
        Checkpoint(
            state=WorkflowState.CORE_DEVELOPMENT,
            files_created=("src/app.py", "src/models.py"),
            description="Implemented core features",
            agent_name="developer",
        ),
        Checkpoint(
            state=WorkflowState.CODE_TESTING,
            files_created=("Test_Report.md",),
            description="Code analysis complete",
            agent_name="tester",
        ),
    ]


@pytest.fixture
def executors() -> dict[str, ScriptedExecutor]:
    """Scripted executors for all four roles."""
    return {
        PLANNER: ScriptedExecutor("Project Manager Agent"),
        DEVELOPER: ScriptedExecutor("Developer Agent"),
        TESTER: ScriptedExecutor("Code Tester Agent"),
        ENHANCER: ScriptedExecutor("Enhancement Agent"),
    }


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Awaitable sleep that returns immediately."""
    return AsyncMock(return_value=None)


@pytest.fixture
def orchestrator(
    executors: dict[str, ScriptedExecutor],
    state_manager: StateManager,
    no_sleep: AsyncMock,
) -> WorkflowOrchestrator:
    """Orchestrator wired to scripted executors, without inter-step delay."""
    stats = StatsTracker()
    return WorkflowOrchestrator(
        executors,
        state_manager,
        recovery=ErrorRecovery(stats=stats, sleep=no_sleep, jitter=lambda a, b: 0.0),
        stats=stats,
        step_delay=0.0,
        sleep=no_sleep,
    )


@pytest.fixture
def mock_settings(tmp_path: Path) -> DevTeamSettings:
    """Settings that keep every file under the temp directory."""
    return DevTeamSettings(
        workflow={
            "state_directory": str(tmp_path / "state"),
            "step_delay": 0.0,
        },
        recovery={
            "base_delay": 0.0,
            "max_jitter": 0.0,
            "error_log": str(tmp_path / "errors.log"),
        },
        llm={"base_url": "http://llm.test/v1", "model": "test-model"},
    )
