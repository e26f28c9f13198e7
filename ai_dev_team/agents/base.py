"""Capability contract and shared helpers for task executors.

Every executor satisfies ``AgentExecutor``: it has a name and description,
can say whether it is able to run against a context, runs an action and
returns an ``AgentResult``, and estimates its token cost. Executors never
mutate the context they are given; anything they want to hand to later steps
goes into ``AgentResult.data``.

``BaseAgent`` supplies the defaults (eligibility, token estimate, result
builders, action routing) plus workspace-confined async file helpers and the
model call.
"""

import re
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import aiofiles
import structlog

from ai_dev_team.engine.states import WorkflowState
from ai_dev_team.engine.types import AgentResult, WorkflowContext
from ai_dev_team.exceptions import AgentError, AiDevTeamError
from ai_dev_team.providers.base import LLMProvider, LLMRequest, LLMResponse

log = structlog.get_logger(__name__)

DEFAULT_TOKEN_ESTIMATE = 1000

# Documents exchanged between executors, relative to the workspace
CHECKLIST = "Dev_Checklist.md"
TEST_REPORT = "Test_Report.md"
CURRENT_REPORT = "Project_Current_Report.md"
ENHANCEMENT_REPORT = "Enhancement_Report.md"
ENHANCED_CHECKLIST = "Dev_Enhanced_Checklist.md"

_FILE_BLOCK = re.compile(
    r"^#{2,4}\s*FILE:\s*(?P<path>\S+)\s*\n```[\w+-]*\n(?P<content>.*?)^```",
    re.MULTILINE | re.DOTALL,
)


@runtime_checkable
class AgentExecutor(Protocol):
    """Interface every task executor exposes to the engine."""

    name: str
    description: str

    def can_execute(self, context: WorkflowContext) -> bool: ...

    async def execute(self, context: WorkflowContext, action: str, **kwargs: Any) -> AgentResult: ...

    def estimate_tokens(self, context: WorkflowContext, action: str) -> int: ...


class BaseAgent:
    """Default implementation of the executor contract.

    Subclasses list their actions in ``actions`` (action name to method
    name) and implement each as ``async def handler(context) -> AgentResult``.
    """

    name = "Base Agent"
    description = ""
    actions: dict[str, str] = {}

    def __init__(self, provider: LLMProvider, max_tokens: int | None = None) -> None:
        self.provider = provider
        self.max_tokens = max_tokens

    def can_execute(self, context: WorkflowContext) -> bool:
        return bool(context.project_path) and bool(context.workspace_path)

    def estimate_tokens(self, context: WorkflowContext, action: str) -> int:
        return DEFAULT_TOKEN_ESTIMATE

    async def execute(self, context: WorkflowContext, action: str, **kwargs: Any) -> AgentResult:
        method_name = self.actions.get(action)
        if method_name is None:
            return self.error_result(f"Unknown action: {action}")

        handler: Callable[[WorkflowContext], Awaitable[AgentResult]] = getattr(self, method_name)
        log.info("agent_action_started", agent=self.name, action=action)
        try:
            return await handler(context)
        except (AiDevTeamError, OSError) as e:
            log.error("agent_action_failed", agent=self.name, action=action, error=str(e))
            return self.error_result(f"{action} failed: {e}")

    # Results

    @staticmethod
    def success_result(
        message: str,
        files_created: list[str] | None = None,
        files_modified: list[str] | None = None,
        next_state: WorkflowState | None = None,
        tokens_used: int | None = None,
        data: dict[str, Any] | None = None,
    ) -> AgentResult:
        return AgentResult(
            success=True,
            message=message,
            files_created=files_created or [],
            files_modified=files_modified or [],
            next_state=next_state,
            tokens_used=tokens_used,
            data=data or {},
        )

    @staticmethod
    def error_result(message: str) -> AgentResult:
        return AgentResult(success=False, message=message)

    # Model

    async def ask(self, prompt: str, system: str | None = None) -> LLMResponse:
        """Send one prompt to the model."""
        return await self.provider.complete(LLMRequest(prompt=prompt, system=system, max_tokens=self.max_tokens))

    # Files

    @staticmethod
    def workspace_path(context: WorkflowContext, relative: str) -> Path:
        """Resolve ``relative`` inside the workspace.

        Raises:
            AgentError: If the path escapes the workspace.
        """
        root = Path(context.workspace_path).resolve()
        resolved = (root / relative).resolve()
        if not resolved.is_relative_to(root):
            raise AgentError(f"Path '{relative}' resolves outside the workspace")
        return resolved

    async def read_text(self, path: str | Path) -> str:
        path = Path(path)
        if not path.is_file():
            raise AgentError(f"File not found: {path}")
        async with aiofiles.open(path, encoding="utf-8") as f:
            return await f.read()

    async def read_workspace_file(self, context: WorkflowContext, relative: str) -> str:
        return await self.read_text(self.workspace_path(context, relative))

    async def write_workspace_file(self, context: WorkflowContext, relative: str, content: str) -> bool:
        """Write a file inside the workspace.

        Returns:
            True if the file was created, False if an existing file was
            overwritten.
        """
        path = self.workspace_path(context, relative)
        created = not path.exists()
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(content)
        log.debug("workspace_file_written", agent=self.name, path=relative, created=created)
        return created

    async def write_generated_files(
        self, context: WorkflowContext, output: str
    ) -> tuple[list[str], list[str]]:
        """Write every ``### FILE: path`` block of model output to the workspace.

        Returns:
            Workspace-relative paths of created and modified files.
        """
        created: list[str] = []
        modified: list[str] = []
        for match in _FILE_BLOCK.finditer(output):
            relative = match.group("path").strip("`'\"")
            if await self.write_workspace_file(context, relative, match.group("content")):
                created.append(relative)
            else:
                modified.append(relative)
        return created, modified
