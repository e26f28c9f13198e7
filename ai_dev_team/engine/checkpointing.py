"""
Checkpoint management for workflow recovery.

Every successful state execution appends one immutable ``Checkpoint`` to the
context. Checkpoints are the rollback audit trail; when an archive directory
is configured each one is also written as a JSON record that outlives resets.
"""

import asyncio
import json
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import aiofiles
import structlog

from ai_dev_team.engine.events import EventChannel
from ai_dev_team.engine.states import route_for
from ai_dev_team.engine.stats import StatsTracker
from ai_dev_team.engine.types import (
    AgentResult,
    Checkpoint,
    EventType,
    WorkflowContext,
    WorkflowEvent,
    utc_now,
)

log = structlog.get_logger(__name__)

UNKNOWN_AGENT = "Unknown Agent"


class CheckpointManager:
    """Record and query workflow checkpoints."""

    def __init__(
        self,
        stats: StatsTracker,
        events: EventChannel[WorkflowEvent] | None = None,
        archive_dir: str | Path | None = None,
        workflow_id: str = "default",
        display_name: Callable[[str], str | None] | None = None,
    ) -> None:
        self.stats = stats
        self.events = events
        self.workflow_id = workflow_id
        self.archive_dir = Path(archive_dir) if archive_dir else None
        if self.archive_dir:
            self.archive_dir.mkdir(parents=True, exist_ok=True)
        self._display_name = display_name
        self._lock = asyncio.Lock()

    def agent_name_for(self, context: WorkflowContext) -> str:
        """Identity of the executor routed for the context's current state."""
        route = route_for(context.state)
        return route.executor if route else UNKNOWN_AGENT

    def display_name_for(self, context: WorkflowContext) -> str | None:
        route = route_for(context.state)
        if route is None or self._display_name is None:
            return None
        return self._display_name(route.executor)

    async def create_checkpoint(self, context: WorkflowContext, result: AgentResult) -> Checkpoint:
        """Append a checkpoint for the state that just executed."""
        checkpoint = Checkpoint(
            state=context.state,
            files_created=tuple(result.files_created),
            files_modified=tuple(result.files_modified),
            description=result.message,
            agent_name=self.agent_name_for(context),
            agent_display_name=self.display_name_for(context),
        )
        context.checkpoints.append(checkpoint)
        index = len(context.checkpoints) - 1
        self.stats.record_checkpoint(str(checkpoint.state))

        if self.archive_dir:
            await self._archive(index, checkpoint)

        log.info(
            "checkpoint_created",
            state=str(checkpoint.state),
            index=index,
            agent=checkpoint.agent_name,
            files_created=len(checkpoint.files_created),
        )

        if self.events:
            self.events.publish(
                WorkflowEvent(
                    event_type=EventType.CHECKPOINT,
                    current_state=context.state,
                    message=f"Checkpoint created: {checkpoint.description}",
                    agent_name=checkpoint.agent_name,
                    data={"index": index},
                )
            )
        return checkpoint

    @staticmethod
    def latest(context: WorkflowContext) -> Checkpoint | None:
        return context.checkpoints[-1] if context.checkpoints else None

    @staticmethod
    def created_files_after(context: WorkflowContext, index: int) -> list[str]:
        """Files created by checkpoints strictly after ``index``."""
        files: list[str] = []
        for checkpoint in context.checkpoints[index + 1 :]:
            files.extend(checkpoint.files_created)
        return files

    async def _archive(self, index: int, checkpoint: Checkpoint) -> None:
        assert self.archive_dir is not None
        stamp = int(checkpoint.timestamp.timestamp() * 1000)
        path = self.archive_dir / f"{self.workflow_id}-{stamp}-{index:04d}.json"
        record: dict[str, Any] = {
            "workflow_id": self.workflow_id,
            "index": index,
            "created_at": checkpoint.timestamp.isoformat(),
            "checkpoint": checkpoint.model_dump(mode="json"),
        }
        async with self._lock:
            async with aiofiles.open(path, "w") as f:
                await f.write(json.dumps(record, indent=2))

    async def load_archive(self, workflow_id: str | None = None) -> list[Checkpoint]:
        """Load archived checkpoints for a workflow, oldest first."""
        if not self.archive_dir:
            return []
        workflow_id = workflow_id or self.workflow_id
        checkpoints: list[Checkpoint] = []
        for path in sorted(self.archive_dir.glob(f"{workflow_id}-*.json")):
            try:
                async with aiofiles.open(path) as f:
                    record = json.loads(await f.read())
                checkpoints.append(Checkpoint.model_validate(record["checkpoint"]))
            except (json.JSONDecodeError, KeyError, ValueError) as e:
                log.warning("invalid_checkpoint_file", file=str(path), error=str(e))
        return checkpoints

    async def cleanup_archive(self, max_age_days: int = 30) -> int:
        """
        Delete archived checkpoints older than max_age_days.
        Returns number of records deleted.
        """
        if not self.archive_dir:
            return 0
        cutoff = utc_now() - timedelta(days=max_age_days)
        deleted = 0

        for path in self.archive_dir.glob("*.json"):
            try:
                record = json.loads(path.read_text())
                created_at = datetime.fromisoformat(record["created_at"])
                if created_at < cutoff:
                    path.unlink()
                    deleted += 1
            except (json.JSONDecodeError, KeyError, ValueError) as e:
                log.warning("invalid_checkpoint_file", file=str(path), error=str(e))
                continue

        if deleted > 0:
            log.info("old_checkpoints_cleaned", count=deleted, max_age_days=max_age_days)

        return deleted
