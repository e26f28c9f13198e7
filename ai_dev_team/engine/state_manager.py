"""
Atomic persistence of workflow records.

This module provides the StateManager class which stores the context and
statistics of a workflow run on disk and restores them with full type
fidelity. The state manager ensures data integrity through:

- Atomic file writes using temporary files and rename operations
- Per-workflow locking to prevent concurrent modification
- Snapshot semantics: the stored record never aliases live engine objects

Record Structure:
    Each workflow gets its own file named ``{workflow_id}.json``::

        {
            "workflow_id": "default",
            "saved_at": "2024-01-15T11:45:00+00:00",
            "context": {
                "state": "code_testing",
                "current_step": 3,
                "checkpoints": [{"state": "initial_planning", "timestamp": "..."}],
                ...
            },
            "stats": {"start_time": "...", "end_time": null, ...}
        }

    ``context`` and ``stats`` are ``null`` after a reset. Every timestamp is
    ISO-8601 and is parsed back into a ``datetime`` on load.

Transaction Support:
    The ``transaction()`` context manager provides atomic read-modify-write::

        async with state_manager.transaction("default") as record:
            record.context.data["note"] = "reviewed"
            # Saved atomically on context exit

Example:
    >>> manager = StateManager(".ai-dev-team/state")
    >>> await manager.save("default", context, stats)
    >>> record = await manager.load("default")
    >>> record.context.state
    <WorkflowState.CODE_TESTING: 'code_testing'>
"""

import asyncio
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiofiles
import structlog
from pydantic import ValidationError

from ai_dev_team.engine.types import WorkflowContext, WorkflowStats, utc_now
from ai_dev_team.exceptions import PersistenceError

log = structlog.get_logger(__name__)


@dataclass
class WorkflowRecord:
    """Persisted context and statistics of one workflow."""

    context: WorkflowContext | None = None
    stats: WorkflowStats | None = None


class StateManager:
    """Persist workflow records with atomic file operations.

    Attributes:
        state_dir: Directory where record files are stored.

    Thread Safety:
        Designed for single-threaded asyncio usage. Each workflow has its own
        lock; lock creation is guarded by a meta-lock.
    """

    def __init__(self, state_dir: str | Path) -> None:
        """Initialize the state manager with a storage directory.

        Creates the directory (and parents) if it does not exist.
        """
        self.state_dir = Path(state_dir)
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self._locks: dict[str, asyncio.Lock] = {}
        self._locks_lock = asyncio.Lock()

    async def _get_lock(self, workflow_id: str) -> asyncio.Lock:
        async with self._locks_lock:
            if workflow_id not in self._locks:
                self._locks[workflow_id] = asyncio.Lock()
            return self._locks[workflow_id]

    def path_for(self, workflow_id: str) -> Path:
        """Return the record file path for a workflow."""
        return self.state_dir / f"{workflow_id}.json"

    async def save(
        self,
        workflow_id: str,
        context: WorkflowContext | None,
        stats: WorkflowStats | None,
    ) -> None:
        """Atomically save a snapshot of ``context`` and ``stats``.

        Either value may be None, which is stored as ``null``.

        Raises:
            PersistenceError: If the record cannot be written.
        """
        lock = await self._get_lock(workflow_id)
        async with lock:
            await self._save_internal(workflow_id, WorkflowRecord(context, stats))

    async def load(self, workflow_id: str) -> WorkflowRecord:
        """Load the persisted record for a workflow.

        A workflow that was never saved yields an empty record.

        Raises:
            PersistenceError: If the file cannot be read or does not contain a
                valid record.
        """
        lock = await self._get_lock(workflow_id)
        async with lock:
            return await self._load_internal(workflow_id)

    async def clear(self, workflow_id: str) -> None:
        """Persist an empty record (no context, no stats)."""
        await self.save(workflow_id, None, None)
        log.info("workflow_record_cleared", workflow_id=workflow_id)

    async def delete(self, workflow_id: str) -> bool:
        """Remove the record file. Returns False if there was none."""
        lock = await self._get_lock(workflow_id)
        async with lock:
            path = self.path_for(workflow_id)
            if not path.exists():
                return False
            try:
                path.unlink()
            except OSError as e:
                raise PersistenceError(f"Failed to delete workflow record: {e}", workflow_id) from e
            log.info("workflow_record_deleted", workflow_id=workflow_id)
            return True

    @asynccontextmanager
    async def transaction(self, workflow_id: str) -> AsyncIterator[WorkflowRecord]:
        """Context manager for atomic record updates.

        The record is loaded on entry and saved on successful exit. If the
        body raises, nothing is saved and the exception propagates.

        Note:
            The lock is held for the entire duration of the context.
        """
        lock = await self._get_lock(workflow_id)
        async with lock:
            record = await self._load_internal(workflow_id)
            try:
                yield record
                await self._save_internal(workflow_id, record)
            except Exception:
                log.error("record_transaction_failed", workflow_id=workflow_id)
                raise

    async def _load_internal(self, workflow_id: str) -> WorkflowRecord:
        """Read a record without acquiring the lock. Caller MUST hold it."""
        path = self.path_for(workflow_id)
        if not path.exists():
            return WorkflowRecord()

        try:
            async with aiofiles.open(path) as f:
                content = await f.read()
            payload = json.loads(content)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Failed to read workflow record: {e}", workflow_id) from e

        if not isinstance(payload, dict):
            raise PersistenceError("Workflow record is not a JSON object", workflow_id)

        try:
            context_data = payload.get("context")
            stats_data = payload.get("stats")
            record = WorkflowRecord(
                context=WorkflowContext.model_validate(context_data) if context_data else None,
                stats=WorkflowStats.model_validate(stats_data) if stats_data else None,
            )
        except ValidationError as e:
            raise PersistenceError(f"Invalid workflow record: {e}", workflow_id) from e

        log.debug(
            "workflow_record_loaded",
            workflow_id=workflow_id,
            state=str(record.context.state) if record.context else None,
        )
        return record

    async def _save_internal(self, workflow_id: str, record: WorkflowRecord) -> None:
        """Write a record without acquiring the lock. Caller MUST hold it."""
        payload: dict[str, Any] = {
            "workflow_id": workflow_id,
            "saved_at": utc_now().isoformat(),
            "context": record.context.model_dump(mode="json") if record.context else None,
            "stats": record.stats.model_dump(mode="json") if record.stats else None,
        }
        try:
            await self._write_atomic(self.path_for(workflow_id), payload)
        except OSError as e:
            raise PersistenceError(f"Failed to write workflow record: {e}", workflow_id) from e

        log.debug(
            "workflow_record_saved",
            workflow_id=workflow_id,
            state=payload["context"]["state"] if payload["context"] else None,
        )

    async def _write_atomic(self, path: Path, payload: dict[str, Any]) -> None:
        """Write JSON via a temporary file and rename.

        The temporary file lives beside the target so the rename stays on
        one filesystem.
        """
        tmp_path = path.with_suffix(".tmp")

        async with aiofiles.open(tmp_path, "w") as f:
            await f.write(json.dumps(payload, indent=2))

        tmp_path.replace(path)
