"""
Error recovery policy for workflow runs.

Classifies failures into the remediations they allow (retry, rollback, skip,
or a suggested custom action) and implements the mechanics behind them:
bounded retries with exponential backoff, rollback to a checkpoint, file
backup and restore, and workflow integrity checks.

Every file path held by a checkpoint is resolved against the context's
workspace when it is relative.
"""

import json
import re
import random
import shutil
from collections.abc import Awaitable, Callable, Iterable
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

import aiofiles
import structlog

from ai_dev_team.engine.states import step_for
from ai_dev_team.engine.stats import StatsTracker
from ai_dev_team.engine.types import RecoveryAction, RecoveryOptions, WorkflowContext, utc_now
from ai_dev_team.exceptions import RetryExhaustedError
from ai_dev_team.monitoring.metrics import MetricsCollector
from ai_dev_team.utils import retry

log = structlog.get_logger(__name__)

T = TypeVar("T")

RETRYABLE_PATTERNS = (
    "timeout",
    "network",
    "econnreset",
    "connection reset",
    "rate limit",
    "temporarily unavailable",
)

DEFAULT_SKIPPABLE_OPERATIONS = (
    "web_testing",
    "enhancement_review",
    "review_project",
    "analyze_code",
    "documentation_update",
)

# Wording of RetryExhaustedError once it has been folded into a result message
EXHAUSTED_PATTERN = re.compile(r"failed after \d+ attempts")

CUSTOM_ACTIONS = (
    ("file not found", "recreate_missing_files"),
    ("permission denied", "check_file_permissions"),
    ("disk space", "clean_temporary_files"),
)


class ErrorType(str, Enum):
    """Types of errors that can occur during workflow execution."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    MISSING_FILE = "missing_file"
    PERMISSION = "permission"
    DISK_SPACE = "disk_space"
    UNKNOWN = "unknown"


def _message(error: BaseException | str) -> str:
    return error if isinstance(error, str) else str(error)


class ErrorRecovery:
    """Recovery policy shared by the engine and the CLI."""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_jitter: float = 1.0,
        skippable_operations: Iterable[str] = DEFAULT_SKIPPABLE_OPERATIONS,
        backup_suffix: str = ".backup",
        error_log: str | Path | None = None,
        stats: StatsTracker | None = None,
        sleep: retry.SleepFunc | None = None,
        jitter: retry.JitterFunc = random.uniform,
    ) -> None:
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_jitter = max_jitter
        self.skippable_operations = tuple(op.lower() for op in skippable_operations)
        self.backup_suffix = backup_suffix
        self.error_log = Path(error_log) if error_log else None
        self.stats = stats
        self._sleep = sleep
        self._jitter = jitter
        self._counters = {"total_errors": 0, "successful_retries": 0, "successful_rollbacks": 0}

    @classmethod
    def from_settings(cls, settings: Any, stats: StatsTracker | None = None) -> "ErrorRecovery":
        """Build the policy from a ``RecoverySettings`` section."""
        return cls(
            max_retries=settings.max_retries,
            base_delay=settings.base_delay,
            max_jitter=settings.max_jitter,
            skippable_operations=settings.skippable_operations,
            backup_suffix=settings.backup_suffix,
            error_log=settings.error_log,
            stats=stats,
        )

    # Classification

    @staticmethod
    def is_exhausted(error: BaseException | str) -> bool:
        """True if the failure already went through a full retry cycle."""
        if isinstance(error, RetryExhaustedError):
            return True
        return EXHAUSTED_PATTERN.search(_message(error)) is not None

    @classmethod
    def is_retryable(cls, error: BaseException | str) -> bool:
        if cls.is_exhausted(error):
            return False
        message = _message(error).lower()
        return any(pattern in message for pattern in RETRYABLE_PATTERNS)

    def is_skippable(self, operation: str) -> bool:
        operation = operation.lower()
        return any(op in operation for op in self.skippable_operations)

    @staticmethod
    def custom_action(error: BaseException | str) -> str | None:
        message = _message(error).lower()
        for pattern, action in CUSTOM_ACTIONS:
            if pattern in message:
                return action
        return None

    @classmethod
    def error_type(cls, error: BaseException | str) -> ErrorType:
        """Infer error type from exception or message."""
        message = _message(error).lower()
        if cls.is_exhausted(error):
            return ErrorType.PERMANENT
        if cls.is_retryable(message):
            return ErrorType.TRANSIENT
        if "file not found" in message:
            return ErrorType.MISSING_FILE
        if "permission denied" in message:
            return ErrorType.PERMISSION
        if "disk space" in message:
            return ErrorType.DISK_SPACE
        return ErrorType.UNKNOWN

    def classify(
        self, error: BaseException | str, context: WorkflowContext, operation: str
    ) -> RecoveryOptions:
        """Determine which remediations apply to a failure."""
        return RecoveryOptions(
            retry=self.is_retryable(error),
            retry_count=int(context.data.get("retry_count", 0)),
            max_retries=self.max_retries,
            rollback=len(context.checkpoints) > 0,
            skip=self.is_skippable(operation),
            custom_action=self.custom_action(error),
        )

    async def handle_error(
        self, error: BaseException | str, context: WorkflowContext, operation: str
    ) -> RecoveryOptions:
        """Classify a failure, count it and append it to the error log."""
        options = self.classify(error, context, operation)
        error_type = self.error_type(error)
        self._counters["total_errors"] += 1
        MetricsCollector.record_error(error_type.value, operation)

        log.error(
            "workflow_error",
            operation=operation,
            state=str(context.state),
            error=_message(error),
            error_type=error_type.value,
            retry=options.retry,
            rollback=options.rollback,
            skip=options.skip,
            custom_action=options.custom_action,
        )
        await self._log_error(error, context, operation, options)
        return options

    def available_actions(self, options: RecoveryOptions) -> list[RecoveryAction]:
        """Remediations a caller may choose from. ABORT is always offered."""
        actions: list[RecoveryAction] = []
        if options.retry and options.retry_count < options.max_retries:
            actions.append(RecoveryAction.RETRY)
        if options.rollback:
            actions.append(RecoveryAction.ROLLBACK)
        if options.skip:
            actions.append(RecoveryAction.SKIP)
        actions.append(RecoveryAction.ABORT)
        return actions

    async def _log_error(
        self,
        error: BaseException | str,
        context: WorkflowContext,
        operation: str,
        options: RecoveryOptions,
    ) -> None:
        if not self.error_log:
            return
        entry = {
            "timestamp": utc_now().isoformat(),
            "error": {"message": _message(error), "type": type(error).__name__},
            "operation": operation,
            "workflow_state": str(context.state),
            "current_step": context.current_step,
            "recovery_options": {
                "retry": options.retry,
                "retry_count": options.retry_count,
                "max_retries": options.max_retries,
                "rollback": options.rollback,
                "skip": options.skip,
                "custom_action": options.custom_action,
            },
        }
        try:
            self.error_log.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(self.error_log, "a") as f:
                await f.write(json.dumps(entry) + "\n")
        except OSError as e:
            log.warning("error_log_write_failed", path=str(self.error_log), error=str(e))

    # Retry

    async def retry_with_backoff(
        self,
        operation: Callable[[], Awaitable[T]],
        name: str,
        max_retries: int | None = None,
    ) -> T:
        """Run ``operation`` with bounded exponential-backoff retries.

        Raises:
            RetryExhaustedError: When every attempt failed.
        """
        attempts = 0

        async def attempt() -> T:
            nonlocal attempts
            attempts += 1
            return await operation()

        kwargs: dict[str, Any] = {}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        result = await retry.retry_with_backoff(
            attempt,
            name,
            max_retries=max_retries if max_retries is not None else self.max_retries,
            base_delay=self.base_delay,
            max_jitter=self.max_jitter,
            jitter=self._jitter,
            **kwargs,
        )
        if attempts > 1:
            self._counters["successful_retries"] += 1
            MetricsCollector.record_recovery_attempt("retry", True)
        return result

    # Rollback

    @staticmethod
    def _resolve(context: WorkflowContext, path: str) -> Path:
        candidate = Path(path)
        if candidate.is_absolute():
            return candidate
        return Path(context.workspace_path) / candidate

    async def rollback(self, context: WorkflowContext, checkpoint_index: int | None = None) -> bool:
        """Roll the context back to a checkpoint (the latest by default).

        Files created by later checkpoints are deleted; files that are
        already gone are ignored. Returns False if there is nothing to roll
        back to.
        """
        if not context.checkpoints:
            log.warning("rollback_no_checkpoints", state=str(context.state))
            MetricsCollector.record_recovery_attempt("rollback", False)
            return False

        index = len(context.checkpoints) - 1 if checkpoint_index is None else checkpoint_index
        if not 0 <= index < len(context.checkpoints):
            log.warning(
                "rollback_index_out_of_range",
                index=index,
                checkpoints=len(context.checkpoints),
            )
            MetricsCollector.record_recovery_attempt("rollback", False)
            return False

        checkpoint = context.checkpoints[index]
        log.info("rollback_started", index=index, state=str(checkpoint.state), description=checkpoint.description)

        for later in context.checkpoints[index + 1 :]:
            for file_path in later.files_created:
                path = self._resolve(context, file_path)
                try:
                    path.unlink(missing_ok=True)
                    log.debug("rollback_file_removed", path=str(path))
                except OSError as e:
                    log.warning("rollback_file_remove_failed", path=str(path), error=str(e))

        context.state = checkpoint.state
        context.current_step = step_for(checkpoint.state)
        context.last_error = None
        del context.checkpoints[index + 1 :]
        context.last_update = utc_now()

        self._counters["successful_rollbacks"] += 1
        MetricsCollector.record_recovery_attempt("rollback", True)
        log.info("rollback_completed", index=index, state=str(context.state))
        return True

    # Backup / restore

    async def backup(self, paths: Iterable[str | Path], suffix: str | None = None) -> list[Path]:
        """Copy each existing file to ``<path><suffix>``.

        Returns the backup paths that were written. Missing or unreadable
        files are skipped.
        """
        suffix = suffix or self.backup_suffix
        backups: list[Path] = []
        for source in map(Path, paths):
            if not source.is_file():
                continue
            target = source.with_name(source.name + suffix)
            try:
                shutil.copy2(source, target)
                backups.append(target)
            except OSError as e:
                log.warning("backup_failed", path=str(source), error=str(e))
        log.info("backup_created", count=len(backups))
        return backups

    async def restore(self, backup_paths: Iterable[str | Path], suffix: str | None = None) -> bool:
        """Copy each backup over its original and delete the backup.

        Returns True only if every existing backup was restored.
        """
        suffix = suffix or self.backup_suffix
        all_restored = True
        for backup in map(Path, backup_paths):
            if not backup.exists():
                continue
            if not backup.name.endswith(suffix):
                log.error("restore_unexpected_suffix", path=str(backup), suffix=suffix)
                all_restored = False
                continue
            original = backup.with_name(backup.name[: -len(suffix)])
            try:
                shutil.copy2(backup, original)
                backup.unlink()
            except OSError as e:
                log.error("restore_failed", path=str(backup), error=str(e))
                all_restored = False
        return all_restored

    # Integrity

    async def validate_integrity(self, context: WorkflowContext) -> bool:
        """Check that the project file and workspace are accessible.

        Missing checkpoint files are reported as warnings only.
        """
        if not Path(context.project_path).is_file():
            log.error("integrity_project_missing", path=context.project_path)
            return False
        if not Path(context.workspace_path).is_dir():
            log.error("integrity_workspace_inaccessible", path=context.workspace_path)
            return False

        for checkpoint in context.checkpoints:
            for file_path in checkpoint.files_created:
                if not self._resolve(context, file_path).exists():
                    log.warning("integrity_checkpoint_file_missing", path=file_path, state=str(checkpoint.state))
        return True

    def get_recovery_stats(self) -> dict[str, int]:
        return dict(self._counters)

    def reset(self) -> None:
        for key in self._counters:
            self._counters[key] = 0
