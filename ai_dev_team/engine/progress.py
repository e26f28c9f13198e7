"""Progress and ETA reporting for workflow runs."""

import time
from collections.abc import Callable

from ai_dev_team.engine.states import describe
from ai_dev_team.engine.types import ProgressInfo, WorkflowContext

BAR_LENGTH = 20


class ProgressTracker:
    """Derive ``ProgressInfo`` values from the engine's context.

    The ETA extrapolates the average wall time per completed step over the
    steps that remain. It is None until a step has completed.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._started_at: float | None = None
        self._start_step = 0
        self._total_files = 0
        self._current: ProgressInfo | None = None

    @property
    def current(self) -> ProgressInfo | None:
        return self._current

    def begin(self, context: WorkflowContext, total_files: int = 0) -> ProgressInfo:
        """Start timing a run from the context's current step."""
        self._started_at = self._clock()
        self._start_step = context.current_step
        self._total_files = total_files
        return self.update(context)

    def update(self, context: WorkflowContext) -> ProgressInfo:
        total = max(context.total_steps, 1)
        step = context.current_step
        percentage = min(100, max(0, round(step / total * 100)))

        files = sum(len(cp.files_created) + len(cp.files_modified) for cp in context.checkpoints)

        self._current = ProgressInfo(
            current_step=step,
            total_steps=context.total_steps,
            percentage=percentage,
            current_operation=context.current_step_description or describe(context.state),
            estimated_time_remaining=self._estimate(step, total),
            files_processed=files,
            total_files=max(self._total_files, files),
        )
        return self._current

    def _estimate(self, step: int, total: int) -> float | None:
        done = step - self._start_step
        if self._started_at is None or done <= 0:
            return None
        elapsed = self._clock() - self._started_at
        remaining = max(total - step, 0)
        return elapsed / done * remaining

    def reset(self) -> None:
        self._started_at = None
        self._start_step = 0
        self._total_files = 0
        self._current = None

    def bar_text(self) -> str:
        """One-line progress bar, e.g. ``██████░░░░ 30% (3/10) - Testing``."""
        if self._current is None:
            return "Preparing..."
        info = self._current
        filled = round(info.percentage / 100 * BAR_LENGTH)
        bar = "█" * filled + "░" * (BAR_LENGTH - filled)
        return f"{bar} {info.percentage}% ({info.current_step}/{info.total_steps}) - {info.current_operation}"

    def report(self) -> str:
        """Multi-line progress report."""
        if self._current is None:
            return "No active progress tracking"
        info = self._current
        lines = [
            "Progress Report",
            f"Current Step: {info.current_step} of {info.total_steps}",
            f"Progress: {info.percentage}%",
            f"Current Operation: {info.current_operation}",
            f"Files Processed: {info.files_processed} of {info.total_files}",
        ]
        if info.estimated_time_remaining is not None:
            lines.append(f"Estimated Time Remaining: {info.estimated_time_remaining / 60:.1f} minutes")
        return "\n".join(lines)
