"""
Workflow orchestrator for the automated development pipeline.

This module provides the WorkflowOrchestrator class, which owns the workflow
state machine and drives executors through it. The orchestrator manages:

- The run loop: resolve state, dispatch, checkpoint, transition
- Cooperative cancellation (pause) and resumption
- Persistence of the workflow record after every transition
- Recovery of failed runs (retry, rollback, skip, abort)

Run Lifecycle:
    1. ``start`` builds a fresh context in ``INITIAL_PLANNING``
    2. Each iteration dispatches the executor mapped to the current state
       and checkpoints its result
    3. The executor's suggested next state becomes the new state
    4. The run ends in ``COMPLETE``, ``ERROR`` (executor failure or
       iteration cap) or ``PAUSED`` (cancellation)

Typical Workflow Flow:
    initial_planning -> core_development -> code_testing -> bug_fixing
    -> ready_for_enhancement -> enhancement_review -> enhancement_planning
    -> implementing_enhancement -> complete

Concurrency Model:
    One run at a time. The run-active flag is claimed before the first await
    so a second ``start`` fails without touching state. Cancellation is
    sampled once per iteration and once more when the run ends; it never
    interrupts an executor call.

Example:
    >>> orchestrator = WorkflowOrchestrator.from_settings(settings, agents)
    >>> await orchestrator.load()
    >>> ok = await orchestrator.start("project.md", "workspace")
"""

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import asdict
from enum import Enum
from pathlib import Path
from typing import Any

import structlog

from ai_dev_team.agents.base import AgentExecutor
from ai_dev_team.config.settings import DevTeamSettings
from ai_dev_team.engine.checkpointing import CheckpointManager
from ai_dev_team.engine.dispatch import AgentDispatcher
from ai_dev_team.engine.events import EventChannel
from ai_dev_team.engine.progress import ProgressTracker
from ai_dev_team.engine.recovery import ErrorRecovery
from ai_dev_team.engine.state_manager import StateManager
from ai_dev_team.engine.states import (
    TERMINAL_STATES,
    WorkflowState,
    describe,
    next_in_pipeline,
    route_for,
)
from ai_dev_team.engine.stats import StatsTracker
from ai_dev_team.engine.types import (
    EventType,
    ProgressInfo,
    RecoveryAction,
    WorkflowContext,
    WorkflowEvent,
    WorkflowStats,
    utc_now,
)
from ai_dev_team.exceptions import (
    ConcurrentRunError,
    PersistenceError,
    RollbackError,
    StateTransitionError,
)
from ai_dev_team.monitoring.metrics import MetricsCollector

log = structlog.get_logger(__name__)


class ResumeTarget(str, Enum):
    """Where a paused run continues."""

    LAST_CHECKPOINT = "last_checkpoint"
    PAUSED_STATE = "paused_state"


# States a persisted record can hold while no run is active
_RESTING_STATES = TERMINAL_STATES | {WorkflowState.IDLE, WorkflowState.PAUSED}


class WorkflowOrchestrator:
    """Drive executors through the workflow state machine.

    Attributes:
        state_changes: Channel of every state the workflow enters.
        progress: Channel of progress updates.
        events: Channel of lifecycle events.
        dispatcher: Executor registry and call router.
        checkpoints: Checkpoint manager.
        recovery: Error recovery policy.
        stats: Statistics tracker.
        progress_tracker: Progress/ETA calculator.
        state_manager: Persistence of the workflow record.
    """

    def __init__(
        self,
        agents: Mapping[str, AgentExecutor],
        state_manager: StateManager,
        recovery: ErrorRecovery | None = None,
        stats: StatsTracker | None = None,
        progress_tracker: ProgressTracker | None = None,
        workflow_id: str = "default",
        max_iterations: int = 50,
        total_steps: int = 10,
        step_delay: float = 0.1,
        resume_target: ResumeTarget | str = ResumeTarget.LAST_CHECKPOINT,
        checkpoint_archive: str | Path | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.state_changes: EventChannel[WorkflowState] = EventChannel("state_changes")
        self.progress: EventChannel[ProgressInfo] = EventChannel("progress")
        self.events: EventChannel[WorkflowEvent] = EventChannel("events")

        self.stats = stats or StatsTracker()
        self.recovery = recovery or ErrorRecovery(stats=self.stats)
        self.progress_tracker = progress_tracker or ProgressTracker()
        self.state_manager = state_manager
        self.dispatcher = AgentDispatcher(self.stats, self.events, agents)
        self.checkpoints = CheckpointManager(
            self.stats,
            self.events,
            archive_dir=checkpoint_archive,
            workflow_id=workflow_id,
            display_name=self.dispatcher.display_name,
        )

        self.workflow_id = workflow_id
        self.max_iterations = max_iterations
        self.total_steps = total_steps
        self.step_delay = step_delay
        self.resume_target = ResumeTarget(resume_target)
        self._sleep = sleep

        self._context: WorkflowContext | None = None
        self._running = False
        self._cancel_requested = False

    @classmethod
    def from_settings(
        cls, settings: DevTeamSettings, agents: Mapping[str, AgentExecutor]
    ) -> "WorkflowOrchestrator":
        """Build an orchestrator and its services from settings."""
        stats = StatsTracker()
        workflow = settings.workflow
        return cls(
            agents,
            StateManager(workflow.state_directory),
            recovery=ErrorRecovery.from_settings(settings.recovery, stats),
            stats=stats,
            workflow_id=workflow.workflow_id,
            max_iterations=workflow.max_iterations,
            total_steps=workflow.total_steps,
            step_delay=workflow.step_delay,
            resume_target=workflow.resume_target,
            checkpoint_archive=workflow.checkpoint_archive,
        )

    # Queries

    def get_status(self) -> WorkflowContext | None:
        """Snapshot of the current context, or None."""
        return self._context.snapshot() if self._context else None

    def get_stats(self) -> WorkflowStats | None:
        """Snapshot of the current run's stats, or None."""
        return self.stats.snapshot()

    def get_progress(self) -> ProgressInfo | None:
        return self.progress_tracker.current

    def is_running(self) -> bool:
        return self._running

    # Lifecycle

    async def load(self) -> WorkflowContext | None:
        """Restore the persisted workflow record.

        A record left in an executable state (the process stopped mid-run)
        is restored as ``PAUSED`` so it can be resumed.
        """
        if self._running:
            raise ConcurrentRunError("Cannot load while a workflow run is active")

        record = await self.state_manager.load(self.workflow_id)
        self._context = record.context
        self.stats.restore(record.stats)

        if self._context is None:
            log.info("workflow_record_empty", workflow_id=self.workflow_id)
            return None

        if self._context.state not in _RESTING_STATES:
            log.warning("interrupted_run_restored", state=str(self._context.state))
            self._context.data["paused_state"] = self._context.state.value
            self._set_state(self._context, WorkflowState.PAUSED)
            await self._persist()

        log.info(
            "workflow_restored",
            workflow_id=self.workflow_id,
            state=str(self._context.state),
            checkpoints=len(self._context.checkpoints),
        )
        self.state_changes.publish(self._context.state)
        return self.get_status()

    async def start(self, project_path: str | Path, workspace_path: str | Path) -> bool:
        """Start a new run from ``INITIAL_PLANNING``.

        Returns:
            True if the run reached ``COMPLETE``.

        Raises:
            ConcurrentRunError: If a run is already active. No state is
                changed.
        """
        if self._running:
            raise ConcurrentRunError("A workflow run is already active")
        self._running = True
        self._cancel_requested = False

        try:
            state = WorkflowState.INITIAL_PLANNING
            self._context = WorkflowContext(
                state=state,
                project_path=str(project_path),
                workspace_path=str(workspace_path),
                total_steps=self.total_steps,
                current_step_description=describe(state),
            )
            self.stats.start()
            self.progress_tracker.reset()

            log.info(
                "workflow_started",
                workflow_id=self.workflow_id,
                project=self._context.project_path,
                workspace=self._context.workspace_path,
            )
            await self._persist()
            self._publish_state(state, None, "Workflow started")
            return await self._run()
        finally:
            self._running = False

    def pause(self) -> bool:
        """Request cooperative cancellation of the active run.

        The run settles into ``PAUSED`` once the current step returns,
        whatever that step's outcome.
        Returns False if no run is active.
        """
        if not self._running:
            return False
        self._cancel_requested = True
        log.info("pause_requested", workflow_id=self.workflow_id)
        return True

    async def resume(self) -> bool:
        """Continue a paused run.

        Returns False (without changing anything) unless a context exists,
        it is ``PAUSED`` and no run is active.
        """
        context = self._context
        if context is None or context.state != WorkflowState.PAUSED or self._running:
            log.warning(
                "resume_rejected",
                state=str(context.state) if context else None,
                running=self._running,
            )
            return False

        target = self._resume_target(context)
        log.info("workflow_resuming", target=str(target), mode=self.resume_target.value)
        return await self._continue(target, "Workflow resumed")

    def _resume_target(self, context: WorkflowContext) -> WorkflowState:
        paused = context.data.get("paused_state")
        paused_state = WorkflowState(paused) if paused else None
        latest = self.checkpoints.latest(context)

        if self.resume_target == ResumeTarget.PAUSED_STATE and paused_state is not None:
            return paused_state
        if latest is not None:
            return latest.state
        return paused_state or WorkflowState.INITIAL_PLANNING

    async def reset(self) -> None:
        """Discard the context and stats and persist the empty record."""
        if self._running:
            raise ConcurrentRunError("Cannot reset while a workflow run is active")
        previous = self._context.state if self._context else None
        self._context = None
        self.stats.clear()
        self.progress_tracker.reset()
        self.recovery.reset()
        await self.state_manager.clear(self.workflow_id)

        log.info("workflow_reset", workflow_id=self.workflow_id)
        self.state_changes.publish(WorkflowState.IDLE)
        self.events.publish(
            WorkflowEvent(
                event_type=EventType.USER_ACTION,
                current_state=WorkflowState.IDLE,
                message="Workflow reset",
                previous_state=previous,
            )
        )

    def dispose(self) -> None:
        """Cancel any active run and close every event channel."""
        self.pause()
        self.state_changes.dispose()
        self.progress.dispose()
        self.events.dispose()

    # Recovery

    async def rollback(self, checkpoint_index: int | None = None) -> bool:
        """Roll the stored context back to a checkpoint and persist it.

        The workflow is left ``PAUSED`` at the checkpoint's state, so
        ``resume`` continues from there.
        """
        if self._running:
            raise ConcurrentRunError("Cannot roll back while a workflow run is active")
        context = self._context
        if context is None:
            log.warning("rollback_no_workflow")
            return False

        previous = context.state
        if not await self.recovery.rollback(context, checkpoint_index):
            return False

        restored = context.state
        context.data.pop("failed_state", None)
        context.data.pop("recovery_options", None)
        context.data["paused_state"] = restored.value
        self._set_state(context, WorkflowState.PAUSED)
        await self._persist()
        self._publish_state(WorkflowState.PAUSED, previous, f"Rolled back to {restored.value}")
        self._publish_event(
            EventType.USER_ACTION,
            f"Rollback to checkpoint {len(context.checkpoints) - 1}",
            previous_state=previous,
        )
        return True

    async def validate(self) -> bool:
        """Check that the stored workflow's project and workspace still exist."""
        if self._context is None:
            return False
        return await self.recovery.validate_integrity(self._context)

    async def recover(self, action: RecoveryAction | str, checkpoint_index: int | None = None) -> bool:
        """Apply a remediation to a failed run.

        RETRY re-runs the failed state, ROLLBACK rolls back and continues
        from the checkpoint's state, SKIP continues with the state after the
        failed one, ABORT leaves the run in ``ERROR``.

        Returns:
            True if the continued run reached ``COMPLETE``.

        Raises:
            StateTransitionError: If there is no failed run, or the chosen
                action does not apply to it.
            RollbackError: If ROLLBACK finds no checkpoint at the index.
            ConcurrentRunError: If a run is active.
        """
        action = RecoveryAction(action)
        if self._running:
            raise ConcurrentRunError("Cannot recover while a workflow run is active")
        context = self._context
        if context is None or context.state != WorkflowState.ERROR:
            raise StateTransitionError(
                "Recovery requires a failed workflow",
                state=str(context.state) if context else None,
            )

        log.info("recovery_requested", action=action.value, checkpoint_index=checkpoint_index)
        self._publish_event(EventType.USER_ACTION, f"Recovery action: {action.value}", action=action.value)

        if action == RecoveryAction.ABORT:
            context.data.pop("recovery_options", None)
            await self._persist()
            return False

        if action == RecoveryAction.ROLLBACK:
            if not await self.rollback(checkpoint_index):
                raise RollbackError("No checkpoint to roll back to", checkpoint_index)
            restored = WorkflowState(context.data["paused_state"])
            return await self._continue(restored, "Continuing after rollback")

        failed = self._failed_state(context)
        if action == RecoveryAction.RETRY:
            context.data["retry_count"] = int(context.data.get("retry_count", 0)) + 1
            return await self._continue(failed, f"Retrying {failed.value}")

        route = route_for(failed)
        if route is None or not self.recovery.is_skippable(route.action):
            raise StateTransitionError(f"State {failed.value} cannot be skipped", state=failed.value)
        target = next_in_pipeline(failed)
        log.info("state_skipped", skipped=str(failed), target=str(target))
        return await self._continue(target, f"Skipped {failed.value}")

    @staticmethod
    def _failed_state(context: WorkflowContext) -> WorkflowState:
        failed = context.data.get("failed_state")
        if not failed:
            raise StateTransitionError("No failed state recorded", state=context.state.value)
        state = WorkflowState(failed)
        if route_for(state) is None:
            raise StateTransitionError(f"State {state.value} cannot be re-run", state=state.value)
        return state

    # Run loop

    async def _continue(self, target: WorkflowState, message: str) -> bool:
        """Re-enter the run loop with the existing context.

        ``last_error`` is kept until the run completes or fails again.
        """
        if self._running:
            raise ConcurrentRunError("A workflow run is already active")
        self._running = True
        self._cancel_requested = False

        try:
            context = self._context
            assert context is not None
            previous = context.state
            context.data.pop("paused_state", None)
            context.data.pop("recovery_options", None)
            self._set_state(context, target)
            self.stats.resume(self.stats.stats)

            await self._persist()
            self._publish_state(target, previous, message)
            return await self._run()
        finally:
            self._running = False

    async def _run(self) -> bool:
        context = self._context
        assert context is not None

        MetricsCollector.set_active_runs(1)
        self.progress.publish(self.progress_tracker.begin(context))
        iterations = 0

        try:
            while context.state not in TERMINAL_STATES:
                if self._cancel_requested:
                    break
                if iterations >= self.max_iterations:
                    break
                iterations += 1

                await self._step(context)

                if context.state not in TERMINAL_STATES:
                    await self._sleep(self.step_delay)

            if not self._cancel_requested and context.state not in TERMINAL_STATES:
                message = f"Workflow exceeded maximum iterations ({self.max_iterations})"
                self.stats.record_error("iteration_cap", str(context.state), metric=False)
                await self._fail(context, message, context.state, "run_loop")
        except Exception as e:
            log.error("run_failed", state=str(context.state), error=str(e), exc_info=True)
            self.stats.record_error(type(e).__name__, str(context.state))
            if context.state != WorkflowState.ERROR:
                context.data["failed_state"] = context.state.value
            self._set_state(context, WorkflowState.ERROR)
            context.last_error = f"Unexpected error: {e}"
            self._publish_event(EventType.ERROR, context.last_error)
        finally:
            self.stats.finalize()
            MetricsCollector.set_active_runs(0)

        # A pause requested while the last step ran overrides that step's outcome
        cancelled = self._cancel_requested
        if cancelled:
            self._settle_paused(context)
        elif context.state == WorkflowState.COMPLETE:
            context.last_error = None

        MetricsCollector.record_run_outcome(context.state.value)
        persisted = True
        try:
            await self._persist()
        except PersistenceError as e:
            persisted = False
            log.error("workflow_persist_failed", workflow_id=self.workflow_id, error=e.message)
            self._publish_event(EventType.ERROR, f"Failed to persist workflow: {e.message}")

        success = persisted and context.state == WorkflowState.COMPLETE and not cancelled
        log.info(
            "workflow_finished",
            workflow_id=self.workflow_id,
            state=str(context.state),
            iterations=iterations,
            success=success,
        )
        return success

    async def _step(self, context: WorkflowContext) -> None:
        """Execute one iteration for the current state."""
        state = context.state
        route = route_for(state)
        if route is None:
            self.stats.record_error("unmapped_state", str(state), metric=False)
            await self._fail(context, f"No executor mapped for state: {state.value}", state, str(state))
            return

        result = await self.dispatcher.dispatch(route.executor, route.action, context)
        if not result.success:
            await self._fail(context, result.message, state, route.action)
            return

        if result.data:
            context.data.update(result.data)
        context.data.pop("retry_count", None)

        await self.checkpoints.create_checkpoint(context, result)

        if result.next_state is not None and result.next_state != state:
            self._set_state(context, result.next_state)
            await self._persist()
            self._publish_state(result.next_state, state, result.message)

        context.current_step += 1
        self.progress.publish(self.progress_tracker.update(context))

    async def _fail(
        self,
        context: WorkflowContext,
        message: str,
        failed_state: WorkflowState,
        operation: str,
    ) -> None:
        options = await self.recovery.handle_error(message, context, operation)
        context.data["failed_state"] = failed_state.value
        context.data["recovery_options"] = asdict(options)

        self._set_state(context, WorkflowState.ERROR)
        context.last_error = message
        await self._persist()
        self._publish_state(WorkflowState.ERROR, failed_state, message)
        self._publish_event(
            EventType.ERROR,
            message,
            previous_state=failed_state,
            operation=operation,
            actions=[a.value for a in self.recovery.available_actions(options)],
        )

    def _settle_paused(self, context: WorkflowContext) -> None:
        """Move a cancelled run to ``PAUSED``, keeping ``last_error``.

        A step that failed after the pause request is paused at the failed
        state, so resuming re-runs it.
        """
        previous = context.state
        paused = previous
        if previous == WorkflowState.ERROR:
            paused = WorkflowState(context.data.pop("failed_state", WorkflowState.INITIAL_PLANNING.value))
            context.data.pop("recovery_options", None)
        context.data["paused_state"] = paused.value
        self._set_state(context, WorkflowState.PAUSED)
        log.info("workflow_paused", paused_state=str(paused), last_error=context.last_error)
        self._publish_state(WorkflowState.PAUSED, previous, "Workflow paused")
        self._publish_event(EventType.USER_ACTION, "Workflow paused", previous_state=previous)

    def _set_state(self, context: WorkflowContext, state: WorkflowState) -> None:
        previous = context.state
        context.state = state
        context.current_step_description = describe(state)
        context.last_update = utc_now()
        if previous != state:
            MetricsCollector.record_transition(previous.value, state.value)
            log.info("state_transition", from_state=str(previous), to_state=str(state))

    # Publishing and persistence

    def _publish_state(self, state: WorkflowState, previous: WorkflowState | None, message: str) -> None:
        self.state_changes.publish(state)
        self._publish_event(EventType.STATE_CHANGE, message, previous_state=previous)

    def _publish_event(
        self,
        event_type: EventType,
        message: str,
        previous_state: WorkflowState | None = None,
        **data: Any,
    ) -> None:
        current = self._context.state if self._context else WorkflowState.IDLE
        self.events.publish(
            WorkflowEvent(
                event_type=event_type,
                current_state=current,
                message=message,
                previous_state=previous_state,
                data=data,
            )
        )

    async def _persist(self) -> None:
        await self.state_manager.save(self.workflow_id, self._context, self.stats.stats)
