"""Routing of executor calls.

``AgentDispatcher`` owns the registry of executors keyed by identity
(``planner``, ``developer``, ...). A dispatch never raises: unknown
executors, ineligible contexts and executor exceptions all come back as a
failed ``AgentResult``.
"""

import time
from collections.abc import Mapping

import structlog

from ai_dev_team.agents.base import AgentExecutor
from ai_dev_team.engine.events import EventChannel
from ai_dev_team.engine.stats import StatsTracker
from ai_dev_team.engine.types import AgentResult, EventType, WorkflowContext, WorkflowEvent

log = structlog.get_logger(__name__)


class AgentDispatcher:
    """Dispatch ``(executor, action)`` calls to registered executors."""

    def __init__(
        self,
        stats: StatsTracker,
        events: EventChannel[WorkflowEvent] | None = None,
        executors: Mapping[str, AgentExecutor] | None = None,
    ) -> None:
        self.stats = stats
        self.events = events
        self._executors: dict[str, AgentExecutor] = dict(executors or {})

    def register(self, executor_id: str, executor: AgentExecutor) -> None:
        self._executors[executor_id] = executor
        log.debug("executor_registered", executor=executor_id, name=executor.name)

    def unregister(self, executor_id: str) -> AgentExecutor | None:
        return self._executors.pop(executor_id, None)

    def get(self, executor_id: str) -> AgentExecutor | None:
        return self._executors.get(executor_id)

    def display_name(self, executor_id: str) -> str | None:
        executor = self._executors.get(executor_id)
        return executor.name if executor else None

    @property
    def registered(self) -> list[str]:
        return sorted(self._executors)

    def _publish(self, event_type: EventType, context: WorkflowContext, message: str, agent: str, **data: object) -> None:
        if self.events:
            self.events.publish(
                WorkflowEvent(
                    event_type=event_type,
                    current_state=context.state,
                    message=message,
                    agent_name=agent,
                    data=dict(data),
                )
            )

    async def dispatch(self, executor_id: str, action: str, context: WorkflowContext) -> AgentResult:
        """Run ``action`` on the executor registered as ``executor_id``.

        The executor receives a deep copy of ``context``.
        """
        executor = self._executors.get(executor_id)
        if executor is None:
            log.error("executor_not_registered", executor=executor_id, action=action)
            return AgentResult(success=False, message=f"No executor registered for '{executor_id}'")

        snapshot = context.snapshot()
        if not executor.can_execute(snapshot):
            log.warning("executor_cannot_execute", executor=executor_id, action=action, state=str(context.state))
            return AgentResult(
                success=False,
                message=f"{executor.name} cannot execute '{action}' in the current context",
            )

        self._publish(EventType.AGENT_START, context, f"{executor.name} started {action}", executor.name, action=action)
        log.info("executor_started", executor=executor_id, action=action, state=str(context.state))

        started = time.monotonic()
        try:
            result = await executor.execute(snapshot, action)
        except Exception as e:
            duration = time.monotonic() - started
            log.error("executor_failed", executor=executor_id, action=action, error=str(e), exc_info=True)
            self.stats.record_execution(executor_id, action, False, duration)
            self._publish(
                EventType.ERROR,
                context,
                f"{executor.name} failed: {e}",
                executor.name,
                action=action,
                error=str(e),
            )
            return AgentResult(success=False, message=f"{executor.name} failed: {e}", duration=duration)

        result.duration = time.monotonic() - started

        self.stats.record_execution(
            executor_id,
            action,
            result.success,
            result.duration,
            tokens=result.tokens_used,
            files_created=len(result.files_created),
            files_modified=len(result.files_modified),
        )
        log.info(
            "executor_completed",
            executor=executor_id,
            action=action,
            success=result.success,
            duration=round(result.duration, 3),
            tokens=result.tokens_used,
        )
        self._publish(
            EventType.AGENT_COMPLETE,
            context,
            result.message,
            executor.name,
            action=action,
            success=result.success,
        )
        return result
