"""Exceptions raised by the ai-dev-team workflow engine.

Every error the engine, the recovery policy and the executors raise derives
from ``AiDevTeamError`` and keeps the caller-supplied text in ``message``;
context such as the workflow id or provider URL is appended to ``str(exc)``.

Exception Hierarchy:
    AiDevTeamError (base)
    ├── ConfigurationError
    ├── PersistenceError
    ├── WorkflowError
    │   ├── ConcurrentRunError
    │   ├── StateTransitionError
    │   └── RollbackError
    ├── RecoveryError
    │   └── RetryExhaustedError
    └── AgentError
        ├── AgentTimeoutError
        └── ProviderConnectionError

Example Usage:
    >>> from ai_dev_team.exceptions import RollbackError
    >>> if index >= len(context.checkpoints):
    ...     raise RollbackError(f"No checkpoint at index {index}", checkpoint_index=index)
"""


class AiDevTeamError(Exception):
    """Base exception for all ai-dev-team errors.

    All custom exceptions inherit from this base class, allowing callers
    to catch every engine-specific error with a single except clause.

    Attributes:
        message: Error text as passed by the caller
    """

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(AiDevTeamError):
    """Configuration-related errors.

    Raised while loading settings from YAML or the environment.

    Examples:
        - Settings file does not exist
        - Invalid YAML syntax
        - Missing environment variable referenced by the config
        - A value fails validation
    """

    pass


class PersistenceError(AiDevTeamError):
    """Persisted workflow state could not be read or written.

    Attributes:
        workflow_id: Identifier of the workflow record involved
    """

    def __init__(self, message: str, workflow_id: str | None = None) -> None:
        """Initialize exception.

        Args:
            message: Error message
            workflow_id: Identifier of the workflow record involved
        """
        self.workflow_id = workflow_id
        full_message = message if not workflow_id else f"{message} (workflow: {workflow_id})"
        super().__init__(full_message)
        self.message = message


class WorkflowError(AiDevTeamError):
    """Workflow execution errors.

    Raised when the engine itself cannot proceed (as opposed to an executor
    reporting a failed step, which is carried in an ``AgentResult``).

    Examples:
        - A run is already active
        - A state has no executor route
        - Rollback target does not exist
    """

    pass


class ConcurrentRunError(WorkflowError):
    """A run was requested while another run is still active.

    Raising this error must never mutate the active run's context.
    """

    pass


class StateTransitionError(WorkflowError):
    """The requested state change is not valid from the current state.

    Attributes:
        state: The state the workflow was in when the change was requested
    """

    def __init__(self, message: str, state: str | None = None) -> None:
        """Initialize exception.

        Args:
            message: Error message
            state: Current workflow state value
        """
        self.state = state
        full_message = message if not state else f"{message} (state: {state})"
        super().__init__(full_message)
        self.message = message


class RollbackError(WorkflowError):
    """Rollback could not be performed.

    Attributes:
        checkpoint_index: The checkpoint index that was requested
    """

    def __init__(self, message: str, checkpoint_index: int | None = None) -> None:
        """Initialize exception.

        Args:
            message: Error message
            checkpoint_index: Requested checkpoint index
        """
        self.checkpoint_index = checkpoint_index
        super().__init__(message)


class RecoveryError(AiDevTeamError):
    """Raised when a recovery attempt fails."""

    pass


class RetryExhaustedError(RecoveryError):
    """All retry attempts for an operation failed.

    Attributes:
        operation: Name of the operation that was retried
        attempts: Number of attempts made
        last_error: The exception raised by the final attempt
    """

    def __init__(self, operation: str, attempts: int, last_error: BaseException | None = None) -> None:
        """Initialize exception.

        Args:
            operation: Name of the operation that was retried
            attempts: Number of attempts made
            last_error: The exception raised by the final attempt
        """
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        detail = str(last_error) if last_error is not None else "unknown error"
        super().__init__(f"{operation} failed after {attempts} attempts. Last error: {detail}")


class AgentError(AiDevTeamError):
    """Base exception for task executor errors.

    Raised when an executor or the language-model service behind it fails.

    Attributes:
        message: Error text as passed by the caller
        agent_name: Name of the executor that failed
        action: Action that was being executed
    """

    def __init__(
        self,
        message: str,
        agent_name: str | None = None,
        action: str | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            agent_name: Name of the executor that failed
            action: Action being executed when the error occurred
        """
        self.agent_name = agent_name
        self.action = action

        parts = [message]
        if agent_name:
            parts.append(f"agent: {agent_name}")
        if action:
            parts.append(f"action: {action}")

        full_message = message if len(parts) == 1 else f"{message} ({', '.join(parts[1:])})"
        super().__init__(full_message)
        # str(exc) carries the context, message stays bare
        self.message = message


class AgentTimeoutError(AgentError):
    """Executor or language-model request took too long.

    Attributes:
        timeout_seconds: Limit in seconds that the request ran past
    """

    def __init__(
        self,
        message: str,
        timeout_seconds: float | None = None,
        agent_name: str | None = None,
        action: str | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            timeout_seconds: Limit in seconds that the request ran past
            agent_name: Executor that timed out
            action: Action being executed when the timeout occurred
        """
        self.timeout_seconds = timeout_seconds
        if timeout_seconds and "timeout" not in message.lower():
            message = f"{message} (timeout: {timeout_seconds}s)"
        super().__init__(message, agent_name=agent_name, action=action)


class ProviderConnectionError(AgentError):
    """Cannot reach the language-model provider.

    Attributes:
        provider_url: Base URL that was being contacted
        suggestion: Hint printed below the message
    """

    def __init__(
        self,
        message: str,
        provider_url: str | None = None,
        suggestion: str | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            provider_url: Base URL that was being contacted
            suggestion: Hint printed below the message
        """
        self.provider_url = provider_url
        self.suggestion = suggestion
        self.agent_name = None
        self.action = None

        full_message = message
        if provider_url:
            full_message = f"{message} (url: {provider_url})"
        if suggestion:
            full_message = f"{full_message}\nSuggestion: {suggestion}"

        AiDevTeamError.__init__(self, full_message)
        self.message = message
