"""Configuration for the workflow engine.

Settings are Pydantic models loaded from YAML (with ``${VAR}`` interpolation)
and overridable through ``AI_DEV_TEAM_`` environment variables.

Example:
    >>> from ai_dev_team.config import DevTeamSettings
    >>> settings = DevTeamSettings.from_yaml("ai-dev-team.yaml")
    >>> settings.workflow.max_iterations
    50
"""

from ai_dev_team.config.settings import (
    AgentConfig,
    AgentsConfig,
    DevTeamSettings,
    LLMConfig,
    RecoveryConfig,
    WorkflowConfig,
)

__all__ = [
    "AgentConfig",
    "AgentsConfig",
    "DevTeamSettings",
    "LLMConfig",
    "RecoveryConfig",
    "WorkflowConfig",
]
