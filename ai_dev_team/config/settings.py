"""
Configuration system using Pydantic for type-safe settings management.

This module provides configuration classes for the workflow engine, the
recovery policy, the language-model endpoint and the individual executors.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from ai_dev_team.exceptions import ConfigurationError


class WorkflowConfig(BaseModel):
    """Workflow engine configuration."""

    state_directory: str = Field(default=".ai-dev-team/state", description="Directory for workflow records")
    workflow_id: str = Field(default="default", description="Identifier of the persisted workflow record")
    max_iterations: int = Field(default=50, ge=1, description="Maximum loop iterations per run")
    total_steps: int = Field(default=10, ge=1, description="Step estimate used for progress reporting")
    step_delay: float = Field(default=0.1, ge=0.0, description="Pause between loop iterations, in seconds")
    resume_target: Literal["last_checkpoint", "paused_state"] = Field(
        default="last_checkpoint",
        description="State a paused run resumes from",
    )
    checkpoint_archive: str | None = Field(
        default=None, description="Directory for JSON checkpoint audit records (disabled when unset)"
    )


class RecoveryConfig(BaseModel):
    """Error recovery policy configuration."""

    max_retries: int = Field(default=3, ge=1, description="Attempts per retried operation")
    base_delay: float = Field(default=1.0, ge=0.0, description="Backoff wait after the first failure, in seconds")
    max_jitter: float = Field(default=1.0, ge=0.0, description="Upper bound of random extra wait, in seconds")
    skippable_operations: list[str] = Field(
        default_factory=lambda: [
            "web_testing",
            "enhancement_review",
            "review_project",
            "analyze_code",
            "documentation_update",
        ],
        description="Operations that may be skipped after a failure",
    )
    backup_suffix: str = Field(default=".backup", description="Suffix appended to backup copies")
    error_log: str | None = Field(
        default=".ai-dev-team/workflow-errors.log", description="JSON-lines error log (disabled when unset)"
    )


class LLMConfig(BaseModel):
    """OpenAI-compatible language-model endpoint."""

    base_url: str = Field(default="http://localhost:11434/v1", description="API base URL")
    model: str = Field(default="qwen2.5-coder:14b", description="Model identifier")
    api_key: SecretStr | None = Field(default=None, description="Bearer token, if the endpoint needs one")
    timeout: float = Field(default=300.0, gt=0, description="Request timeout, in seconds")
    temperature: float = Field(default=0.2, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: int = Field(default=4096, ge=1, description="Maximum tokens per response")


class AgentConfig(BaseModel):
    """Per-executor configuration."""

    enabled: bool = Field(default=True, description="Register this executor with the engine")
    max_tokens: int | None = Field(default=None, ge=1, description="Override of llm.max_tokens")


class AgentsConfig(BaseModel):
    """Configuration of the four built-in executors."""

    planner: AgentConfig = Field(default_factory=AgentConfig)
    developer: AgentConfig = Field(default_factory=AgentConfig)
    tester: AgentConfig = Field(default_factory=AgentConfig)
    enhancer: AgentConfig = Field(default_factory=AgentConfig)


class DevTeamSettings(BaseSettings):
    """Main settings.

    Combines all configuration sections and provides loading from YAML files
    with environment variable interpolation. Environment variables such as
    ``AI_DEV_TEAM_WORKFLOW__MAX_ITERATIONS=20`` override defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="AI_DEV_TEAM_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)
    recovery: RecoveryConfig = Field(default_factory=RecoveryConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    agents: AgentsConfig = Field(default_factory=AgentsConfig)
    log_level: str = Field(default="INFO", description="Minimum log level")

    @property
    def state_dir(self) -> Path:
        """Get state directory as Path object."""
        return Path(self.workflow.state_directory)

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> DevTeamSettings:
        """Load settings from YAML file with environment variable interpolation.

        Supports ${VAR_NAME} and ${VAR_NAME:-default} substitution.

        Raises:
            ConfigurationError: If the file is missing, unreadable, not valid
                YAML, or fails validation
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            yaml_content = config_file.read_text()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except Exception as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        YAML comment lines are left unchanged.

        Raises:
            ValueError: If a required environment variable is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            if default_value is not None:
                return default_value
            raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))
