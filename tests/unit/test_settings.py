"""Tests for configuration loading."""

import pytest

from ai_dev_team.config.settings import DevTeamSettings
from ai_dev_team.exceptions import ConfigurationError


@pytest.fixture
def write_config(tmp_path):
    def write(content: str):
        path = tmp_path / "ai-dev-team.yaml"
        path.write_text(content)
        return path

    return write


class TestDefaults:
    """Test default settings."""

    def test_defaults(self):
        """Test defaults match the documented engine behaviour."""
        settings = DevTeamSettings()

        assert settings.workflow.max_iterations == 50
        assert settings.workflow.total_steps == 10
        assert settings.workflow.step_delay == 0.1
        assert settings.workflow.resume_target == "last_checkpoint"
        assert settings.recovery.max_retries == 3
        assert settings.recovery.base_delay == 1.0
        assert "analyze_code" in settings.recovery.skippable_operations
        assert settings.agents.tester.enabled is True

    def test_env_override(self, monkeypatch):
        """Test nested settings can be overridden from the environment."""
        monkeypatch.setenv("AI_DEV_TEAM_WORKFLOW__MAX_ITERATIONS", "20")
        monkeypatch.setenv("AI_DEV_TEAM_LOG_LEVEL", "DEBUG")

        settings = DevTeamSettings()

        assert settings.workflow.max_iterations == 20
        assert settings.log_level == "DEBUG"


class TestFromYaml:
    """Test YAML loading."""

    def test_load(self, write_config):
        """Test a full configuration file."""
        path = write_config(
            """
workflow:
  state_directory: /tmp/state
  max_iterations: 30
  resume_target: paused_state
recovery:
  max_retries: 5
  skippable_operations: [analyze_code]
llm:
  base_url: http://localhost:8000/v1
  model: coder
agents:
  enhancer:
    enabled: false
"""
        )

        settings = DevTeamSettings.from_yaml(path)

        assert settings.workflow.max_iterations == 30
        assert settings.workflow.resume_target == "paused_state"
        assert settings.state_dir.as_posix() == "/tmp/state"
        assert settings.recovery.max_retries == 5
        assert settings.recovery.skippable_operations == ["analyze_code"]
        assert settings.llm.model == "coder"
        assert settings.agents.enhancer.enabled is False
        assert settings.agents.planner.enabled is True

    def test_env_interpolation(self, write_config, monkeypatch):
        """Test ${VAR} and ${VAR:-default} substitution."""
        monkeypatch.setenv("DEV_TEAM_API_KEY", "secret-token")
        monkeypatch.delenv("DEV_TEAM_MODEL", raising=False)
        path = write_config(
            """
llm:
  api_key: ${DEV_TEAM_API_KEY}
  model: ${DEV_TEAM_MODEL:-fallback-model}
"""
        )

        settings = DevTeamSettings.from_yaml(path)

        assert settings.llm.api_key.get_secret_value() == "secret-token"
        assert settings.llm.model == "fallback-model"

    def test_comment_lines_not_interpolated(self, write_config, monkeypatch):
        """Test placeholders in comments do not require variables."""
        monkeypatch.delenv("UNSET_IN_COMMENT", raising=False)
        path = write_config("# api_key: ${UNSET_IN_COMMENT}\nlog_level: WARNING\n")

        assert DevTeamSettings.from_yaml(path).log_level == "WARNING"

    def test_missing_env_var(self, write_config, monkeypatch):
        """Test an unset variable without default is an error."""
        monkeypatch.delenv("DEV_TEAM_MISSING", raising=False)
        path = write_config("llm:\n  api_key: ${DEV_TEAM_MISSING}\n")

        with pytest.raises(ConfigurationError, match="DEV_TEAM_MISSING"):
            DevTeamSettings.from_yaml(path)

    def test_missing_file(self, tmp_path):
        """Test a missing file is an error."""
        with pytest.raises(ConfigurationError, match="not found"):
            DevTeamSettings.from_yaml(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, write_config):
        """Test a syntax error is reported."""
        path = write_config("workflow: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            DevTeamSettings.from_yaml(path)

    def test_non_mapping(self, write_config):
        """Test a top-level list is rejected."""
        path = write_config("- one\n- two\n")

        with pytest.raises(ConfigurationError, match="YAML object"):
            DevTeamSettings.from_yaml(path)

    def test_empty_file_uses_defaults(self, write_config):
        """Test an empty file yields default settings."""
        settings = DevTeamSettings.from_yaml(write_config(""))

        assert settings.workflow.max_iterations == 50

    @pytest.mark.parametrize(
        "content",
        [
            "workflow:\n  max_iterations: 0\n",
            "workflow:\n  resume_target: somewhere\n",
            "recovery:\n  max_retries: -1\n",
        ],
    )
    def test_validation_errors(self, write_config, content):
        """Test out-of-range values are rejected."""
        with pytest.raises(ConfigurationError, match="Failed to validate"):
            DevTeamSettings.from_yaml(write_config(content))
