"""Task executors for the development workflow.

Key Components:
    - AgentExecutor: The capability contract the engine dispatches to
    - BaseAgent: Default behaviour, model access and workspace file helpers
    - PlannerAgent, DeveloperAgent, CodeTesterAgent, EnhancementAgent
    - build_default_agents: Create the enabled executors from settings

Example:
    >>> provider = OpenAICompatibleProvider.from_settings(settings.llm)
    >>> agents = build_default_agents(settings, provider)
    >>> sorted(agents)
    ['developer', 'enhancer', 'planner', 'tester']
"""

from typing import TYPE_CHECKING

from ai_dev_team.agents.base import AgentExecutor, BaseAgent
from ai_dev_team.agents.developer import DeveloperAgent
from ai_dev_team.agents.enhancer import EnhancementAgent
from ai_dev_team.agents.planner import PlannerAgent
from ai_dev_team.agents.tester import CodeTesterAgent
from ai_dev_team.engine.states import DEVELOPER, ENHANCER, PLANNER, TESTER
from ai_dev_team.providers.base import LLMProvider

if TYPE_CHECKING:
    from ai_dev_team.config.settings import DevTeamSettings

AGENT_CLASSES: dict[str, type[BaseAgent]] = {
    PLANNER: PlannerAgent,
    DEVELOPER: DeveloperAgent,
    TESTER: CodeTesterAgent,
    ENHANCER: EnhancementAgent,
}


def build_default_agents(settings: "DevTeamSettings", provider: LLMProvider) -> dict[str, AgentExecutor]:
    """Instantiate every executor enabled in ``settings.agents``."""
    agents: dict[str, AgentExecutor] = {}
    for executor_id, agent_class in AGENT_CLASSES.items():
        config = getattr(settings.agents, executor_id)
        if not config.enabled:
            continue
        agents[executor_id] = agent_class(provider, max_tokens=config.max_tokens)
    return agents


__all__ = [
    "AGENT_CLASSES",
    "AgentExecutor",
    "BaseAgent",
    "CodeTesterAgent",
    "DeveloperAgent",
    "EnhancementAgent",
    "PlannerAgent",
    "build_default_agents",
]
