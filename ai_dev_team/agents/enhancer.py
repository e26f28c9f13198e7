"""Enhancement review executor."""

from ai_dev_team.agents.base import CURRENT_REPORT, ENHANCEMENT_REPORT, BaseAgent
from ai_dev_team.engine.states import WorkflowState
from ai_dev_team.engine.types import AgentResult, WorkflowContext

SYSTEM = "You are a product engineer reviewing a finished project for worthwhile improvements."

REVIEW_PROMPT = """Review this project status report and propose enhancements.

STATUS REPORT:
{report}

For each enhancement give the motivation, the user-visible change, the
affected files and a rough effort estimate. Order them by value.
"""


class EnhancementAgent(BaseAgent):
    name = "Enhancement Agent"
    description = "Reviews the project and proposes enhancements"
    actions = {"review_project": "review_project"}

    async def review_project(self, context: WorkflowContext) -> AgentResult:
        report = await self.read_workspace_file(context, CURRENT_REPORT)
        response = await self.ask(REVIEW_PROMPT.format(report=report), SYSTEM)
        created = await self.write_workspace_file(context, ENHANCEMENT_REPORT, response.content)
        return self.success_result(
            "Created enhancement report",
            files_created=[ENHANCEMENT_REPORT] if created else [],
            files_modified=[] if created else [ENHANCEMENT_REPORT],
            next_state=WorkflowState.ENHANCEMENT_PLANNING,
            tokens_used=response.tokens_used,
        )
