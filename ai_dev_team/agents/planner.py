"""Planning executor: development checklists and status reports."""

from ai_dev_team.agents.base import (
    CHECKLIST,
    CURRENT_REPORT,
    ENHANCED_CHECKLIST,
    ENHANCEMENT_REPORT,
    BaseAgent,
)
from ai_dev_team.engine.states import WorkflowState
from ai_dev_team.engine.types import AgentResult, WorkflowContext
from ai_dev_team.exceptions import AgentError

SYSTEM = "You are a project manager for a software team. Write clear, actionable markdown."

INITIAL_PLAN_PROMPT = """Analyze this project description and create a development checklist.

PROJECT DESCRIPTION:
{project}

Write a markdown checklist with sections for project setup, core features,
user interface, testing and documentation. Each task must be specific, name
the files involved, be ordered by dependencies and start with "- [ ]".
"""

STATUS_REPORT_PROMPT = """Write a project status report for the enhancement reviewer.

ORIGINAL REQUIREMENTS:
{project}

DEVELOPMENT CHECKLIST:
{checklist}

Cover implemented features, project structure, key accomplishments, areas
that need enhancement and the overall status.
"""

ENHANCEMENT_PLAN_PROMPT = """Turn this enhancement report into a development checklist.

ENHANCEMENT REPORT:
{report}

List the tasks for each enhancement, the files to modify or create, the
dependencies between tasks and the tests each feature needs.
"""


class PlannerAgent(BaseAgent):
    """Plans the initial build and the enhancement round."""

    name = "Project Manager Agent"
    description = "Creates development plans, status reports and enhancement checklists"
    actions = {
        "initial_plan": "initial_plan",
        "prepare_enhancement": "prepare_enhancement",
        "plan_enhancement": "plan_enhancement",
    }

    async def initial_plan(self, context: WorkflowContext) -> AgentResult:
        project = await self.read_text(context.project_path)
        response = await self.ask(INITIAL_PLAN_PROMPT.format(project=project), SYSTEM)
        created = await self.write_workspace_file(context, CHECKLIST, response.content)
        return self.success_result(
            "Created development checklist",
            files_created=[CHECKLIST] if created else [],
            files_modified=[] if created else [CHECKLIST],
            next_state=WorkflowState.CORE_DEVELOPMENT,
            tokens_used=response.tokens_used,
        )

    async def prepare_enhancement(self, context: WorkflowContext) -> AgentResult:
        project = await self.read_text(context.project_path)
        try:
            checklist = await self.read_workspace_file(context, CHECKLIST)
        except AgentError:
            checklist = "(no checklist available)"
        response = await self.ask(STATUS_REPORT_PROMPT.format(project=project, checklist=checklist), SYSTEM)
        created = await self.write_workspace_file(context, CURRENT_REPORT, response.content)
        return self.success_result(
            "Created project status report for enhancement review",
            files_created=[CURRENT_REPORT] if created else [],
            files_modified=[] if created else [CURRENT_REPORT],
            next_state=WorkflowState.ENHANCEMENT_REVIEW,
            tokens_used=response.tokens_used,
        )

    async def plan_enhancement(self, context: WorkflowContext) -> AgentResult:
        report = await self.read_workspace_file(context, ENHANCEMENT_REPORT)
        response = await self.ask(ENHANCEMENT_PLAN_PROMPT.format(report=report), SYSTEM)
        created = await self.write_workspace_file(context, ENHANCED_CHECKLIST, response.content)
        return self.success_result(
            "Created enhancement checklist",
            files_created=[ENHANCED_CHECKLIST] if created else [],
            files_modified=[] if created else [ENHANCED_CHECKLIST],
            next_state=WorkflowState.IMPLEMENTING_ENHANCEMENT,
            tokens_used=response.tokens_used,
        )
