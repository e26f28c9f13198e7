"""Development executor: writes source files from checklists and reports."""

from ai_dev_team.agents.base import CHECKLIST, ENHANCED_CHECKLIST, TEST_REPORT, BaseAgent
from ai_dev_team.engine.states import WorkflowState
from ai_dev_team.engine.types import AgentResult, WorkflowContext

SYSTEM = """You are a senior software developer. Reply only with files, each in this form:

### FILE: relative/path.ext
```
<complete file content>
```
"""

IMPLEMENT_PROMPT = """Implement the tasks of this checklist.

CHECKLIST:
{checklist}
"""

FIX_PROMPT = """Fix the issues listed in this test report. Return every file you change in full.

TEST REPORT:
{report}
"""


class DeveloperAgent(BaseAgent):
    """Implements features, bug fixes and enhancements."""

    name = "Developer Agent"
    description = "Implements features, fixes bugs and applies enhancements"
    actions = {
        "implement_features": "implement_features",
        "fix_bugs": "fix_bugs",
        "implement_enhancement": "implement_enhancement",
    }

    async def _generate(
        self, context: WorkflowContext, prompt: str, message: str, next_state: WorkflowState
    ) -> AgentResult:
        response = await self.ask(prompt, SYSTEM)
        created, modified = await self.write_generated_files(context, response.content)
        if not created and not modified:
            return self.error_result("Model response contained no files")
        return self.success_result(
            f"{message} ({len(created)} created, {len(modified)} modified)",
            files_created=created,
            files_modified=modified,
            next_state=next_state,
            tokens_used=response.tokens_used,
        )

    async def implement_features(self, context: WorkflowContext) -> AgentResult:
        checklist = await self.read_workspace_file(context, CHECKLIST)
        return await self._generate(
            context,
            IMPLEMENT_PROMPT.format(checklist=checklist),
            "Implemented core features",
            WorkflowState.CODE_TESTING,
        )

    async def fix_bugs(self, context: WorkflowContext) -> AgentResult:
        report = await self.read_workspace_file(context, TEST_REPORT)
        return await self._generate(
            context,
            FIX_PROMPT.format(report=report),
            "Fixed reported issues",
            WorkflowState.CODE_TESTING,
        )

    async def implement_enhancement(self, context: WorkflowContext) -> AgentResult:
        checklist = await self.read_workspace_file(context, ENHANCED_CHECKLIST)
        return await self._generate(
            context,
            IMPLEMENT_PROMPT.format(checklist=checklist),
            "Implemented enhancements",
            WorkflowState.COMPLETE,
        )
