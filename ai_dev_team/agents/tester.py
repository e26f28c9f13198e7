"""Code analysis executor.

Asks the model to review each source file in the workspace, collects the
reported issues into ``Test_Report.md`` and routes the workflow to bug fixing
when any issue is blocking (critical or high severity).
"""

import json
from pathlib import Path
from typing import Any

import structlog

from ai_dev_team.agents.base import CHECKLIST, TEST_REPORT, BaseAgent
from ai_dev_team.engine.states import WorkflowState
from ai_dev_team.engine.types import AgentResult, WorkflowContext

log = structlog.get_logger(__name__)

SOURCE_SUFFIXES = {".py", ".js", ".ts", ".tsx", ".jsx", ".html", ".css", ".json", ".go", ".rs", ".java"}
IGNORED_DIRS = {".git", "node_modules", "__pycache__", ".venv", "venv", "dist", "build"}
BLOCKING_SEVERITIES = {"critical", "high"}

SYSTEM = "You are a code analysis expert. Reply with JSON only."

ANALYZE_PROMPT = """Analyze this file for errors, incomplete code and quality problems.

FILE: {name}
CONTENT:
{content}

Reply with JSON of this shape:
{{"issues": [{{"type": "error|warning|suggestion", "line": 0, "message": "...",
"severity": "critical|high|medium|low", "suggestion": "..."}}], "summary": "..."}}
"""


def _parse_analysis(content: str) -> dict[str, Any]:
    """Parse the model's JSON, tolerating a surrounding code fence."""
    text = content.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        text = text.rsplit("```", 1)[0]
    parsed = json.loads(text)
    if not isinstance(parsed, dict):
        raise ValueError("analysis is not a JSON object")
    return parsed


class CodeTesterAgent(BaseAgent):
    name = "Code Tester Agent"
    description = "Analyzes code for errors, completeness and quality"
    actions = {"analyze_code": "analyze_code"}

    def __init__(self, *args: Any, max_files: int = 25, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.max_files = max_files

    def find_source_files(self, workspace: Path) -> list[Path]:
        files = [
            path
            for path in sorted(workspace.rglob("*"))
            if path.is_file()
            and path.suffix in SOURCE_SUFFIXES
            and not IGNORED_DIRS.intersection(path.relative_to(workspace).parts)
        ]
        return files[: self.max_files]

    async def analyze_code(self, context: WorkflowContext) -> AgentResult:
        workspace = Path(context.workspace_path).resolve()
        files = self.find_source_files(workspace)
        log.info("code_analysis_started", files=len(files))

        issues: list[dict[str, Any]] = []
        tokens = 0
        for path in files:
            relative = str(path.relative_to(workspace))
            response = await self.ask(
                ANALYZE_PROMPT.format(name=relative, content=await self.read_text(path)), SYSTEM
            )
            tokens += response.tokens_used
            try:
                analysis = _parse_analysis(response.content)
                file_issues = analysis.get("issues") or []
            except ValueError:
                file_issues = [
                    {
                        "type": "warning",
                        "line": 0,
                        "message": f"Analysis response could not be parsed: {response.content[:200]}",
                        "severity": "medium",
                        "suggestion": "Review the file manually",
                    }
                ]
            for issue in file_issues:
                if isinstance(issue, dict):
                    issues.append({**issue, "file": relative})

        if not self.workspace_path(context, CHECKLIST).exists():
            issues.append(
                {
                    "type": "warning",
                    "file": CHECKLIST,
                    "line": 0,
                    "message": f"{CHECKLIST} not found; completeness cannot be verified",
                    "severity": "medium",
                    "suggestion": "Regenerate the development checklist",
                }
            )

        blocking = [i for i in issues if str(i.get("severity", "")).lower() in BLOCKING_SEVERITIES]
        created = await self.write_workspace_file(context, TEST_REPORT, self._render_report(files, issues))

        if blocking:
            message = f"Code analysis found {len(blocking)} blocking issue(s)"
            next_state = WorkflowState.BUG_FIXING
        else:
            message = "Code analysis complete, no blocking issues"
            next_state = WorkflowState.READY_FOR_ENHANCEMENT

        return self.success_result(
            message,
            files_created=[TEST_REPORT] if created else [],
            files_modified=[] if created else [TEST_REPORT],
            next_state=next_state,
            tokens_used=tokens,
            data={"issues_found": len(issues), "blocking_issues": len(blocking)},
        )

    @staticmethod
    def _render_report(files: list[Path], issues: list[dict[str, Any]]) -> str:
        lines = [
            "# Test Report",
            "",
            f"Files analyzed: {len(files)}",
            f"Issues found: {len(issues)}",
            "",
        ]
        for issue in issues:
            severity = str(issue.get("severity", "unknown")).upper()
            lines.append(f"- [{severity}] {issue.get('file')}:{issue.get('line', 0)} {issue.get('message', '')}")
            if issue.get("suggestion"):
                lines.append(f"  - Suggestion: {issue['suggestion']}")
        return "\n".join(lines) + "\n"
