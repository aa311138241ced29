"""
🧭 Scout — The Analyst

Breaks rules into concrete tasks and sizes tasks up.
Also reads free-text task descriptions and suggests assignees.
Never executes anything.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from loguru import logger
from pydantic import BaseModel

from rulepilot.agents import BaseAgent
from rulepilot.agents.executor import interpret_task_items, normalize_priority, normalize_status
from rulepilot.errors import BackendResponseError
from rulepilot.models import Rule, Task, TaskPriority, TaskProposal, TaskStatus

DEFAULT_COMPLEXITY = 3
DEFAULT_HOURS = 4.0


@dataclass
class Effort:
    complexity: int = DEFAULT_COMPLEXITY
    estimated_hours: float = DEFAULT_HOURS


class ParsedTask(BaseModel):
    """Task fields read out of a free-text description."""
    title: str
    description: str | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.TODO
    due_date: datetime | None = None
    assignee: str | None = None
    rule_id: str | None = None


def _as_text(value) -> str | None:
    if value is None:
        return None
    return str(value).strip() or None


def _as_due_date(value) -> datetime | None:
    text = _as_text(value)
    if text is None:
        return None
    try:
        return datetime.strptime(text[:10], "%Y-%m-%d")
    except ValueError:
        logger.warning(f"[SCOUT] Ignoring unparseable due date: {text!r}")
        return None


class AnalystAgent(BaseAgent):
    role = "analyst"

    system_prompt = """You are Scout, the analyst inside RulePilot.
You turn project rules into small, actionable implementation tasks and estimate effort.
You MUST respond with a single valid JSON object ONLY."""

    def build_rule_prompt(self, rule: Rule) -> str:
        return f"""Break the following project rule into concrete implementation tasks.

RULE:
ID: {rule.id}
Title: {rule.title}
Description: {rule.description or 'N/A'}

Content:
{rule.content}

Instructions:
1. Understand the goal and requirements the rule defines.
2. Identify the specific steps needed to implement or enforce it in a codebase.
3. Propose 3-5 granular tasks (fewer for simple rules).
4. Each title starts with an action verb ("Implement", "Update", "Create", "Configure", "Refactor").
5. Each description says what to do and why the rule requires it. Do not invent files or APIs.
6. Do not simply restate the rule as a task.

Output format:
{{
  "tasks": [
    {{
      "title": string,
      "description": string,
      "priority": "high" | "medium" | "low",
      "status": "todo" | "in-progress"
    }}
  ]
}}"""

    def propose_tasks(self, rule: Rule) -> list[TaskProposal]:
        """Ask the backend for a task breakdown of a rule. Backend errors propagate."""
        reply = self.ask(self.build_rule_prompt(rule))
        items = reply.get("tasks") if isinstance(reply, dict) else reply
        proposals = interpret_task_items(items)
        logger.info(f"[SCOUT] Rule {rule.id} → {len(proposals)} task proposal(s)")
        return proposals

    def build_effort_prompt(self, task: Task) -> str:
        return f"""Estimate the complexity and effort of this task.

TITLE: {task.title}
DESCRIPTION: {task.description or 'No description provided'}

Provide:
1. "complexity": an integer from 1 (simplest) to 5 (most complex)
2. "estimatedHours": the number of hours to complete it

Output format: {{"complexity": integer, "estimatedHours": number}}"""

    def estimate_effort(self, task: Task) -> Effort:
        """Estimate complexity; fall back to defaults when the backend fails."""
        try:
            reply = self.ask(self.build_effort_prompt(task))
        except Exception as e:
            logger.error(f"[SCOUT] Effort estimation failed for {task.id}: {e}")
            return Effort()

        if not isinstance(reply, dict):
            return Effort()

        effort = Effort()
        try:
            score = int(reply.get("complexity", DEFAULT_COMPLEXITY))
            effort.complexity = min(5, max(1, score))
        except (TypeError, ValueError):
            pass
        try:
            hours = float(reply.get("estimatedHours", DEFAULT_HOURS))
            if hours > 0:
                effort.estimated_hours = hours
        except (TypeError, ValueError):
            pass
        return effort

    # ------------------------------------------------------------------
    # Free-text intake
    # ------------------------------------------------------------------

    def build_parse_prompt(self, text: str) -> str:
        return f"""Parse the following natural-language task description into structured fields:

"{text}"

Extract whatever is present:
- Task title (short, starts with an action verb)
- Detailed description
- Priority (high, medium, low)
- Status (todo, in-progress, completed, blocked)
- Due date (YYYY-MM-DD)
- Assignee
- Related rule ID, if one is mentioned

Output format:
{{"title": string, "description": string, "priority": string, "status": string,
  "dueDate": string, "assignee": string, "relatedRuleId": string}}"""

    def parse_task(self, text: str) -> ParsedTask:
        """Turn a free-text description into task fields.

        Raises:
            BackendError: If the backend call fails.
            BackendResponseError: If the reply carries no usable title.
        """
        reply = self.ask(self.build_parse_prompt(text))
        if not isinstance(reply, dict):
            raise BackendResponseError("Task parse reply is not a JSON object")

        title = _as_text(reply.get("title"))
        if title is None:
            raise BackendResponseError("Task parse reply has no title")

        parsed = ParsedTask(
            title=title,
            description=_as_text(reply.get("description")),
            priority=normalize_priority(reply.get("priority")),
            status=normalize_status(reply.get("status")),
            due_date=_as_due_date(reply.get("dueDate")),
            assignee=_as_text(reply.get("assignee")),
            rule_id=_as_text(reply.get("relatedRuleId")),
        )
        logger.info(f"[SCOUT] Parsed task \"{parsed.title}\"")
        return parsed

    def build_assignee_prompt(self, text: str) -> str:
        return f"""Suggest who should work on this task:

"{text}"

Consider the technical skills the task implies.

Output format: {{"assignees": [string]}}"""

    def suggest_assignees(self, text: str) -> list[str]:
        """Candidate assignee names; empty when the backend fails."""
        try:
            reply = self.ask(self.build_assignee_prompt(text))
        except Exception as e:
            logger.error(f"[SCOUT] Assignee suggestion failed: {e}")
            return []

        names = reply.get("assignees") if isinstance(reply, dict) else None
        if not isinstance(names, list):
            return []
        return [name for name in (_as_text(n) for n in names) if name]
