"""
🛠️ Operator — The Executor

Takes one task plus its bounded context, asks the backend to
simulate the work, and reports a verdict: completed, blocked,
or still in progress. May propose follow-up tasks and rules.

Never touches the workspace. Only reasons about it.
"""

from __future__ import annotations

from typing import Any

from loguru import logger
from pydantic import AliasChoices, BaseModel, Field, ValidationError

from rulepilot.agents import BaseAgent
from rulepilot.models import (
    PLACEHOLDER_TASK_TITLE,
    ProjectSummary,
    Rule,
    SuggestedRule,
    Task,
    TaskPriority,
    TaskProposal,
    TaskStatus,
)

PLANNING_COMPLEXITY_THRESHOLD = 4
RULE_EXCERPT_CHARS = 200
MAX_LISTED_DEPENDENCIES = 15


# ---------------------------------------------------------------------------
# Reply Schemas (lenient, item by item)
# ---------------------------------------------------------------------------

class _TaskItem(BaseModel):
    title: str = ""
    description: str | None = None
    priority: str | None = None
    status: str | None = None
    assignee: str | None = None


class _RuleItem(BaseModel):
    title: str = Field(default="", validation_alias=AliasChoices("title", "name"))
    content: str = ""


class ExecutionOutcome(BaseModel):
    """The interpreted backend verdict for one task."""
    status: TaskStatus
    result: str = ""
    generated_tasks: list[TaskProposal] = Field(default_factory=list)
    suggested_rules: list[SuggestedRule] = Field(default_factory=list)
    complexity: int | None = None

    @property
    def completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    @property
    def blocked(self) -> bool:
        return self.status == TaskStatus.BLOCKED


_STATUS_WORDS = {
    "todo": TaskStatus.TODO,
    "pending": TaskStatus.TODO,
    "in-progress": TaskStatus.IN_PROGRESS,
    "in progress": TaskStatus.IN_PROGRESS,
    "in_progress": TaskStatus.IN_PROGRESS,
    "completed": TaskStatus.COMPLETED,
    "done": TaskStatus.COMPLETED,
    "blocked": TaskStatus.BLOCKED,
}

_PRIORITY_WORDS = {
    "high": TaskPriority.HIGH,
    "urgent": TaskPriority.HIGH,
    "critical": TaskPriority.HIGH,
    "medium": TaskPriority.MEDIUM,
    "normal": TaskPriority.MEDIUM,
    "low": TaskPriority.LOW,
}


def normalize_status(word: Any) -> TaskStatus:
    return _STATUS_WORDS.get(str(word or "").strip().lower(), TaskStatus.TODO)


def normalize_priority(word: Any) -> TaskPriority:
    return _PRIORITY_WORDS.get(str(word or "").strip().lower(), TaskPriority.MEDIUM)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _as_complexity(value: Any) -> int | None:
    try:
        score = int(value)
    except (TypeError, ValueError):
        return None
    return score if 1 <= score <= 5 else None


def interpret_task_items(items: Any) -> list[TaskProposal]:
    """Keep proposals with a real title; default the rest of the fields."""
    proposals = []
    for raw in _as_list(items):
        try:
            item = _TaskItem.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"[OPERATOR] Skipping malformed task proposal: {e}")
            continue
        title = item.title.strip()
        if not title or title == PLACEHOLDER_TASK_TITLE:
            logger.warning(f"[OPERATOR] Skipping task proposal without a title: {raw!r}")
            continue
        proposals.append(TaskProposal(
            title=title,
            description=item.description,
            priority=normalize_priority(item.priority),
            status=normalize_status(item.status),
            assignee=(item.assignee or "").strip() or None,
        ))
    return proposals


def interpret_rule_items(items: Any, source_task_id: str | None = None) -> list[SuggestedRule]:
    """Keep rule suggestions that carry both a title and content."""
    suggestions = []
    for raw in _as_list(items):
        try:
            item = _RuleItem.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"[OPERATOR] Skipping malformed rule suggestion: {e}")
            continue
        if not item.title.strip() or not item.content.strip():
            logger.warning("[OPERATOR] Skipping rule suggestion missing title or content")
            continue
        suggestions.append(SuggestedRule(
            title=item.title.strip(),
            content=item.content,
            source_task_id=source_task_id,
        ))
    return suggestions


# ---------------------------------------------------------------------------
# Agent Implementation
# ---------------------------------------------------------------------------

class ExecutorAgent(BaseAgent):
    role = "executor"

    system_prompt = """You are Operator, the task execution engine inside RulePilot.

You receive one task from a software project, the rule that governs it, and
bounded context from the workspace. You simulate doing the work and report the
outcome honestly.

You MUST respond with a single valid JSON object ONLY. No markdown, no commentary.

Rules:
- You cannot run commands, browse, or call APIs. Your output is the result of a simulated action.
- Base your work primarily on the rule and the file context provided.
- Never claim completion you cannot justify from the context.
- If information is missing, report the task as blocked and say exactly what is missing.
"""

    # ------------------------------------------------------------------
    # Prompt Builder
    # ------------------------------------------------------------------

    def build_prompt(
        self,
        task: Task,
        rule: Rule | None = None,
        file_context: dict[str, str] | None = None,
        related_tasks: list[Task] | None = None,
        project: ProjectSummary | None = None,
    ) -> str:
        parts = [self._task_section(task)]

        rule_section = self._rule_section(task, rule)
        if rule_section:
            parts.append(rule_section)

        if related_tasks:
            lines = ["RELATED TASKS (same rule):"]
            for rt in related_tasks:
                lines.append(f" - {rt.title} (ID: {rt.id}, Status: {rt.status}, Priority: {rt.priority})")
            lines.append("Consider these related tasks when planning your execution.")
            parts.append("\n".join(lines))

        parts.append(self._file_section(file_context))

        if project is not None:
            project_section = self._project_section(project)
            if project_section:
                parts.append(project_section)

        parts.append(self._instructions(task))
        parts.append(OUTPUT_FORMAT)
        return "\n\n".join(parts)

    @staticmethod
    def requires_plan(task: Task) -> bool:
        return (task.complexity or 0) >= PLANNING_COMPLEXITY_THRESHOLD

    @staticmethod
    def _task_section(task: Task) -> str:
        lines = [
            "TASK DETAILS:",
            f"Title: {task.title}",
            f"ID: {task.id}",
            f"Description: {task.description or 'N/A'}",
            f"Status: {task.status}",
            f"Priority: {task.priority}",
        ]
        if task.last_error:
            lines.append(f"Last Error/Blockage: {task.last_error}")
        return "\n".join(lines)

    @staticmethod
    def _rule_section(task: Task, rule: Rule | None) -> str:
        if rule is not None and rule.content:
            lines = [f"ASSOCIATED RULE (ID: {rule.id}):"]
            if rule.description:
                lines.append(f"Rule Description: {rule.description}")
            excerpt = rule.content[:RULE_EXCERPT_CHARS]
            suffix = "..." if len(rule.content) > RULE_EXCERPT_CHARS else ""
            lines.append(f"Rule Content Excerpt:\n{excerpt}{suffix}")
            return "\n".join(lines)
        if task.rule_id:
            return f"Associated Rule ID: {task.rule_id} (content not included in this context)"
        return ""

    @staticmethod
    def _file_section(file_context: dict[str, str] | None) -> str:
        if not file_context:
            return (
                "(No workspace file content was extracted. Work only from the task and rule. "
                "If file access is required, report it as the blockage reason.)"
            )
        blocks = ["RELEVANT WORKSPACE FILE CONTEXT:"]
        for path, content in file_context.items():
            blocks.append(f"--- START FILE: {path} ---\n{content}\n--- END FILE: {path} ---")
        return "\n".join(blocks)

    @staticmethod
    def _project_section(project: ProjectSummary) -> str:
        def listed(names: list[str]) -> str:
            shown = ", ".join(names[:MAX_LISTED_DEPENDENCIES])
            return shown + ("..." if len(names) > MAX_LISTED_DEPENDENCIES else "")

        lines = []
        if project.root_dirs:
            lines.append(f" - Root Dirs: {', '.join(project.root_dirs)}")
        if project.dependencies:
            lines.append(f" - Dependencies: {listed(project.dependencies)}")
        if project.dev_dependencies:
            lines.append(f" - Dev Dependencies: {listed(project.dev_dependencies)}")
        if not lines:
            return ""
        return "PROJECT CONTEXT:\n" + "\n".join(lines)

    def _instructions(self, task: Task) -> str:
        steps = [
            "Analyze: Review the task, the governing rule, and all provided file context.",
        ]
        if self.requires_plan(task):
            steps += [
                "Plan (high complexity task): Before simulating anything, write a step-by-step plan "
                "under a \"### Plan\" heading in the 'result' field.",
                "Simulate Action: Following your plan, produce the concrete output (code as a diff, "
                "configuration changes, or text) under a \"### Action/Output\" heading.",
                "Evaluate Feasibility: Decide whether the task can be fully completed with the given information.",
                "Determine Outcome: Decide if the task is completed, blocked, or still in progress.",
                "Report Result: Keep the Plan and Action/Output sections in 'result'. If blocked, explain under "
                "\"### Blockage Reason\". If completed, summarize under \"### Completion Summary\".",
            ]
        else:
            steps += [
                "Simulate Action: Produce the concrete output (code as a diff, configuration changes, or text) "
                "that fulfils the task.",
                "Evaluate Feasibility: Decide whether the task can be fully completed with the given information.",
                "Report Result: If completed, describe the outcome. If blocked, state the specific missing piece. "
                "If in progress, describe what was done and what remains.",
            ]
        steps.append(
            "Suggest Follow-ups (optional): If the work reveals a pattern or a missing constraint, propose "
            "follow-up tasks (generatedTasks) or new rules (suggestedRules) with clear titles and content."
        )
        numbered = "\n".join(f"{i}. {step}" for i, step in enumerate(steps, 1))
        return f"EXECUTION INSTRUCTIONS:\n{numbered}"

    # ------------------------------------------------------------------
    # Result Interpreter
    # ------------------------------------------------------------------

    def parse_response(self, raw: Any, source_task_id: str | None = None) -> ExecutionOutcome:
        """Map a backend reply to a status transition plus follow-on proposals."""
        if not isinstance(raw, dict):
            logger.error(f"[OPERATOR] Reply is not a JSON object: {type(raw).__name__}")
            return ExecutionOutcome(
                status=TaskStatus.IN_PROGRESS,
                result="Backend reply was not a JSON object; task left open.",
            )

        completed = _as_bool(raw.get("completed", False))
        blocked = _as_bool(raw.get("blocked", False))
        if completed:
            status = TaskStatus.COMPLETED
        elif blocked:
            status = TaskStatus.BLOCKED
        else:
            status = TaskStatus.IN_PROGRESS

        result = raw.get("result")
        outcome = ExecutionOutcome(
            status=status,
            result=result if isinstance(result, str) else ("" if result is None else str(result)),
            generated_tasks=interpret_task_items(raw.get("generatedTasks", raw.get("generated_tasks"))),
            suggested_rules=interpret_rule_items(
                raw.get("suggestedRules", raw.get("suggested_rules")), source_task_id
            ),
            complexity=_as_complexity(raw.get("complexity")),
        )

        logger.info(
            f"[OPERATOR] Verdict — status={outcome.status}, "
            f"{len(outcome.generated_tasks)} follow-up task(s), "
            f"{len(outcome.suggested_rules)} rule suggestion(s)"
        )
        return outcome

    def run(self, prompt: str, source_task_id: str | None = None) -> ExecutionOutcome:
        """Execute the agent: prompt → backend → interpreted outcome."""
        return self.parse_response(self.ask(prompt), source_task_id)


OUTPUT_FORMAT = """OUTPUT FORMAT:
Respond ONLY with a single valid JSON object with this structure:
{
  "completed": boolean,        // true if the task is fully achieved by your simulated action
  "blocked": boolean,          // true if the task cannot proceed (missing info, ambiguity, capability limits)
  "result": string,            // detailed outcome; include generated code, blockage reason, or progress
  "complexity": integer,       // optional: your 1-5 estimate of the task's complexity
  "generatedTasks": [          // optional: NEW follow-up tasks
    {
      "title": string,
      "description": string,
      "priority": "low" | "medium" | "high",
      "assignee": string
    }
  ],
  "suggestedRules": [          // optional: NEW rules, only when a clear pattern emerged
    {
      "title": string,
      "content": string
    }
  ]
}"""
