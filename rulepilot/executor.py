"""
RulePilot Task Executor

Drives exactly one task through:
  lookup → rule → file context → related tasks → project metadata
  → in-progress → prompt + backend → verdict → persist

The only task it mutates is the one it was given. Follow-on tasks and
rule suggestions are returned, not created; the controller owns that.
"""

from __future__ import annotations

from loguru import logger

from rulepilot.agents.executor import ExecutorAgent
from rulepilot.context.assembler import ContextAssembler
from rulepilot.errors import TaskNotFoundError
from rulepilot.models import ExecutionResult, ProjectSummary, Rule, Task, TaskStatus
from rulepilot.ports import ProjectMetadataProvider, RuleStore, TaskStore

REASONING_BLOCKED_PREFIX = "Reasoning blocked: "
EXECUTION_ERROR_PREFIX = "Execution error: "
NO_REASON_GIVEN = "No specific reason provided."


class TaskExecutor:
    def __init__(
        self,
        tasks: TaskStore,
        rules: RuleStore,
        assembler: ContextAssembler,
        agent: ExecutorAgent,
        project: ProjectMetadataProvider | None = None,
        include_rule_context: bool = True,
    ):
        self.tasks = tasks
        self.rules = rules
        self.assembler = assembler
        self.agent = agent
        self.project = project
        self.include_rule_context = include_rule_context

    def execute(self, task_id: str) -> ExecutionResult:
        """Run one task. Backend failures block the task instead of raising.

        Raises:
            TaskNotFoundError: If no task has this ID.
        """
        task = self.tasks.get_by_id(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)

        if task.status == TaskStatus.COMPLETED:
            return ExecutionResult(
                task_id=task.id,
                status=TaskStatus.COMPLETED,
                completed=True,
                result="Task was already completed.",
            )

        rule = self._resolve_rule(task)
        file_context = self.assembler.assemble(task, rule.content if rule else None)
        related = self._related_tasks(task)
        project = self._project_summary()

        self.tasks.update_status_and_error(task.id, TaskStatus.IN_PROGRESS, None)
        logger.info(f"[EXEC] Task {task.id} \"{task.title}\" → in-progress")

        try:
            prompt = self.agent.build_prompt(
                task, rule if self.include_rule_context else None, file_context, related, project,
            )
            outcome = self.agent.run(prompt, source_task_id=task.id)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error(f"[EXEC] Task {task.id} failed during backend call: {message}")
            self.tasks.update_status_and_error(task.id, TaskStatus.BLOCKED, EXECUTION_ERROR_PREFIX + message)
            return ExecutionResult(
                task_id=task.id,
                status=TaskStatus.BLOCKED,
                completed=False,
                result=EXECUTION_ERROR_PREFIX + message,
            )

        last_error = None
        if outcome.blocked:
            last_error = REASONING_BLOCKED_PREFIX + (outcome.result.strip() or NO_REASON_GIVEN)

        self.tasks.update_status_and_error(task.id, outcome.status, last_error)
        if outcome.complexity is not None and outcome.complexity != task.complexity:
            self.tasks.set_complexity(task.id, outcome.complexity)

        logger.info(f"[EXEC] Task {task.id} → {outcome.status}")

        return ExecutionResult(
            task_id=task.id,
            status=outcome.status,
            completed=outcome.completed,
            result=outcome.result or "Task execution finished.",
            generated_tasks=outcome.generated_tasks,
            suggested_rules=outcome.suggested_rules,
        )

    def _resolve_rule(self, task: Task) -> Rule | None:
        if not task.rule_id:
            return None
        rule = self.rules.get_by_id(task.rule_id)
        if rule is None:
            logger.warning(f"[EXEC] Rule {task.rule_id} referenced by task {task.id} not found")
        return rule

    def _related_tasks(self, task: Task) -> list[Task]:
        if not task.rule_id:
            return []
        try:
            return [t for t in self.tasks.list_by_rule(task.rule_id) if t.id != task.id]
        except Exception as e:
            logger.error(f"[EXEC] Could not load related tasks for rule {task.rule_id}: {e}")
            return []

    def _project_summary(self) -> ProjectSummary | None:
        if self.project is None:
            return None
        try:
            return self.project.summary()
        except Exception as e:
            logger.warning(f"[EXEC] Project metadata unavailable: {e}")
            return None
