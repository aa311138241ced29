"""
RulePilot Controller — The Brainstem

It is NOT smart. It is deterministic.

Responsibilities, once per cycle:
  - Pull every task assigned to the automated actor that is still open
  - Order them (status, priority, due date, age)
  - Execute them one at a time (never in parallel)
  - Count completions
  - Create follow-on tasks proposed by the backend
  - Queue proposed rules for human review

One task failing never stops the others. It never reasons. It only coordinates.
"""

from __future__ import annotations

from loguru import logger

from rulepilot.errors import StorageError
from rulepilot.event_bus import PERSISTENCE_ERROR, TASK_EXECUTED, EventBus
from rulepilot.executor import TaskExecutor
from rulepilot.models import (
    PLACEHOLDER_TASK_TITLE,
    CycleResult,
    ExecutionResult,
    Task,
    TaskStatus,
    sort_tasks,
)
from rulepilot.ports import TaskStore
from rulepilot.suggestions import SuggestionQueue

DEFAULT_ACTOR = "AI Assistant"


class CycleController:
    def __init__(
        self,
        tasks: TaskStore,
        executor: TaskExecutor,
        suggestions: SuggestionQueue,
        bus: EventBus | None = None,
        actor: str = DEFAULT_ACTOR,
        actor_aliases: list[str] | None = None,
    ):
        self.tasks = tasks
        self.executor = executor
        self.suggestions = suggestions
        self.bus = bus or EventBus()
        self.actor = actor
        self.identities = frozenset([actor, *(actor_aliases or [])])

    def is_automated(self, task: Task) -> bool:
        return task.assignee in self.identities

    def eligible_tasks(self) -> list[Task]:
        """Open tasks assigned to the automated actor, in execution order."""
        eligible = [
            t for t in self.tasks.list_all()
            if self.is_automated(t) and t.status not in (TaskStatus.COMPLETED, TaskStatus.BLOCKED)
        ]
        return sort_tasks(eligible)

    def run_cycle(self) -> CycleResult:
        """Execute every eligible task sequentially. Never raises."""
        result = CycleResult()
        try:
            self._run(result)
        except StorageError as e:
            logger.exception("[CYCLE] Could not load tasks")
            self._report_persistence("list_tasks", e)
        except Exception:
            logger.exception("[CYCLE] Autonomy cycle failed")
        return result

    def _run(self, result: CycleResult) -> None:
        queue = self.eligible_tasks()
        logger.info(f"[CYCLE] {len(queue)} actionable task(s) assigned to {self.actor}")
        if not queue:
            return

        logger.debug("[CYCLE] Order: " + ", ".join(f"{t.title}({t.priority})" for t in queue))

        for task in queue:
            logger.info(f"[CYCLE] Processing \"{task.title}\" ({task.id})")
            try:
                outcome = self.executor.execute(task.id)
            except StorageError as e:
                logger.exception(f"[CYCLE] Task {task.id} state could not be saved")
                self._report_persistence("execute_task", e, task.id)
                continue
            except Exception:
                logger.exception(f"[CYCLE] Task {task.id} could not be executed")
                continue

            self.bus.emit(TASK_EXECUTED, "controller", {
                "task_id": task.id,
                "status": str(outcome.status),
                "completed": outcome.completed,
            })

            if outcome.completed:
                result.tasks_completed += 1
            if outcome.status == TaskStatus.BLOCKED:
                logger.info(f"[CYCLE] Task {task.id} is blocked, skipping follow-ups")
                continue

            result.tasks_created += self._create_follow_ups(task, outcome)
            result.rules_suggested += self._queue_suggestions(task, outcome)

        logger.info(
            f"[CYCLE] Finished — completed={result.tasks_completed}, "
            f"created={result.tasks_created}, suggested={result.rules_suggested}"
        )

    def _create_follow_ups(self, parent: Task, outcome: ExecutionResult) -> int:
        created = 0
        for proposal in outcome.generated_tasks:
            title = proposal.title.strip()
            if not title or title == PLACEHOLDER_TASK_TITLE:
                logger.warning(f"[CYCLE] Skipping follow-up without a real title from {parent.id}")
                continue
            try:
                new_task = self.tasks.create(
                    title=title,
                    description=proposal.description,
                    status=proposal.status,
                    priority=proposal.priority,
                    assignee=proposal.assignee or self.actor,
                    rule_id=parent.rule_id,
                    ai_generated=True,
                )
            except Exception as e:
                logger.error(f"[CYCLE] Failed to create follow-up \"{title}\": {e}")
                self._report_persistence("create_task", e, parent.id)
                continue
            logger.info(f"[CYCLE] Created follow-up task \"{new_task.title}\" ({new_task.id})")
            created += 1
        return created

    def _queue_suggestions(self, parent: Task, outcome: ExecutionResult) -> int:
        valid = [
            s.model_copy(update={"source_task_id": s.source_task_id or parent.id})
            for s in outcome.suggested_rules
            if s.title.strip() and s.content.strip()
        ]
        if not valid:
            return 0
        try:
            return self.suggestions.extend(valid)
        except Exception as e:
            logger.error(f"[CYCLE] Failed to store rule suggestions from {parent.id}: {e}")
            self._report_persistence("store_suggestions", e, parent.id)
            return 0

    def _report_persistence(self, operation: str, error: Exception, task_id: str | None = None) -> None:
        self.bus.emit(PERSISTENCE_ERROR, "controller", {
            "operation": operation,
            "task_id": task_id,
            "error": str(error),
        })
