"""
RulePilot domain models.

Tasks, rules and the transient records that flow through one autonomy cycle.
Stored documents use camelCase keys; Python code uses snake_case. Both are
accepted on input.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(StrEnum):
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    # Human-assigned escalation tier. The backend can never propose it.
    CRITICAL = "critical"


# Lower sorts first.
STATUS_ORDER: dict[TaskStatus, int] = {
    TaskStatus.TODO: 0,
    TaskStatus.IN_PROGRESS: 1,
    TaskStatus.BLOCKED: 2,
    TaskStatus.COMPLETED: 3,
}

PRIORITY_ORDER: dict[TaskPriority, int] = {
    TaskPriority.CRITICAL: 0,
    TaskPriority.HIGH: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.LOW: 3,
}

PLACEHOLDER_TASK_TITLE = "Untitled AI Task"


class _Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Task(_Document):
    """A unit of work, optionally linked to a rule."""
    id: str
    title: str = Field(min_length=1)
    description: str | None = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    assignee: str | None = None
    due_date: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    complexity: int | None = Field(default=None, ge=1, le=5)
    last_error: str | None = None
    rule_id: str | None = None
    ai_generated: bool = False


class Rule(_Document):
    """A durable policy document."""
    id: str
    title: str
    description: str = ""
    content: str = ""
    ai_generated: bool = False


class SuggestedRule(_Document):
    title: str
    content: str
    source_task_id: str | None = None


class TaskProposal(_Document):
    """A follow-on task proposed by the backend, not yet created."""
    title: str
    description: str | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.TODO
    assignee: str | None = None


class ExecutionResult(BaseModel):
    task_id: str
    status: TaskStatus
    completed: bool
    result: str = ""
    generated_tasks: list[TaskProposal] = Field(default_factory=list)
    suggested_rules: list[SuggestedRule] = Field(default_factory=list)


class CycleResult(BaseModel):
    tasks_completed: int = 0
    tasks_created: int = 0
    rules_suggested: int = 0

    @property
    def is_empty(self) -> bool:
        return not (self.tasks_completed or self.tasks_created or self.rules_suggested)


class ProjectSummary(BaseModel):
    root_dirs: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    dev_dependencies: list[str] = Field(default_factory=list)


def sort_tasks(tasks: list[Task]) -> list[Task]:
    """Order by status, then priority, then due date (undated last), then age."""
    far_future = datetime.max.replace(tzinfo=timezone.utc)

    def key(task: Task):
        due = task.due_date or far_future
        if due.tzinfo is None:
            due = due.replace(tzinfo=timezone.utc)
        created = task.created_at
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return (
            STATUS_ORDER[task.status],
            PRIORITY_ORDER[task.priority],
            task.due_date is None,
            due,
            created,
        )

    return sorted(tasks, key=key)
