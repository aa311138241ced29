"""Deterministic in-memory stand-ins for the ports in rulepilot.ports."""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from rulepilot.errors import StorageError, TaskNotFoundError
from rulepilot.models import ProjectSummary, Rule, Task, TaskStatus

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = EPOCH):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeBackend:
    """
    Returns scripted replies per role, in order.
    An Exception in the script is raised instead of returned.
    """

    def __init__(self, replies: dict[str, list[Any]] | None = None):
        self.replies = {role: list(items) for role, items in (replies or {}).items()}
        self.calls: list[dict[str, Any]] = []

    def script(self, role: str, *items: Any) -> None:
        self.replies.setdefault(role, []).extend(items)

    def analyze(self, prompt: str, *, role: str = "executor", system_prompt: str | None = None) -> Any:
        self.calls.append({"prompt": prompt, "role": role, "system_prompt": system_prompt})
        queue = self.replies.get(role) or []
        if not queue:
            raise AssertionError(f"No scripted reply left for role {role!r}")
        reply = queue.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def prompts(self, role: str) -> list[str]:
        return [c["prompt"] for c in self.calls if c["role"] == role]


class InMemoryTaskStore:
    def __init__(self, tasks: list[Task] | None = None, clock: Callable[[], datetime] | None = None):
        self._tasks: dict[str, Task] = {t.id: t for t in tasks or []}
        self._ids = itertools.count(1)
        self.clock = clock or FakeClock()
        self.fail_create = False
        self.fail_updates = False
        self.status_history: list[tuple[str, TaskStatus, str | None]] = []

    def add(self, **fields: Any) -> Task:
        fields.setdefault("id", f"t{len(self._tasks) + 1}")
        task = Task(**fields)
        self._tasks[task.id] = task
        return task

    def get_by_id(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def list_all(self) -> list[Task]:
        return list(self._tasks.values())

    def list_by_rule(self, rule_id: str) -> list[Task]:
        return [t for t in self._tasks.values() if t.rule_id == rule_id]

    def create(self, **fields: Any) -> Task:
        if self.fail_create:
            raise OSError("disk full")
        task = Task(id=f"new-{next(self._ids)}", created_at=self.clock(), updated_at=self.clock(), **fields)
        self._tasks[task.id] = task
        return task

    def update_status_and_error(self, task_id: str, status: TaskStatus, last_error: str | None = None) -> Task:
        if task_id not in self._tasks:
            raise TaskNotFoundError(task_id)
        if self.fail_updates:
            raise StorageError("tasks file is read-only")
        self.status_history.append((task_id, status, last_error))
        updated = self._tasks[task_id].model_copy(update={"status": status, "last_error": last_error})
        self._tasks[task_id] = updated
        return updated

    def set_complexity(self, task_id: str, complexity: int) -> Task:
        if task_id not in self._tasks:
            raise TaskNotFoundError(task_id)
        updated = self._tasks[task_id].model_copy(update={"complexity": complexity})
        self._tasks[task_id] = updated
        return updated


class InMemoryRuleStore:
    def __init__(self, rules: list[Rule] | None = None):
        self._rules: dict[str, Rule] = {r.id: r for r in rules or []}
        self.fail_with: Exception | None = None
        self.return_empty_id = False

    def get_by_id(self, rule_id: str) -> Rule | None:
        return self._rules.get(rule_id)

    def list_all(self) -> list[Rule]:
        return list(self._rules.values())

    def create_from_suggestion(self, title: str, content: str, ai_generated: bool = True) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        if self.return_empty_id:
            return ""
        rule_id = f"rule-{len(self._rules) + 1}"
        self._rules[rule_id] = Rule(id=rule_id, title=title, content=content, ai_generated=ai_generated)
        return rule_id


class InMemorySuggestionStorage:
    def __init__(self, value: Any = None, error: Exception | None = None):
        self.value = value
        self.error = error
        self.fail_writes = False
        self.writes = 0

    def get(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.value

    def set(self, value: Any) -> None:
        if self.fail_writes:
            raise StorageError("suggestions file is read-only")
        self.error = None
        self.value = value
        self.writes += 1


class FakeFileSystem:
    def __init__(self, files: dict[str, str] | None = None, unreadable: set[str] | None = None):
        self.files = dict(files or {})
        self.unreadable = set(unreadable or ())
        self.reads: list[str] = []

    def exists(self, path: str) -> bool:
        return path in self.files

    def read_text(self, path: str) -> str:
        self.reads.append(path)
        if path in self.unreadable:
            raise PermissionError(path)
        return self.files[path]


class FakeProject:
    def __init__(self, summary: ProjectSummary | None = None, error: Exception | None = None):
        self._summary = summary or ProjectSummary()
        self.error = error

    def summary(self) -> ProjectSummary:
        if self.error is not None:
            raise self.error
        return self._summary


class ManualTimer:
    """Holds one pending callback; tests fire it explicitly."""

    def __init__(self):
        self.callback: Callable[[], None] | None = None
        self.delay_s: float | None = None
        self.scheduled = 0
        self.cancelled = 0

    @property
    def pending(self) -> bool:
        return self.callback is not None

    def schedule(self, delay_s: float, callback: Callable[[], None]) -> None:
        self.delay_s = delay_s
        self.callback = callback
        self.scheduled += 1

    def cancel(self) -> None:
        self.callback = None
        self.delay_s = None
        self.cancelled += 1

    def fire(self) -> None:
        callback, self.callback = self.callback, None
        assert callback is not None, "no pending timer"
        callback()
