"""
Ports used by the autonomy core.

The executor, controller and suggestion queue depend on these Protocols
instead of concrete stores, so tests can swap in in-memory fakes.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol

from rulepilot.models import ProjectSummary, Rule, Task, TaskStatus


class TaskStore(Protocol):
    def get_by_id(self, task_id: str) -> Task | None: ...
    def list_all(self) -> list[Task]: ...
    def list_by_rule(self, rule_id: str) -> list[Task]: ...
    def create(self, **fields: Any) -> Task: ...

    def update_status_and_error(
            self,
            task_id: str,
            status: TaskStatus,
            last_error: str | None = None,
    ) -> Task: ...

    def set_complexity(self, task_id: str, complexity: int) -> Task: ...


class RuleStore(Protocol):
    def get_by_id(self, rule_id: str) -> Rule | None: ...
    def list_all(self) -> list[Rule]: ...
    def create_from_suggestion(self, title: str, content: str, ai_generated: bool = True) -> str: ...


class ReasoningBackend(Protocol):
    """Prompt in, parsed JSON out. Failures raise."""

    def analyze(self, prompt: str, *, role: str = "executor", system_prompt: str | None = None) -> Any: ...


class FileSystem(Protocol):
    """Read-only view of the project root."""

    def exists(self, path: str) -> bool: ...
    def read_text(self, path: str) -> str: ...


class ProjectMetadataProvider(Protocol):
    def summary(self) -> ProjectSummary: ...


class SuggestionStorage(Protocol):
    def get(self) -> Any: ...
    def set(self, value: Any) -> None: ...


class Timer(Protocol):
    """One pending callback at a time. Scheduling again replaces it."""

    def schedule(self, delay_s: float, callback: Callable[[], None]) -> None: ...
    def cancel(self) -> None: ...
