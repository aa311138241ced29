"""
RulePilot file-backed stores.

  .rulepilot/tasks.yaml                 → YamlTaskStore
  .rulepilot/rules/<id>.md              → MarkdownRuleStore (YAML front matter)
  .rulepilot/state/suggestions.json     → JsonSuggestionStorage

Every write goes to a sibling .tmp file first and is swapped in with
os.replace. Concurrent writers are last-write-wins.
"""

from __future__ import annotations

import json
import os
import re
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

import yaml
from loguru import logger
from pydantic import ValidationError

from rulepilot.errors import StorageError, TaskNotFoundError
from rulepilot.models import Rule, Task, TaskStatus, utcnow


def _write_atomic(path: Path, text: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(text, encoding="utf-8")
        os.replace(tmp_path, path)
    except OSError as e:
        raise StorageError(f"Could not write {path}: {e}") from e


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

class YamlTaskStore:
    def __init__(self, path: Path, clock: Callable[[], datetime] = utcnow):
        self.path = Path(path)
        self.clock = clock
        self._lock = threading.Lock()

    def _read(self) -> list[Task]:
        if not self.path.exists():
            return []
        try:
            data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise StorageError(f"Could not read {self.path}: {e}") from e

        raw_tasks = data.get("tasks", []) if isinstance(data, dict) else []
        tasks = []
        for raw in raw_tasks or []:
            try:
                tasks.append(Task.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"[STORE] Skipping malformed task entry in {self.path.name}: {e.error_count()} error(s)")
        return tasks

    def _write(self, tasks: list[Task]) -> None:
        payload = {
            "tasks": [t.model_dump(mode="json", by_alias=True, exclude_none=True) for t in tasks],
        }
        _write_atomic(self.path, yaml.safe_dump(payload, sort_keys=False, allow_unicode=True))

    def get_by_id(self, task_id: str) -> Task | None:
        return next((t for t in self._read() if t.id == task_id), None)

    def list_all(self) -> list[Task]:
        return self._read()

    def list_by_rule(self, rule_id: str) -> list[Task]:
        return [t for t in self._read() if t.rule_id == rule_id]

    def create(self, **fields: Any) -> Task:
        now = self.clock()
        fields.setdefault("created_at", now)
        fields.setdefault("updated_at", now)
        task = Task(id=uuid.uuid4().hex, **fields)
        with self._lock:
            tasks = self._read()
            tasks.append(task)
            self._write(tasks)
        logger.debug(f"[STORE] Created task {task.id}")
        return task

    def _update(self, task_id: str, **changes: Any) -> Task:
        with self._lock:
            tasks = self._read()
            for i, task in enumerate(tasks):
                if task.id == task_id:
                    updated = task.model_copy(update={**changes, "updated_at": self.clock()})
                    tasks[i] = updated
                    self._write(tasks)
                    return updated
        raise TaskNotFoundError(task_id)

    def update_status_and_error(
            self,
            task_id: str,
            status: TaskStatus,
            last_error: str | None = None,
    ) -> Task:
        return self._update(task_id, status=TaskStatus(status), last_error=last_error)

    def set_complexity(self, task_id: str, complexity: int) -> Task:
        if not 1 <= complexity <= 5:
            raise ValueError(f"Complexity must be between 1 and 5, got {complexity}")
        return self._update(task_id, complexity=complexity)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

_FRONT_MATTER = re.compile(r"\A---\s*\n(.*?)\n---\s*(?:\n|\Z)", re.DOTALL)


def slugify(title: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    return slug[:60].rstrip("-") or "rule"


class MarkdownRuleStore:
    """One markdown file per rule. The file stem is the rule ID."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self._lock = threading.Lock()

    def _load(self, path: Path) -> Rule:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Could not read rule {path.name}: {e}") from e

        meta: dict[str, Any] = {}
        body = text
        match = _FRONT_MATTER.match(text)
        if match:
            try:
                meta = yaml.safe_load(match.group(1)) or {}
            except yaml.YAMLError as e:
                logger.warning(f"[STORE] Bad front matter in {path.name}: {e}")
                meta = {}
            body = text[match.end():]

        return Rule(
            id=path.stem,
            title=str(meta.get("title") or path.stem),
            description=str(meta.get("description") or ""),
            content=body.strip(),
            ai_generated=bool(meta.get("aiGenerated", False)),
        )

    def get_by_id(self, rule_id: str) -> Rule | None:
        path = self.directory / f"{rule_id}.md"
        if not path.is_file():
            return None
        return self._load(path)

    def list_all(self) -> list[Rule]:
        if not self.directory.is_dir():
            return []
        return [self._load(p) for p in sorted(self.directory.glob("*.md"), key=lambda p: p.stem)]

    def _unique_id(self, title: str) -> str:
        base = slugify(title)
        candidate = base
        n = 2
        while (self.directory / f"{candidate}.md").exists():
            candidate = f"{base}-{n}"
            n += 1
        return candidate

    def create(self, title: str, content: str, description: str = "", ai_generated: bool = False) -> str:
        meta = {"title": title, "description": description, "aiGenerated": ai_generated}
        front = yaml.safe_dump(meta, sort_keys=False, allow_unicode=True).strip()
        with self._lock:
            rule_id = self._unique_id(title)
            _write_atomic(self.directory / f"{rule_id}.md", f"---\n{front}\n---\n\n{content.strip()}\n")
        logger.info(f"[STORE] Created rule {rule_id}")
        return rule_id

    def create_from_suggestion(self, title: str, content: str, ai_generated: bool = True) -> str:
        return self.create(title, content, ai_generated=ai_generated)


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------

class JsonSuggestionStorage:
    def __init__(self, path: Path):
        self.path = Path(path)

    def get(self) -> Any:
        """Raw stored value, or None when nothing has been stored yet."""
        if not self.path.exists():
            return None
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Could not read {self.path}: {e}") from e

    def set(self, value: Any) -> None:
        _write_atomic(self.path, json.dumps(value, indent=2, ensure_ascii=False))
