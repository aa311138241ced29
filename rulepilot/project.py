"""
Project metadata: a cheap, read-only sketch of the repository the
automated actor is working in.

Top-level directories plus declared dependencies, read from whichever of
pyproject.toml, package.json and requirements*.txt exist. Every source is
optional; a broken one is logged and skipped.
"""

from __future__ import annotations

import json
import re
import tomllib
from pathlib import Path

from loguru import logger

from rulepilot.models import ProjectSummary

IGNORED_DIRS = {"node_modules", "__pycache__", "venv", "dist", "build"}

_REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")


def _requirement_name(spec: str) -> str | None:
    spec = spec.split("#", 1)[0].strip()
    if not spec or spec.startswith("-"):
        return None
    match = _REQUIREMENT_NAME.match(spec)
    return match.group(1) if match else None


def _names(specs) -> list[str]:
    names = []
    for spec in specs or []:
        if not isinstance(spec, str):
            continue
        name = _requirement_name(spec)
        if name and name not in names:
            names.append(name)
    return names


def _merge(target: list[str], extra: list[str]) -> None:
    for name in extra:
        if name not in target:
            target.append(name)


class ProjectMetadata:
    def __init__(self, root: Path):
        self.root = Path(root).resolve()

    def summary(self) -> ProjectSummary:
        summary = ProjectSummary(root_dirs=self._root_dirs())
        self._read_pyproject(summary)
        self._read_package_json(summary)
        self._read_requirements(summary)
        return summary

    def _root_dirs(self) -> list[str]:
        try:
            return sorted(
                p.name for p in self.root.iterdir()
                if p.is_dir() and not p.name.startswith(".") and p.name not in IGNORED_DIRS
                and not p.name.endswith(".egg-info")
            )
        except OSError as e:
            logger.warning(f"[PROJECT] Failed to list {self.root}: {e}")
            return []

    def _read_pyproject(self, summary: ProjectSummary) -> None:
        path = self.root / "pyproject.toml"
        if not path.is_file():
            return
        try:
            data = tomllib.loads(path.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning(f"[PROJECT] Failed to parse pyproject.toml: {e}")
            return

        project = data.get("project", {})
        _merge(summary.dependencies, _names(project.get("dependencies")))
        for group in (project.get("optional-dependencies") or {}).values():
            _merge(summary.dev_dependencies, _names(group))
        for group in (data.get("dependency-groups") or {}).values():
            _merge(summary.dev_dependencies, _names(group))

    def _read_package_json(self, summary: ProjectSummary) -> None:
        path = self.root / "package.json"
        if not path.is_file():
            return
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"[PROJECT] Failed to read or parse package.json: {e}")
            return

        if isinstance(data.get("dependencies"), dict):
            _merge(summary.dependencies, list(data["dependencies"]))
        if isinstance(data.get("devDependencies"), dict):
            _merge(summary.dev_dependencies, list(data["devDependencies"]))

    def _read_requirements(self, summary: ProjectSummary) -> None:
        for path in sorted(self.root.glob("requirements*.txt")):
            try:
                lines = path.read_text(encoding="utf-8").splitlines()
            except OSError as e:
                logger.warning(f"[PROJECT] Failed to read {path.name}: {e}")
                continue
            target = summary.dependencies if path.name == "requirements.txt" else summary.dev_dependencies
            _merge(target, _names(lines))
