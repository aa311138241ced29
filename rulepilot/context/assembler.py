"""
RulePilot Context Assembler

Computes bounded file context for one task:
  1. Extract path-shaped candidates from the task and its rule
  2. Keep only candidates that exist under the project root
  3. Read up to `max_files` of them, in discovery order
  4. Bound each one: verbatim, summarized, or truncated with a marker

Nothing read here is ever included unbounded.
"""

from __future__ import annotations

from typing import Protocol

from loguru import logger

from rulepilot.config_loader import ContextConfig
from rulepilot.context.paths import extract_file_paths
from rulepilot.models import Task
from rulepilot.ports import FileSystem

SUMMARY_MARKER = "... [content summarized] ..."
TRUNCATION_MARKER = "... [content truncated] ..."

SUMMARY_TARGET_RATIO = 0.75


class Summarizer(Protocol):
    def summarize(self, path: str, content: str, target_chars: int) -> str | None: ...


class ContextAssembler:
    """Gathers validated, size-bounded file snippets for a task prompt."""

    def __init__(
        self,
        fs: FileSystem,
        summarizer: Summarizer | None = None,
        max_files: int = 5,
        max_chars_per_file: int = 2000,
        enable_summarization: bool = True,
    ):
        self.fs = fs
        self.summarizer = summarizer
        self.max_files = max_files
        self.max_chars_per_file = max_chars_per_file
        self.enable_summarization = enable_summarization

    @classmethod
    def from_config(cls, fs: FileSystem, summarizer: Summarizer | None, config: ContextConfig) -> "ContextAssembler":
        return cls(
            fs,
            summarizer,
            max_files=config.max_files,
            max_chars_per_file=config.max_chars_per_file,
            enable_summarization=config.enable_summarization,
        )

    def candidate_paths(self, *texts: str | None) -> list[str]:
        return extract_file_paths("\n".join(t for t in texts if t))

    def validate(self, candidates: list[str]) -> list[str]:
        """Drop candidates that do not exist, so hallucinated paths cost nothing."""
        valid = []
        for path in candidates:
            try:
                if self.fs.exists(path):
                    valid.append(path)
            except OSError as e:
                logger.warning(f"[CONTEXT] Could not stat {path}: {e}")
        if candidates:
            logger.debug(f"[CONTEXT] {len(valid)}/{len(candidates)} candidate paths exist")
        return valid

    def assemble(self, task: Task, rule_content: str | None = None) -> dict[str, str]:
        """Return {path: bounded content} for the files the task refers to."""
        candidates = self.candidate_paths(task.title, task.description, rule_content)
        if not candidates:
            return {}

        snippets: dict[str, str] = {}
        for path in self.validate(candidates):
            if len(snippets) >= self.max_files:
                logger.debug(f"[CONTEXT] Reached max context files ({self.max_files}), skipping the rest")
                break
            try:
                content = self.fs.read_text(path)
            except (OSError, UnicodeError) as e:
                logger.warning(f"[CONTEXT] Failed to read {path}: {e}")
                continue
            snippets[path] = self._bound(path, content)

        logger.info(f"[CONTEXT] Task {task.id}: {len(snippets)} file(s) in context")
        return snippets

    def _bound(self, path: str, content: str) -> str:
        limit = self.max_chars_per_file
        if len(content) <= limit:
            return content

        if self.enable_summarization and self.summarizer is not None:
            target = int(limit * SUMMARY_TARGET_RATIO)
            summary = None
            try:
                summary = self.summarizer.summarize(path, content, target)
            except Exception as e:
                logger.warning(f"[CONTEXT] Summarization raised for {path}: {e}")
            if summary:
                name = path.replace("\\", "/").rsplit("/", 1)[-1]
                return f"[Summary of {name}]:\n{summary[:limit]}\n{SUMMARY_MARKER}"
            logger.warning(f"[CONTEXT] Summarization failed for {path}, truncating")

        return content[:limit] + f"\n{TRUNCATION_MARKER}"
