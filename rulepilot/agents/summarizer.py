"""
📎 Clip — The Summarizer

Shrinks oversized workspace files into short summaries so the
executor sees the gist without blowing the context budget.
"""

from __future__ import annotations

from pathlib import PurePath

from loguru import logger

from rulepilot.agents import BaseAgent

_LANGUAGE_HINTS = {
    ".py": "Python",
    ".js": "JavaScript",
    ".jsx": "JavaScript",
    ".ts": "TypeScript",
    ".tsx": "TypeScript",
    ".java": "Java",
    ".go": "Go",
    ".rs": "Rust",
    ".rb": "Ruby",
    ".md": "Markdown",
    ".yaml": "YAML",
    ".yml": "YAML",
    ".toml": "TOML",
    ".json": "JSON",
}


class SummarizerAgent(BaseAgent):
    role = "summarizer"

    system_prompt = """You are Clip, a source file summarizer.
You write summaries that another AI will use as context for a task.
Respond with a JSON object {"summary": "..."} and nothing else."""

    def build_prompt(self, path: str, content: str, target_chars: int) -> str:
        hint = _LANGUAGE_HINTS.get(PurePath(path.replace("\\", "/")).suffix.lower(), "")
        language = f" (likely {hint})" if hint else ""
        return f"""File Path: "{path}"{language}
Target Summary Length: about {target_chars} characters.

Summarize the file. Focus on:
- its primary purpose
- key exported functions, classes, components or interfaces
- the main logic flow and important data structures or configuration

Avoid line-by-line explanations and trivial helpers.

FILE CONTENT:
{content}"""

    def summarize(self, path: str, content: str, target_chars: int) -> str | None:
        """Return a plain-text summary, or None if the backend could not produce one."""
        logger.debug(f"[CLIP] Summarizing {path} ({len(content)} chars → ~{target_chars})")
        try:
            reply = self.ask(self.build_prompt(path, content, target_chars))
        except Exception as e:
            logger.warning(f"[CLIP] Summarization failed for {path}: {e}")
            return None

        summary = reply.get("summary") if isinstance(reply, dict) else None
        if not isinstance(summary, str) or not summary.strip():
            logger.warning(f"[CLIP] Empty or invalid summary for {path}")
            return None
        return summary.strip()
