"""
Configuration loader for RulePilot.
Merges defaults with per-repo .rulepilot/config.yaml overrides.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator


MIN_INTERVAL_MS = 30_000


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class RoutingConfig(BaseModel):
    executor: str = "gpt-4o-mini"
    summarizer: str = "gpt-4o-mini"
    analyst: str = "gpt-4o-mini"


class LimitsConfig(BaseModel):
    max_tokens_per_cycle: int = 200_000
    max_dollars_per_cycle: float = 5.0
    request_timeout_s: float = 120.0
    max_attempts: int = Field(default=3, ge=1)


class ContextConfig(BaseModel):
    max_files: int = Field(default=5, ge=0)
    max_chars_per_file: int = Field(default=2000, ge=1)
    enable_summarization: bool = True
    include_rule_context: bool = True


class SchedulerConfig(BaseModel):
    enabled: bool = False
    interval_ms: int = 300_000

    @field_validator("interval_ms")
    @classmethod
    def clamp_interval(cls, value: int) -> int:
        return max(MIN_INTERVAL_MS, value)


class AutomationConfig(BaseModel):
    actor: str = "AI Assistant"
    actor_aliases: list[str] = Field(default_factory=lambda: ["AI"])

    @property
    def identities(self) -> frozenset[str]:
        return frozenset([self.actor, *self.actor_aliases])


class WorkspaceConfig(BaseModel):
    tasks_file: str = ".rulepilot/tasks.yaml"
    rules_dir: str = ".rulepilot/rules"
    suggestions_file: str = ".rulepilot/state/suggestions.json"
    log_dir: str = ".rulepilot/logs"


class RulePilotConfig(BaseModel):
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    automation: AutomationConfig = Field(default_factory=AutomationConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(repo_path: Path | None = None) -> RulePilotConfig:
    """
    Load config by merging:
      1. Built-in defaults (rulepilot/config.yaml)
      2. Repo-level overrides (<repo>/.rulepilot/config.yaml)
    """
    with open(_DEFAULT_CONFIG_PATH, "r") as f:
        base: dict[str, Any] = yaml.safe_load(f) or {}

    if repo_path:
        repo_config = repo_path / ".rulepilot" / "config.yaml"
        if repo_config.exists():
            with open(repo_config, "r") as f:
                overrides: dict[str, Any] = yaml.safe_load(f) or {}
            base = _deep_merge(base, overrides)

    return RulePilotConfig(**base)


def validate_api_keys() -> dict[str, bool]:
    """Check which API keys are available (LiteLLM reads these directly)."""
    return {
        "ANTHROPIC_API_KEY": bool(os.environ.get("ANTHROPIC_API_KEY")),
        "OPENAI_API_KEY":    bool(os.environ.get("OPENAI_API_KEY")),
        "GEMINI_API_KEY":    bool(os.environ.get("GEMINI_API_KEY")),
    }
