"""
RulePilot composition root.

Builds the concrete object graph for one repository:

  config → event bus + audit log → router → stores
         → agents → context assembler → executor → controller → scheduler

Everything below this module depends on ports, never on each other's
concrete classes. Tests build the same graph from fakes instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable

from loguru import logger

from rulepilot.agents.analyst import AnalystAgent
from rulepilot.agents.executor import ExecutorAgent
from rulepilot.agents.summarizer import SummarizerAgent
from rulepilot.audit_logger import AuditLogger
from rulepilot.config_loader import RulePilotConfig, load_config
from rulepilot.context import ContextAssembler, LocalFileSystem
from rulepilot.controller import CycleController
from rulepilot.event_bus import CYCLE_STARTED, EventBus, RulePilotEvent
from rulepilot.executor import TaskExecutor
from rulepilot.models import utcnow
from rulepilot.ports import ReasoningBackend, Timer
from rulepilot.project import ProjectMetadata
from rulepilot.router import Router
from rulepilot.scheduler import Scheduler
from rulepilot.storage import JsonSuggestionStorage, MarkdownRuleStore, YamlTaskStore
from rulepilot.suggestions import SuggestionQueue


@dataclass
class Runtime:
    repo_path: Path
    config: RulePilotConfig
    bus: EventBus
    audit: AuditLogger
    backend: ReasoningBackend
    tasks: YamlTaskStore
    rules: MarkdownRuleStore
    suggestions: SuggestionQueue
    analyst: AnalystAgent
    executor: TaskExecutor
    controller: CycleController
    scheduler: Scheduler

    def close(self) -> None:
        self.scheduler.stop()
        self.audit.close()


def build_runtime(
    repo_path: Path,
    config: RulePilotConfig | None = None,
    backend: ReasoningBackend | None = None,
    timer: Timer | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> Runtime:
    repo_path = Path(repo_path).resolve()
    config = config or load_config(repo_path)
    ws = config.workspace

    bus = EventBus()
    audit = AuditLogger(str(repo_path / ws.log_dir / "events.jsonl"), bus)

    if backend is None:
        router = Router(config)
        backend = router

        def _reset_budget(event: RulePilotEvent) -> None:
            if event.event_type == CYCLE_STARTED:
                router.budget.reset()

        bus.subscribe(_reset_budget)

    tasks = YamlTaskStore(repo_path / ws.tasks_file, clock=clock)
    rules = MarkdownRuleStore(repo_path / ws.rules_dir)
    suggestions = SuggestionQueue(JsonSuggestionStorage(repo_path / ws.suggestions_file), rules, bus)

    summarizer = SummarizerAgent(backend) if config.context.enable_summarization else None
    assembler = ContextAssembler.from_config(LocalFileSystem(repo_path), summarizer, config.context)

    executor = TaskExecutor(
        tasks,
        rules,
        assembler,
        ExecutorAgent(backend),
        project=ProjectMetadata(repo_path),
        include_rule_context=config.context.include_rule_context,
    )
    controller = CycleController(
        tasks,
        executor,
        suggestions,
        bus,
        actor=config.automation.actor,
        actor_aliases=config.automation.actor_aliases,
    )
    scheduler = Scheduler(
        controller,
        timer=timer,
        bus=bus,
        clock=clock,
        interval_ms=config.scheduler.interval_ms,
    )

    logger.debug(f"[BOOT] Runtime ready for {repo_path}")

    return Runtime(
        repo_path=repo_path,
        config=config,
        bus=bus,
        audit=audit,
        backend=backend,
        tasks=tasks,
        rules=rules,
        suggestions=suggestions,
        analyst=AnalystAgent(backend),
        executor=executor,
        controller=controller,
        scheduler=scheduler,
    )
