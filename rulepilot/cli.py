"""
RulePilot CLI — The Interface

Core loop:
  - rulepilot run    --repo <path>        (one autonomy cycle, now)
  - rulepilot watch  --repo <path>        (scheduler loop until Ctrl-C)

Workspace:
  - rulepilot init [path]                 (bootstrap .rulepilot in a repo)
  - rulepilot status                      (config, API keys, queue sizes)
  - rulepilot tasks list|add|estimate|suggest-assignee
  - rulepilot rules list|plan
  - rulepilot suggestions list|preview|approve|dismiss
"""

from __future__ import annotations

import time
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from rulepilot.bootstrap import Runtime, build_runtime
from rulepilot.config_loader import MIN_INTERVAL_MS, load_config, validate_api_keys
from rulepilot.errors import RuleCreationError, RulePilotError, StorageError, SuggestionIndexError
from rulepilot.event_bus import CYCLE_FINISHED, RulePilotEvent
from rulepilot.identity import BANNER, __codename__, __tagline__, __version__
from rulepilot.models import CycleResult, TaskPriority, TaskStatus, sort_tasks

# Load .env from current directory or home
load_dotenv()
load_dotenv(Path.home() / ".rulepilot" / ".env")

app = typer.Typer(
    name="rulepilot",
    help=f"{__codename__} — {__tagline__}",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
tasks_app = typer.Typer(help="Inspect and manage tasks.", no_args_is_help=True)
rules_app = typer.Typer(help="Inspect rules and break them into tasks.", no_args_is_help=True)
suggestions_app = typer.Typer(help="Review rules proposed during execution.", no_args_is_help=True)
app.add_typer(tasks_app, name="tasks")
app.add_typer(rules_app, name="rules")
app.add_typer(suggestions_app, name="suggestions")

console = Console()

REPO_OPTION = typer.Option(Path("."), "--repo", "-r", help="Path to the target repository")
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Enable debug logging")

STATUS_COLORS = {
    TaskStatus.TODO: "white",
    TaskStatus.IN_PROGRESS: "cyan",
    TaskStatus.COMPLETED: "green",
    TaskStatus.BLOCKED: "red",
}

PRIORITY_COLORS = {
    TaskPriority.CRITICAL: "bold red",
    TaskPriority.HIGH: "red",
    TaskPriority.MEDIUM: "yellow",
    TaskPriority.LOW: "dim",
}


def version_callback(value: bool):
    if value:
        console.print(f"{__codename__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    pass


# ---------------------------------------------------------------------------
# Banner
# ---------------------------------------------------------------------------


def _print_banner():
    console.print(f"[bright_green]{BANNER}[/]")
    console.print(f"  [dim]v{__version__} — {__tagline__}[/]\n")


# ---------------------------------------------------------------------------
# Core loop
# ---------------------------------------------------------------------------

@app.command()
def run(
    repo: Path = REPO_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Run one autonomy cycle over every open task assigned to the automated actor."""
    _print_banner()
    _configure_logging(verbose)

    runtime = _open_runtime(repo)
    try:
        console.print(f"[cyan]Processing tasks assigned to {runtime.config.automation.actor}...[/]")
        result = runtime.scheduler.trigger_now()
    finally:
        runtime.close()

    _print_cycle_result(result)


@app.command()
def watch(
    repo: Path = REPO_OPTION,
    interval: Optional[int] = typer.Option(
        None, "--interval", "-i", help=f"Seconds between cycles (minimum {MIN_INTERVAL_MS // 1000})",
    ),
    now: bool = typer.Option(False, "--now", help="Run one cycle immediately before waiting"),
    verbose: bool = VERBOSE_OPTION,
):
    """Run cycles on an interval until interrupted."""
    _print_banner()
    _configure_logging(verbose)

    runtime = _open_runtime(repo)

    def _on_cycle(event: RulePilotEvent) -> None:
        if event.event_type == CYCLE_FINISHED:
            _print_cycle_result(CycleResult(**event.payload))

    runtime.bus.subscribe(_on_cycle)
    scheduler = runtime.scheduler
    if interval is not None:
        scheduler.set_interval(interval * 1000)

    try:
        if now:
            scheduler.trigger_now()
        scheduler.start()
        console.print(
            f"[green]Autonomy enabled[/] — every {scheduler.interval_ms // 1000}s, "
            f"next run at {scheduler.next_run_at:%H:%M:%S} UTC. [dim]Ctrl-C to stop.[/]"
        )
        while scheduler.enabled:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopping autonomy...[/]")
    finally:
        runtime.close()

    console.print("[dim]Autonomy disabled.[/]")


# ---------------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------------

@app.command()
def init(
    repo: Optional[Path] = typer.Argument(None, help="Path to repository"),
):
    """Initialize the .rulepilot directory in a repository."""
    _print_banner()

    repo = (repo or Path.cwd()).resolve()
    rp_dir = repo / ".rulepilot"
    rp_dir.mkdir(exist_ok=True)
    (rp_dir / "rules").mkdir(exist_ok=True)
    (rp_dir / "state").mkdir(exist_ok=True)
    (rp_dir / "logs").mkdir(exist_ok=True)

    config_path = rp_dir / "config.yaml"
    if not config_path.exists():
        config_path.write_text("""# RulePilot repo-level config overrides
# These merge with the built-in defaults.

# Pick models per agent role:
# routing:
#   executor: "anthropic/claude-sonnet-4-20250514"

# Run the scheduler every 10 minutes:
# scheduler:
#   interval_ms: 600000

# Change who counts as the automated actor:
# automation:
#   actor: "AI Assistant"
#   actor_aliases: ["AI"]
""")

    tasks_path = rp_dir / "tasks.yaml"
    if not tasks_path.exists():
        tasks_path.write_text("tasks: []\n")

    gitignore = repo / ".gitignore"
    ignore_entries = [".rulepilot/logs/", ".rulepilot/state/"]
    if gitignore.exists():
        content = gitignore.read_text()
        additions = [e for e in ignore_entries if e not in content]
        if additions:
            with open(gitignore, "a") as f:
                f.write("\n# RulePilot\n")
                for e in additions:
                    f.write(f"{e}\n")
    else:
        gitignore.write_text("# RulePilot\n" + "\n".join(ignore_entries) + "\n")

    console.print(f"[green]✅ Initialized RulePilot in {rp_dir}[/]")
    console.print(f"  Config: {config_path}")
    console.print(f"  Tasks:  {tasks_path}")
    console.print(f"  Rules:  {rp_dir / 'rules'}")


@app.command()
def status(
    repo: Path = REPO_OPTION,
):
    """Check RulePilot configuration and readiness."""
    _print_banner()

    keys = validate_api_keys()
    key_table = Table(title="API Keys", border_style="cyan")
    key_table.add_column("Key")
    key_table.add_column("Status")

    for key, available in keys.items():
        status_str = "[green]✓ Available[/]" if available else "[red]✗ Missing[/]"
        key_table.add_row(key, status_str)

    console.print(key_table)

    repo = repo.resolve()
    config = load_config(repo)
    console.print(f"\n[bold]Routing:[/]")
    console.print(f"  Executor:   {config.routing.executor}")
    console.print(f"  Summarizer: {config.routing.summarizer}")
    console.print(f"  Analyst:    {config.routing.analyst}")

    console.print(f"\n[bold]Limits:[/]")
    console.print(f"  Max tokens/cycle: {config.limits.max_tokens_per_cycle:,}")
    console.print(f"  Max $/cycle:      ${config.limits.max_dollars_per_cycle}")

    console.print(f"\n[bold]Automation:[/]")
    console.print(f"  Actor:     {', '.join(sorted(config.automation.identities))}")
    console.print(f"  Scheduler: {'enabled' if config.scheduler.enabled else 'disabled'}, "
                  f"every {config.scheduler.interval_ms // 1000}s")

    if not (repo / ".rulepilot").is_dir():
        console.print(f"\n[yellow]No .rulepilot directory in {repo}. Run `rulepilot init` first.[/]")
        return

    runtime = _open_runtime(repo)
    try:
        all_tasks = runtime.tasks.list_all()
        queue_table = Table(title="Workspace", border_style="magenta")
        queue_table.add_column("Property")
        queue_table.add_column("Value")
        for s in TaskStatus:
            queue_table.add_row(f"Tasks {s}", str(sum(1 for t in all_tasks if t.status == s)))
        queue_table.add_row("Eligible for automation", str(len(runtime.controller.eligible_tasks())))
        queue_table.add_row("Rules", str(len(runtime.rules.list_all())))
        queue_table.add_row("Pending suggestions", str(len(runtime.suggestions)))
        console.print(queue_table)
    except RulePilotError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)
    finally:
        runtime.close()


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

@tasks_app.command("list")
def tasks_list(
    repo: Path = REPO_OPTION,
    status_filter: Optional[TaskStatus] = typer.Option(None, "--status", "-s", help="Only tasks with this status"),
    automated: bool = typer.Option(False, "--automated", "-a", help="Only tasks assigned to the automated actor"),
):
    """List tasks in execution order."""
    runtime = _open_runtime(repo)
    try:
        tasks = runtime.tasks.list_all()
    finally:
        runtime.close()

    if status_filter:
        tasks = [t for t in tasks if t.status == status_filter]
    if automated:
        tasks = [t for t in tasks if runtime.controller.is_automated(t)]

    if not tasks:
        console.print("[dim]No tasks.[/]")
        return

    table = Table(title=f"Tasks ({len(tasks)})", border_style="cyan")
    table.add_column("ID", style="dim")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Priority")
    table.add_column("Assignee")
    table.add_column("Due", style="dim")
    table.add_column("Notes")

    for t in sort_tasks(tasks):
        table.add_row(
            t.id[:8],
            t.title,
            f"[{STATUS_COLORS[t.status]}]{t.status}[/]",
            f"[{PRIORITY_COLORS[t.priority]}]{t.priority}[/]",
            t.assignee or "",
            f"{t.due_date:%Y-%m-%d}" if t.due_date else "",
            (t.last_error or "")[:60],
        )

    console.print(table)


@tasks_app.command("add")
def tasks_add(
    title: Optional[str] = typer.Argument(None, help="Task title"),
    repo: Path = REPO_OPTION,
    from_text: Optional[str] = typer.Option(
        None, "--from-text", "-t", help="Describe the task in plain words and let the analyst fill in the fields",
    ),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    priority: Optional[TaskPriority] = typer.Option(None, "--priority", "-p"),
    assignee: Optional[str] = typer.Option(None, "--assignee", "-a", help="Use the automated actor to queue it"),
    due: Optional[datetime] = typer.Option(None, "--due", formats=["%Y-%m-%d"]),
    rule_id: Optional[str] = typer.Option(None, "--rule", help="Link the task to a rule"),
    verbose: bool = VERBOSE_OPTION,
):
    """Create a task, optionally parsed from a free-text description."""
    _configure_logging(verbose)
    if from_text is None and not (title or "").strip():
        console.print("[red]Task title cannot be empty.[/]")
        raise typer.Exit(1)

    runtime = _open_runtime(repo)
    try:
        fields = {"ai_generated": False}
        if from_text is not None:
            parsed = runtime.analyst.parse_task(from_text)
            fields = parsed.model_dump(exclude_none=True)
            fields["ai_generated"] = True

        # Explicit options win over parsed fields.
        overrides = {
            "title": (title or "").strip() or None,
            "description": description,
            "priority": priority,
            "assignee": assignee,
            "due_date": due,
            "rule_id": rule_id,
        }
        fields.update({k: v for k, v in overrides.items() if v is not None})
        task = runtime.tasks.create(**fields)
    except RulePilotError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)
    finally:
        runtime.close()

    console.print(f"[green]✅ Created task {task.id}[/] — {task.title}")


@tasks_app.command("suggest-assignee")
def tasks_suggest_assignee(
    task_id: str = typer.Argument(..., help="Task ID"),
    repo: Path = REPO_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Ask the analyst who should pick up a task."""
    _configure_logging(verbose)

    runtime = _open_runtime(repo)
    try:
        task = runtime.tasks.get_by_id(task_id)
        if task is None:
            console.print(f"[red]Task with ID {task_id} not found[/]")
            raise typer.Exit(1)
        names = runtime.analyst.suggest_assignees(f"{task.title}\n\n{task.description or ''}".strip())
    finally:
        runtime.close()

    if not names:
        console.print("[dim]No assignee suggestions.[/]")
        return
    console.print(f"[bold]{task.title}[/]")
    for name in names:
        console.print(f"  • {name}")


@tasks_app.command("estimate")
def tasks_estimate(
    task_id: str = typer.Argument(..., help="Task ID"),
    repo: Path = REPO_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Estimate a task's complexity and store it."""
    _configure_logging(verbose)

    runtime = _open_runtime(repo)
    try:
        task = runtime.tasks.get_by_id(task_id)
        if task is None:
            console.print(f"[red]Task with ID {task_id} not found[/]")
            raise typer.Exit(1)
        effort = runtime.analyst.estimate_effort(task)
        runtime.tasks.set_complexity(task.id, effort.complexity)
    except RulePilotError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)
    finally:
        runtime.close()

    console.print(
        f"[bold]{task.title}[/]\n"
        f"  Complexity: {effort.complexity}/5\n"
        f"  Estimated:  {effort.estimated_hours:g}h"
    )


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

@rules_app.command("list")
def rules_list(
    repo: Path = REPO_OPTION,
):
    """List rules."""
    runtime = _open_runtime(repo)
    try:
        rules = runtime.rules.list_all()
        tasks = runtime.tasks.list_all()
    finally:
        runtime.close()

    if not rules:
        console.print("[dim]No rules.[/]")
        return

    table = Table(title=f"Rules ({len(rules)})", border_style="cyan")
    table.add_column("ID", style="dim")
    table.add_column("Title")
    table.add_column("Tasks")
    table.add_column("Origin", style="dim")

    for r in rules:
        linked = [t for t in tasks if t.rule_id == r.id]
        done = sum(1 for t in linked if t.status == TaskStatus.COMPLETED)
        table.add_row(r.id, r.title, f"{done}/{len(linked)}", "suggested" if r.ai_generated else "human")

    console.print(table)


@rules_app.command("plan")
def rules_plan(
    rule_id: str = typer.Argument(..., help="Rule ID"),
    repo: Path = REPO_OPTION,
    assignee: Optional[str] = typer.Option(None, "--assignee", "-a", help="Assign the new tasks (default: unassigned)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show proposals without creating tasks"),
    verbose: bool = VERBOSE_OPTION,
):
    """Break a rule down into tasks."""
    _configure_logging(verbose)

    runtime = _open_runtime(repo)
    try:
        rule = runtime.rules.get_by_id(rule_id)
        if rule is None:
            console.print(f"[red]Rule with ID {rule_id} not found[/]")
            raise typer.Exit(1)

        console.print(f"[cyan]Analyzing rule \"{rule.title}\"...[/]")
        proposals = runtime.analyst.propose_tasks(rule)
        if not proposals:
            console.print("[yellow]No tasks proposed for this rule.[/]")
            return

        table = Table(title=f"Proposed tasks for {rule.id}", border_style="cyan")
        table.add_column("Title")
        table.add_column("Priority")
        table.add_column("Description", style="dim")
        for p in proposals:
            table.add_row(p.title, f"[{PRIORITY_COLORS[p.priority]}]{p.priority}[/]", p.description or "")
        console.print(table)

        if dry_run:
            return

        for p in proposals:
            runtime.tasks.create(
                title=p.title,
                description=p.description,
                status=p.status,
                priority=p.priority,
                assignee=assignee or p.assignee,
                rule_id=rule.id,
                ai_generated=True,
            )
    except RulePilotError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)
    finally:
        runtime.close()

    console.print(f"[green]✅ Created {len(proposals)} task(s) for rule {rule.id}[/]")


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------

INDEX_ARGUMENT = typer.Argument(..., min=1, help="Position as shown by `rulepilot suggestions list`")


@suggestions_app.command("list")
def suggestions_list(
    repo: Path = REPO_OPTION,
):
    """List rule suggestions waiting for review."""
    runtime = _open_runtime(repo)
    try:
        pending = runtime.suggestions.list()
    finally:
        runtime.close()

    if not pending:
        console.print("[dim]No pending suggestions.[/]")
        return

    table = Table(title=f"Suggested Rules ({len(pending)})", border_style="yellow")
    table.add_column("#", style="dim")
    table.add_column("Title")
    table.add_column("Source Task", style="dim")
    table.add_column("Preview")

    for i, s in enumerate(pending, start=1):
        first_line = next((line for line in s.content.splitlines() if line.strip()), "")
        table.add_row(str(i), s.title, (s.source_task_id or "Unknown")[:8], first_line[:60])

    console.print(table)


@suggestions_app.command("preview")
def suggestions_preview(
    index: int = INDEX_ARGUMENT,
    repo: Path = REPO_OPTION,
):
    """Show one suggested rule in full."""
    runtime = _open_runtime(repo)
    try:
        text = runtime.suggestions.preview(index - 1)
    except SuggestionIndexError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)
    finally:
        runtime.close()

    console.print(Panel(Markdown(text), border_style="yellow"))


@suggestions_app.command("approve")
def suggestions_approve(
    index: int = INDEX_ARGUMENT,
    repo: Path = REPO_OPTION,
):
    """Turn a suggestion into a rule."""
    runtime = _open_runtime(repo)
    try:
        rule_id = runtime.suggestions.approve(index - 1)
    except (SuggestionIndexError, RuleCreationError) as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)
    except StorageError as e:
        console.print(f"[red]Rule created but the suggestion queue was not updated: {e}[/]")
        raise typer.Exit(1)
    finally:
        runtime.close()

    console.print(f"[green]✅ Created rule {rule_id}[/]")


@suggestions_app.command("dismiss")
def suggestions_dismiss(
    index: int = INDEX_ARGUMENT,
    repo: Path = REPO_OPTION,
):
    """Discard a suggestion."""
    runtime = _open_runtime(repo)
    try:
        removed = runtime.suggestions.dismiss(index - 1)
    except (SuggestionIndexError, StorageError) as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)
    finally:
        runtime.close()

    console.print(f"[dim]Dismissed \"{removed.title}\"[/]")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _open_runtime(repo: Path) -> Runtime:
    repo = repo.resolve()
    if not repo.exists():
        console.print(f"[red]Repository not found: {repo}[/]")
        raise typer.Exit(1)
    return build_runtime(repo)


def _print_cycle_result(result: CycleResult) -> None:
    if result.is_empty:
        console.print("[dim]Cycle finished — nothing completed, created or suggested.[/]")
        return
    console.print(Panel(
        f"  Completed: {result.tasks_completed}\n"
        f"  Created:   {result.tasks_created}\n"
        f"  Suggested: {result.rules_suggested}",
        title="Cycle finished",
        border_style="green",
    ))
    if result.rules_suggested:
        console.print("[dim]Review suggestions with: rulepilot suggestions list[/]")


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    if verbose:
        logger.add(
            lambda msg: console.print(f"[dim]{escape(msg)}[/]", highlight=False),
            level="DEBUG",
            format="{time:HH:mm:ss} | {level:<7} | {message}",
        )
    else:
        logger.add(
            lambda msg: console.print(f"[dim]{escape(msg)}[/]", highlight=False),
            level="WARNING",
            format="{message}",
        )


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
