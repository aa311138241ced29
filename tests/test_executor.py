import pytest

from fakes import FakeProject
from rulepilot.agents.executor import ExecutorAgent
from rulepilot.context import ContextAssembler
from rulepilot.errors import BackendError, TaskNotFoundError
from rulepilot.executor import TaskExecutor
from rulepilot.models import ProjectSummary, Rule, TaskStatus


class NetworkError(Exception):
    pass


def test_backend_failure_blocks_task(executor, task_store, backend):
    task_store.add(id="t1", title="Ship it", assignee="AI Assistant")
    backend.script("executor", NetworkError("connection reset"))

    result = executor.execute("t1")

    stored = task_store.get_by_id("t1")
    assert result.status == TaskStatus.BLOCKED
    assert not result.completed
    assert stored.status == TaskStatus.BLOCKED
    assert stored.last_error.startswith("Execution error:")
    assert "connection reset" in stored.last_error


def test_task_moves_to_in_progress_before_backend_call(executor, task_store, backend):
    task_store.add(id="t1", title="Ship it")
    backend.script("executor", {"completed": True, "result": "shipped"})

    executor.execute("t1")

    assert [s for _, s, _ in task_store.status_history] == [TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED]


def test_completed_verdict_clears_last_error(executor, task_store, backend):
    task_store.add(id="t1", title="Retry", last_error="Reasoning blocked: earlier")
    backend.script("executor", {"completed": True, "result": "fine now"})

    result = executor.execute("t1")

    assert result.completed
    assert result.result == "fine now"
    assert task_store.get_by_id("t1").last_error is None


def test_backend_declared_block_records_reason(executor, task_store, backend):
    task_store.add(id="t1", title="Deploy")
    backend.script("executor", {"blocked": True, "result": "Missing credentials"})

    executor.execute("t1")

    assert task_store.get_by_id("t1").last_error == "Reasoning blocked: Missing credentials"


def test_block_without_reason_gets_placeholder(executor, task_store, backend):
    task_store.add(id="t1", title="Deploy")
    backend.script("executor", {"blocked": True})

    executor.execute("t1")

    assert task_store.get_by_id("t1").last_error == "Reasoning blocked: No specific reason provided."


def test_unknown_task_raises(executor):
    with pytest.raises(TaskNotFoundError):
        executor.execute("missing")


def test_already_completed_task_is_not_re_executed(executor, task_store, backend):
    task_store.add(id="t1", title="Done", status=TaskStatus.COMPLETED)

    result = executor.execute("t1")

    assert result.completed
    assert result.result == "Task was already completed."
    assert backend.calls == []
    assert task_store.status_history == []


def test_follow_ups_are_returned_not_created(executor, task_store, backend):
    task_store.add(id="t1", title="Audit")
    backend.script("executor", {
        "completed": True,
        "generatedTasks": [{"title": "Fix finding"}],
        "suggestedRules": [{"title": "Pin deps", "content": "Always pin."}],
    })

    result = executor.execute("t1")

    assert [p.title for p in result.generated_tasks] == ["Fix finding"]
    assert result.suggested_rules[0].source_task_id == "t1"
    assert len(task_store.list_all()) == 1


def test_backend_complexity_is_persisted(executor, task_store, backend):
    task_store.add(id="t1", title="Audit", complexity=2)
    backend.script("executor", {"result": "started", "complexity": 4})

    executor.execute("t1")

    assert task_store.get_by_id("t1").complexity == 4


def test_rule_and_siblings_reach_the_prompt(task_store, rule_store, fs, backend):
    rule_store._rules["r1"] = Rule(id="r1", title="Style", content="Use black")
    task_store.add(id="t1", title="Format code", rule_id="r1")
    task_store.add(id="t2", title="Sibling work", rule_id="r1")
    backend.script("executor", {"completed": True})
    executor = TaskExecutor(
        task_store, rule_store, ContextAssembler(fs), ExecutorAgent(backend),
        project=FakeProject(ProjectSummary(root_dirs=["src"])),
    )

    executor.execute("t1")

    prompt = backend.prompts("executor")[0]
    assert "Use black" in prompt
    assert "Sibling work (ID: t2" in prompt
    assert "Format code (ID: t1" not in prompt
    assert "Root Dirs: src" in prompt


def test_missing_rule_and_project_errors_degrade(task_store, rule_store, fs, backend):
    task_store.add(id="t1", title="Orphan", rule_id="gone")
    backend.script("executor", {"completed": True})
    executor = TaskExecutor(
        task_store, rule_store, ContextAssembler(fs), ExecutorAgent(backend),
        project=FakeProject(error=OSError("unreadable")),
    )

    result = executor.execute("t1")

    assert result.completed
    assert "Associated Rule ID: gone" in backend.prompts("executor")[0]


def test_budget_errors_block_like_any_backend_failure(executor, task_store, backend):
    task_store.add(id="t1", title="Expensive")
    backend.script("executor", BackendError("Budget exceeded"))

    executor.execute("t1")

    assert task_store.get_by_id("t1").last_error == "Execution error: Budget exceeded"


def test_rule_paths_are_searched_even_without_rule_context(task_store, rule_store, fs, backend):
    rule_store._rules["r1"] = Rule(id="r1", title="Entry point", content="Keep src/app.py small.")
    fs.files["src/app.py"] = "print('hi')"
    task_store.add(id="t1", title="Tidy up", rule_id="r1")
    backend.script("executor", {"completed": True})
    executor = TaskExecutor(
        task_store, rule_store, ContextAssembler(fs, enable_summarization=False), ExecutorAgent(backend),
        include_rule_context=False,
    )

    executor.execute("t1")

    prompt = backend.prompts("executor")[0]
    assert fs.reads == ["src/app.py"]
    assert "print('hi')" in prompt
    assert "Keep src/app.py small." not in prompt
