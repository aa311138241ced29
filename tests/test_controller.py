from datetime import datetime, timezone

from rulepilot.errors import StorageError
from rulepilot.event_bus import PERSISTENCE_ERROR, TASK_EXECUTED
from rulepilot.models import TaskPriority, TaskStatus


def test_no_eligible_tasks_yields_empty_result(controller, task_store, backend):
    task_store.add(id="t1", title="Human work", assignee="alice")
    task_store.add(id="t2", title="Already done", assignee="AI Assistant", status=TaskStatus.COMPLETED)
    task_store.add(id="t3", title="Stuck", assignee="AI", status=TaskStatus.BLOCKED)

    result = controller.run_cycle()

    assert (result.tasks_completed, result.tasks_created, result.rules_suggested) == (0, 0, 0)
    assert backend.calls == []


def test_eligible_tasks_include_aliases_and_are_sorted(controller, task_store):
    task_store.add(id="low", title="Low", assignee="AI Assistant", priority=TaskPriority.LOW)
    task_store.add(id="crit", title="Crit", assignee="AI", priority=TaskPriority.CRITICAL)
    task_store.add(id="wip", title="Wip", assignee="AI", status=TaskStatus.IN_PROGRESS, priority=TaskPriority.CRITICAL)
    task_store.add(
        id="due", title="Due", assignee="AI Assistant", priority=TaskPriority.LOW,
        due_date=datetime(2024, 2, 1, tzinfo=timezone.utc),
    )

    assert [t.id for t in controller.eligible_tasks()] == ["crit", "due", "low", "wip"]


def test_cycle_counts_completions_and_creates_follow_ups(controller, task_store, backend, suggestions, events):
    task_store.add(id="t1", title="Build feature", assignee="AI Assistant", rule_id="r1")
    backend.script("executor", {
        "completed": True,
        "result": "built",
        "generatedTasks": [
            {"title": "Write tests", "priority": "high"},
            {"title": "Document it", "assignee": "bob"},
        ],
        "suggestedRules": [{"title": "Test everything", "content": "Every feature ships with tests."}],
    })

    result = controller.run_cycle()

    assert (result.tasks_completed, result.tasks_created, result.rules_suggested) == (1, 2, 1)
    created = {t.title: t for t in task_store.list_all() if t.id != "t1"}
    assert created["Write tests"].assignee == "AI Assistant"
    assert created["Write tests"].priority == TaskPriority.HIGH
    assert created["Write tests"].rule_id == "r1"
    assert created["Write tests"].ai_generated
    assert created["Document it"].assignee == "bob"
    assert suggestions.list()[0].source_task_id == "t1"
    assert any(e.event_type == TASK_EXECUTED and e.payload["task_id"] == "t1" for e in events)


def test_follow_ups_are_not_executed_in_the_same_cycle(controller, task_store, backend):
    task_store.add(id="t1", title="Start", assignee="AI Assistant")
    backend.script("executor", {"completed": True, "generatedTasks": [{"title": "Next step"}]})

    controller.run_cycle()

    assert len(backend.prompts("executor")) == 1


def test_blocked_task_skips_follow_ups(controller, task_store, backend, suggestions):
    task_store.add(id="t1", title="Try", assignee="AI Assistant")
    backend.script("executor", {
        "blocked": True,
        "result": "no access",
        "generatedTasks": [{"title": "Get access"}],
        "suggestedRules": [{"title": "Access", "content": "Grant access early."}],
    })

    result = controller.run_cycle()

    assert (result.tasks_completed, result.tasks_created, result.rules_suggested) == (0, 0, 0)
    assert len(task_store.list_all()) == 1
    assert len(suggestions) == 0


def test_one_failing_task_does_not_stop_the_cycle(controller, task_store, backend):
    task_store.add(id="t1", title="First", assignee="AI Assistant", priority=TaskPriority.HIGH)
    task_store.add(id="t2", title="Second", assignee="AI Assistant", priority=TaskPriority.LOW)
    backend.script("executor", RuntimeError("boom"), {"completed": True})

    result = controller.run_cycle()

    assert result.tasks_completed == 1
    assert task_store.get_by_id("t1").status == TaskStatus.BLOCKED
    assert task_store.get_by_id("t2").status == TaskStatus.COMPLETED


def test_task_vanishing_mid_cycle_is_skipped(controller, task_store, backend):
    task_store.add(id="t1", title="First", assignee="AI Assistant", priority=TaskPriority.HIGH)
    task_store.add(id="t2", title="Second", assignee="AI Assistant", priority=TaskPriority.LOW)

    def vanish(prompt, *, role="executor", system_prompt=None):
        task_store._tasks.pop("t2", None)
        return {"completed": True}

    backend.analyze = vanish

    result = controller.run_cycle()

    assert result.tasks_completed == 1


def test_follow_up_persistence_failure_is_published(controller, task_store, backend, events):
    task_store.add(id="t1", title="Start", assignee="AI Assistant")
    backend.script("executor", {"completed": True, "generatedTasks": [{"title": "Next"}]})
    task_store.fail_create = True

    result = controller.run_cycle()

    assert result.tasks_completed == 1
    assert result.tasks_created == 0
    assert any(e.event_type == PERSISTENCE_ERROR for e in events)


def test_listing_failure_returns_partial_result(controller, task_store):
    def broken():
        raise OSError("store offline")

    task_store.list_all = broken

    result = controller.run_cycle()

    assert result.is_empty


def test_suggestion_write_failure_is_not_counted(controller, task_store, backend, suggestions, suggestion_storage, events):
    task_store.add(id="t1", title="Audit", assignee="AI Assistant")
    backend.script("executor", {
        "completed": True,
        "suggestedRules": [{"title": "Pin deps", "content": "Always pin."}],
    })
    suggestion_storage.fail_writes = True

    result = controller.run_cycle()

    assert result.rules_suggested == 0
    assert len(suggestions) == 0
    [error] = [e for e in events if e.event_type == PERSISTENCE_ERROR]
    assert error.payload["operation"] == "store_suggestions"
    assert error.payload["task_id"] == "t1"


def test_task_state_write_failure_is_published(controller, task_store, backend, events):
    task_store.add(id="t1", title="First", assignee="AI Assistant", priority=TaskPriority.HIGH)
    task_store.add(id="t2", title="Second", assignee="AI Assistant", priority=TaskPriority.LOW)
    task_store.fail_updates = True

    result = controller.run_cycle()

    assert result.is_empty
    assert backend.calls == []
    errors = [e.payload for e in events if e.event_type == PERSISTENCE_ERROR]
    assert [(p["operation"], p["task_id"]) for p in errors] == [("execute_task", "t1"), ("execute_task", "t2")]
    assert "read-only" in errors[0]["error"]


def test_task_listing_storage_failure_is_published(controller, task_store, events):
    def unreadable():
        raise StorageError("tasks.yaml is not valid YAML")

    task_store.list_all = unreadable

    result = controller.run_cycle()

    assert result.is_empty
    [error] = [e.payload for e in events if e.event_type == PERSISTENCE_ERROR]
    assert error["operation"] == "list_tasks"
    assert error["task_id"] is None
