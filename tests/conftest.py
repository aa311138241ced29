from __future__ import annotations

import pytest

from fakes import (
    FakeBackend,
    FakeClock,
    FakeFileSystem,
    FakeProject,
    InMemoryRuleStore,
    InMemorySuggestionStorage,
    InMemoryTaskStore,
    ManualTimer,
)
from rulepilot.agents.executor import ExecutorAgent
from rulepilot.context import ContextAssembler
from rulepilot.controller import CycleController
from rulepilot.event_bus import EventBus
from rulepilot.executor import TaskExecutor
from rulepilot.suggestions import SuggestionQueue


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def events(bus):
    received = []
    bus.subscribe(received.append)
    return received


@pytest.fixture
def task_store(clock):
    return InMemoryTaskStore(clock=clock)


@pytest.fixture
def rule_store():
    return InMemoryRuleStore()


@pytest.fixture
def fs():
    return FakeFileSystem()


@pytest.fixture
def suggestion_storage():
    return InMemorySuggestionStorage()


@pytest.fixture
def suggestions(suggestion_storage, rule_store, bus):
    return SuggestionQueue(suggestion_storage, rule_store, bus)


@pytest.fixture
def executor(task_store, rule_store, fs, backend):
    return TaskExecutor(
        task_store,
        rule_store,
        ContextAssembler(fs, enable_summarization=False),
        ExecutorAgent(backend),
        project=FakeProject(),
    )


@pytest.fixture
def controller(task_store, executor, suggestions, bus):
    return CycleController(task_store, executor, suggestions, bus, actor="AI Assistant", actor_aliases=["AI"])


@pytest.fixture
def timer():
    return ManualTimer()
