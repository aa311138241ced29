import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

from loguru import logger
from pydantic import BaseModel, Field


CYCLE_STARTED = "cycle_started"
CYCLE_FINISHED = "cycle_finished"
TASK_EXECUTED = "task_executed"
SCHEDULER_STATE = "scheduler_state"
SUGGESTIONS_CHANGED = "suggestions_changed"
PERSISTENCE_ERROR = "persistence_error"


class RulePilotEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    event_type: str
    source: str
    payload: Dict[str, Any]


class EventBus:
    """A lightweight, synchronous event bus between the autonomy core and its observers."""

    def __init__(self):
        self._subscribers: List[Callable[[RulePilotEvent], None]] = []

    def subscribe(self, callback: Callable[[RulePilotEvent], None]) -> None:
        """Register a callback to be executed when an event is emitted."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[RulePilotEvent], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def emit(self, event_type: str, source: str, payload: Dict[str, Any] | None = None) -> RulePilotEvent:
        """Construct and broadcast a RulePilotEvent to all subscribers."""
        event = RulePilotEvent(
            event_type=event_type,
            source=source,
            payload=payload or {},
        )

        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception:
                # Observer failures never reach the emitter.
                logger.exception(f"[BUS] Subscriber failed on {event_type}")

        return event
