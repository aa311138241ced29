"""
RulePilot Suggestion Queue

Durable, append-ordered staging area for rules proposed by the backend.
Humans approve (→ real rule) or dismiss (→ gone) by index.
Every mutation persists immediately and publishes `suggestions_changed`.
"""

from __future__ import annotations

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from rulepilot.errors import RuleCreationError, StorageError, SuggestionIndexError
from rulepilot.event_bus import SUGGESTIONS_CHANGED, EventBus
from rulepilot.models import SuggestedRule
from rulepilot.ports import RuleStore, SuggestionStorage

_SUGGESTION_LIST = TypeAdapter(list[SuggestedRule])


class SuggestionQueue:
    def __init__(self, storage: SuggestionStorage, rules: RuleStore, bus: EventBus | None = None):
        self.storage = storage
        self.rules = rules
        self.bus = bus or EventBus()
        self._items: list[SuggestedRule] = self._load()

    def _load(self) -> list[SuggestedRule]:
        try:
            stored = self.storage.get()
        except StorageError as e:
            logger.warning(f"[SUGGEST] Discarding unreadable suggestion data: {e}")
            self.storage.set([])
            return []

        if stored is None:
            return []

        try:
            items = _SUGGESTION_LIST.validate_python(stored)
        except ValidationError as e:
            logger.warning(f"[SUGGEST] Discarding invalid suggestion data: {e.error_count()} error(s)")
            self.storage.set([])
            return []

        logger.debug(f"[SUGGEST] Loaded {len(items)} pending suggestion(s)")
        return items

    def _commit(self, items: list[SuggestedRule]) -> None:
        # Memory only changes once storage accepted the new list.
        self.storage.set(_SUGGESTION_LIST.dump_python(items, mode="json", by_alias=True))
        self._items = items
        self.bus.emit(SUGGESTIONS_CHANGED, "suggestions", {"count": len(items)})

    def _check_index(self, index: int) -> SuggestedRule:
        if not 0 <= index < len(self._items):
            logger.error(f"[SUGGEST] Invalid suggestion index: {index}")
            raise SuggestionIndexError(index, len(self._items))
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def list(self) -> list[SuggestedRule]:
        """Snapshot of pending suggestions; mutating it does not touch the queue."""
        return [item.model_copy() for item in self._items]

    def append(self, item: SuggestedRule) -> None:
        self._commit([*self._items, item])

    def extend(self, items: list[SuggestedRule]) -> int:
        """Append a batch with one persist and one notification. Returns the count added."""
        if not items:
            return 0
        self._commit([*self._items, *items])
        return len(items)

    def approve(self, index: int) -> str:
        """Turn a suggestion into a rule; the suggestion stays queued if creation fails.

        Raises:
            SuggestionIndexError: If the index is out of range.
            RuleCreationError: If the rule store did not create the rule.
            StorageError: If the shortened queue could not be written. The rule
                exists and the suggestion is still queued.
        """
        suggestion = self._check_index(index)
        logger.info(f"[SUGGEST] Approving suggested rule: \"{suggestion.title}\"")

        try:
            rule_id = self.rules.create_from_suggestion(suggestion.title, suggestion.content, ai_generated=True)
        except Exception as e:
            raise RuleCreationError(f"Error creating rule \"{suggestion.title}\": {e}") from e
        if not rule_id:
            raise RuleCreationError(f"Failed to create rule \"{suggestion.title}\"; it remains as a suggestion")

        self._commit(self._items[:index] + self._items[index + 1:])
        return rule_id

    def dismiss(self, index: int) -> SuggestedRule:
        """Remove a suggestion unconditionally.

        Raises:
            SuggestionIndexError: If the index is out of range.
            StorageError: If the shortened queue could not be written.
        """
        suggestion = self._check_index(index)
        logger.info(f"[SUGGEST] Dismissing suggested rule: \"{suggestion.title}\"")
        self._commit(self._items[:index] + self._items[index + 1:])
        return suggestion

    def preview(self, index: int) -> str:
        """Render one suggestion as markdown for review."""
        suggestion = self._check_index(index)
        return (
            f"# Suggested Rule: {suggestion.title}\n\n"
            f"**Source Task ID:** {suggestion.source_task_id or 'Unknown'}\n\n"
            f"---\n\n"
            f"{suggestion.content}\n"
        )
