"""
RulePilot error taxonomy.

Lookup errors fail the calling operation. Backend errors are caught per task
and turned into a blocked transition. Storage errors surface to the caller.
"""

from __future__ import annotations


class RulePilotError(Exception):
    pass


class TaskNotFoundError(RulePilotError, LookupError):
    def __init__(self, task_id: str):
        super().__init__(f"Task with ID {task_id} not found")
        self.task_id = task_id


class BackendError(RulePilotError):
    """The reasoning backend could not produce a reply."""
    pass


class BackendResponseError(BackendError):
    """The backend replied, but not with parseable JSON."""
    pass


class BudgetExceededError(BackendError):
    pass


class StorageError(RulePilotError):
    pass


class SuggestionIndexError(RulePilotError, IndexError):
    def __init__(self, index: int, size: int):
        super().__init__(f"Invalid suggestion index {index} (queue holds {size})")
        self.index = index
        self.size = size


class RuleCreationError(RulePilotError):
    pass
