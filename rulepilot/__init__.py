"""RulePilot — autonomous task execution for project rules."""

from rulepilot.identity import __version__

__all__ = ["__version__"]
