"""
RulePilot Agent Roster

Each agent is:
  - A system prompt
  - A structured input template
  - A constrained output schema

Agents are stateless between runs. State lives in the stores.
"""

from __future__ import annotations

from typing import Any

from rulepilot.ports import ReasoningBackend


class BaseAgent:
    """
    Base class for all RulePilot agents.

    Subclasses define:
      - role: str — maps to router model
      - system_prompt: str — agent constraints
      - prompt builders and parsers for their own inputs and outputs
    """

    role: str = "unknown"
    system_prompt: str = "You are a helpful assistant. Respond with JSON only."

    def __init__(self, backend: ReasoningBackend):
        self.backend = backend

    def ask(self, prompt: str) -> Any:
        """Send one prompt to the backend and return the parsed JSON reply."""
        return self.backend.analyze(prompt, role=self.role, system_prompt=self.system_prompt)
