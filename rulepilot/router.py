"""
RulePilot Router — Vendor-Agnostic Reasoning Backend

Routes agent calls through LiteLLM so agents never know
which vendor is backing them. Handles budget tracking,
timeouts, retries, JSON reply parsing and structured logging.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any

import litellm
from loguru import logger
from pydantic import BaseModel
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from rulepilot.config_loader import RulePilotConfig
from rulepilot.errors import BackendError, BackendResponseError, BudgetExceededError


# ---------------------------------------------------------------------------
# Usage Tracking
# ---------------------------------------------------------------------------

@dataclass
class UsageRecord:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0
    call_count: int = 0


@dataclass
class BudgetTracker:
    """Tracks token + dollar spend per autonomy cycle."""
    max_tokens: int = 200_000
    max_dollars: float = 5.0
    usage: UsageRecord = field(default_factory=UsageRecord)

    @property
    def tokens_remaining(self) -> int:
        return max(0, self.max_tokens - self.usage.total_tokens)

    @property
    def dollars_remaining(self) -> float:
        return max(0.0, self.max_dollars - self.usage.estimated_cost)

    @property
    def budget_exceeded(self) -> bool:
        return self.usage.total_tokens >= self.max_tokens or self.usage.estimated_cost >= self.max_dollars

    def record(self, response: Any) -> None:
        """Record usage from a LiteLLM response.

        Extracts token usage from the response object and updates the internal
        counters. Cost is estimated with LiteLLM's cost calculator when the
        model is known to it.

        Args:
            response (Any): The response object returned by LiteLLM.
        """
        usage = getattr(response, "usage", None)
        if usage:
            self.usage.prompt_tokens += getattr(usage, "prompt_tokens", 0) or 0
            self.usage.completion_tokens += getattr(usage, "completion_tokens", 0) or 0
            self.usage.total_tokens += getattr(usage, "total_tokens", 0) or 0

        try:
            self.usage.estimated_cost += litellm.completion_cost(completion_response=response)
        except Exception as e:
            logger.debug(f"[ROUTER] No cost estimate available: {e}")

        self.usage.call_count += 1

    def reset(self) -> None:
        self.usage = UsageRecord()

    def summary(self) -> dict:
        return {
            "total_tokens": self.usage.total_tokens,
            "estimated_cost": round(self.usage.estimated_cost, 4),
            "call_count": self.usage.call_count,
            "tokens_remaining": self.tokens_remaining,
            "dollars_remaining": round(self.dollars_remaining, 4),
        }


# ---------------------------------------------------------------------------
# Model capability helpers
# ---------------------------------------------------------------------------

def _is_restricted_model(model: str) -> bool:
    """GPT-5 and o-series reasoning models don't support temperature."""
    normalized = model.lower().replace("openai/", "")
    return normalized.startswith(("gpt-5", "o1", "o3", "o4"))


def _build_kwargs(
    model: str,
    messages: list[dict[str, str]],
    temperature: float,
    max_tokens: int,
    timeout: float,
    response_format: dict | None,
) -> dict[str, Any]:
    """Build LiteLLM kwargs with per-model param filtering."""
    kwargs: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": max_tokens,
        "timeout": timeout,
    }

    if not _is_restricted_model(model):
        kwargs["temperature"] = temperature

    if response_format:
        kwargs["response_format"] = response_format

    return kwargs


def parse_json_reply(content: str) -> Any:
    """Parse a model reply as JSON, tolerating markdown code fences."""
    text = content.strip()
    if text.startswith("```"):
        lines = [
            line for line in text.split("\n")
            if not line.strip().startswith("```") and line.strip().lower() != "json"
        ]
        text = "\n".join(lines).strip()

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        logger.debug(f"[ROUTER] Raw reply: {text[:500]}")
        raise BackendResponseError(f"Backend reply could not be parsed as JSON: {e}") from e


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

class RouterResponse(BaseModel):
    content: str
    model: str
    tokens_used: int = 0
    cost: float = 0.0
    latency_ms: int = 0


class Router:
    """
    Vendor-agnostic reasoning backend.

    Agents call `router.analyze(prompt, role=...)`.
    The router resolves the model, enforces budget, retries transient
    failures and returns the parsed JSON reply.
    """

    def __init__(self, config: RulePilotConfig):
        self.config = config
        self.budget = BudgetTracker(
            max_tokens=config.limits.max_tokens_per_cycle,
            max_dollars=config.limits.max_dollars_per_cycle,
        )
        self._role_model_map = {
            "executor": config.routing.executor,
            "summarizer": config.routing.summarizer,
            "analyst": config.routing.analyst,
        }
        self._complete_with_retry = retry(
            stop=stop_after_attempt(config.limits.max_attempts),
            wait=wait_exponential(min=1, max=10),
            retry=retry_if_not_exception_type((BudgetExceededError, ValueError)),
            reraise=True,
        )(self._complete_once)

        litellm.suppress_debug_info = True

    def resolve_model(self, role: str) -> str:
        """Resolve an agent role to a specific model string.

        Raises:
            ValueError: If the role is not in the role-to-model mapping.
        """
        model = self._role_model_map.get(role)
        if not model:
            raise ValueError(f"Unknown agent role: {role}. Known: {list(self._role_model_map)}")
        return model

    def complete(
        self,
        role: str,
        messages: list[dict[str, str]],
        temperature: float = 0.2,
        max_tokens: int = 4096,
        response_format: dict | None = None,
    ) -> RouterResponse:
        """Send a completion request through LiteLLM, retrying transient failures."""
        return self._complete_with_retry(role, messages, temperature, max_tokens, response_format)

    def _complete_once(
        self,
        role: str,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int,
        response_format: dict | None,
    ) -> RouterResponse:
        if self.budget.budget_exceeded:
            raise BudgetExceededError(f"Budget exceeded: {self.budget.summary()}")

        model = self.resolve_model(role)
        start = time.monotonic()

        logger.debug(f"[ROUTER] {role} → {model} ({len(messages)} messages)")

        kwargs = _build_kwargs(
            model, messages, temperature, max_tokens,
            self.config.limits.request_timeout_s, response_format,
        )
        response = litellm.completion(**kwargs)
        elapsed_ms = int((time.monotonic() - start) * 1000)

        self.budget.record(response)

        content = response.choices[0].message.content or ""

        logger.debug(
            f"[ROUTER] {role} complete — "
            f"{self.budget.usage.total_tokens} tokens, "
            f"${self.budget.usage.estimated_cost:.4f}, "
            f"{elapsed_ms}ms"
        )

        return RouterResponse(
            content=content,
            model=model,
            tokens_used=getattr(response.usage, "total_tokens", 0) or 0,
            cost=self.budget.usage.estimated_cost,
            latency_ms=elapsed_ms,
        )

    def analyze(self, prompt: str, *, role: str = "executor", system_prompt: str | None = None) -> Any:
        """Run one prompt in JSON mode and return the parsed reply.

        Raises:
            BudgetExceededError: If the cycle budget is spent.
            BackendResponseError: If the reply is not valid JSON.
            BackendError: For any other failure after retries.
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        try:
            response = self.complete(role, messages, response_format={"type": "json_object"})
        except BackendError:
            raise
        except Exception as e:
            raise BackendError(f"{role} request failed: {e}") from e

        return parse_json_reply(response.content)
