"""
AI suggestion handler.

Handles ai_suggestion steps via a CompletionClient, and reports the
tokens consumed and the cost of the call so the orchestrator can add them
to the run's CostLedger.

The orchestration layer stays free of completion service details.
"""

import json
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from stepwright.errors import PermanentError
from stepwright.handlers.base import Handler, RunContext
from stepwright.ledger import to_decimal
from stepwright.schemas import StepDefinition, StepResult

DEFAULT_MODEL = "gpt-4"
DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant for a developer platform. "
    "Provide concise, actionable suggestions."
)


@runtime_checkable
class CompletionClient(Protocol):
    """
    Protocol for generative-AI completion calls.

    This interface abstracts the completion service so that:
    1. stepwright has no AI vendor imports
    2. The backend can be swapped (OpenAI, Anthropic, local, mock)
    3. Testing is simplified via mock implementations
    """

    def complete(
        self,
        prompt: str,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        system_prompt: str | None = None,
    ) -> dict[str, Any]:
        """
        Run a completion and return the response.

        Returns:
            Dict with {"response": str, "model": str, "usage": {...}}
        """
        ...


class NoOpCompletionClient:
    """
    No-op implementation of CompletionClient for testing.

    Returns a canned response and zero usage.
    """

    def complete(
        self,
        prompt: str,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        system_prompt: str | None = None,
    ) -> dict[str, Any]:
        """Return mock completion response."""
        return {
            "response": "[noop response]",
            "model": model or "noop-model",
            "usage": {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0},
        }


class AISuggestionHandler(Handler):
    """
    Handler for ai_suggestion steps.

    Parameters:
        prompt (required): The user prompt
        context: Extra context, appended to the prompt as JSON
        model, temperature, max_tokens, system_prompt: Completion options
    """

    def __init__(self, client: CompletionClient, cost_per_1k_tokens: float = 0.03):
        """
        Initialize the handler.

        Args:
            client: CompletionClient implementation
            cost_per_1k_tokens: Price used to derive the step's cost
        """
        self._client = client
        self._cost_per_1k = to_decimal(cost_per_1k_tokens)

    def handle(self, step: StepDefinition, context: RunContext) -> StepResult:
        params = step.parameters
        prompt = params.get("prompt")
        if not prompt:
            raise PermanentError("ai_suggestion requires a 'prompt' parameter")

        extra = params.get("context")
        if extra:
            prompt = f"{prompt}\n\nContext: {json.dumps(extra, sort_keys=True, default=str)}"

        result = self._client.complete(
            prompt=prompt,
            model=params.get("model", DEFAULT_MODEL),
            temperature=params.get("temperature", 0.7),
            max_tokens=params.get("max_tokens", 500),
            system_prompt=params.get("system_prompt", DEFAULT_SYSTEM_PROMPT),
        )

        usage = result.get("usage") or {}
        tokens = int(usage.get("total_tokens") or 0)

        return StepResult(
            summary="AI suggestion generated",
            output=result.get("response") or "",
            tokens=tokens,
            cost=self.cost_for(tokens),
        )

    def cost_for(self, tokens: int) -> Decimal:
        """Price a completion by its total token count."""
        return Decimal(tokens) / Decimal(1000) * self._cost_per_1k
