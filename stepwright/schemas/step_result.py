"""
StepResult schema - the normalized outcome of one step.

Handlers return a StepResult (or a dict with the same keys). The
StepExecutor converts every other outcome (unknown type, exception,
timeout) into a failed StepResult, so the orchestrator only ever sees
this envelope.
"""

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Optional

from stepwright.ledger import to_decimal, to_tokens

ENVELOPE_KEYS = ("summary", "output", "error", "tokens", "cost")


@dataclass(frozen=True)
class StepResult:
    """
    Result envelope for one step execution.

    Attributes:
        summary: Short human-readable description of what happened
        output: Step-type-specific payload
        tokens: Tokens consumed (AI steps only)
        cost: Monetary cost (AI steps only)
        error: Error message if the step failed
    """
    summary: str = ""
    output: Any = None
    tokens: Optional[int] = None
    cost: Optional[Decimal] = None
    error: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "tokens", to_tokens(self.tokens))
        if self.cost is not None:
            object.__setattr__(self, "cost", to_decimal(self.cost))
        if self.error is not None:
            object.__setattr__(self, "error", str(self.error) or "step failed")

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: str) -> "StepResult":
        """Create a failed result."""
        return cls(error=error or "step failed")

    @classmethod
    def from_value(cls, value: Any) -> "StepResult":
        """
        Normalize a handler's return value.

        Accepts a StepResult, a dict with any StepResult key, or any other
        value (used as the output). A StepResult is validated again, since
        its fields may have been replaced after construction.

        Raises:
            ValueError: If tokens or cost are not valid numbers
        """
        if isinstance(value, StepResult):
            return replace(value)
        if isinstance(value, dict) and any(key in value for key in ENVELOPE_KEYS):
            return cls(
                summary=str(value.get("summary", "")),
                output=value.get("output"),
                tokens=value.get("tokens"),
                cost=value.get("cost"),
                error=value.get("error"),
            )
        return cls(output=value)
