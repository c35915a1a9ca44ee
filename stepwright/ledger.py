"""
CostLedger - running token/cost totals for a run.

Steps that call a generative-AI service report the tokens they consumed
and the monetary cost of the call. The ledger accumulates these into
run-level totals that are persisted with the Run and reported to the
analytics sink when the run finishes.

Quota enforcement is not done here; totals are unbounded.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union, TYPE_CHECKING

if TYPE_CHECKING:
    from stepwright.schemas import StepResult

logger = logging.getLogger(__name__)

Number = Union[int, float, Decimal, str]


def to_decimal(value: Optional[Number]) -> Decimal:
    """Convert a reported cost into a Decimal.

    Floats go through str() so that 0.004 stays Decimal("0.004").

    Raises:
        ValueError: If the value is not a finite number
    """
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except InvalidOperation as e:
            raise ValueError(f"Invalid cost value: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Invalid cost value: {value!r}")
    return amount


def to_tokens(value: Any) -> Optional[int]:
    """Convert a reported token count into an int (None stays None).

    Raises:
        ValueError: If the value is not a number
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid token count: {value!r}")
    try:
        tokens = int(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise ValueError(f"Invalid token count: {value!r}") from e
    return tokens


@dataclass
class CostLedger:
    """
    Running usage totals for one Run.

    Attributes:
        tokens: Total tokens consumed by completed steps
        cost: Total monetary cost of completed steps
    """
    tokens: int = 0
    cost: Decimal = field(default_factory=lambda: Decimal("0"))

    def add(self, tokens: Optional[int] = None, cost: Optional[Number] = None) -> None:
        """
        Add usage to the running totals.

        Negative values are a handler defect: they are clamped to zero and
        logged, never subtracted.

        Args:
            tokens: Tokens consumed (None counts as zero)
            cost: Monetary cost (None counts as zero)
        """
        tokens = to_tokens(tokens) or 0
        amount = to_decimal(cost)

        if tokens < 0:
            logger.warning(f"Ignoring negative token count reported by step: {tokens}")
            tokens = 0
        if amount < 0:
            logger.warning(f"Ignoring negative cost reported by step: {amount}")
            amount = Decimal("0")

        self.tokens += tokens
        self.cost += amount

    def merge(self, result: "StepResult") -> None:
        """Add the usage carried by a StepResult."""
        self.add(result.tokens, result.cost)

    def copy(self) -> "CostLedger":
        return CostLedger(tokens=self.tokens, cost=self.cost)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {"tokens": self.tokens, "cost": str(self.cost)}

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "CostLedger":
        """Deserialize from dictionary."""
        data = data or {}
        return cls(
            tokens=int(data.get("tokens", 0)),
            cost=to_decimal(data.get("cost", "0")),
        )
