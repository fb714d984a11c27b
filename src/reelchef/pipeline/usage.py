"""
Cost estimation and usage aggregation for structuring calls.

Costs are in EUR per 1M tokens and kept as Decimal so that summing
usage in any order gives identical totals.
"""

from collections.abc import Iterable
from datetime import UTC, datetime
from decimal import Decimal

from .models import UsageMetrics

# Per 1M tokens, EUR (converted from Gemini list prices)
MODEL_COSTS_EUR: dict[str, dict[str, Decimal]] = {
    "gemini-flash-latest": {"input": Decimal("0.28"), "output": Decimal("2.30")},
    "gemini-2.5-flash": {"input": Decimal("0.28"), "output": Decimal("2.30")},
    "gemini-flash-lite-latest": {"input": Decimal("0.09"), "output": Decimal("0.37")},
    "gemini-2.5-flash-lite": {"input": Decimal("0.09"), "output": Decimal("0.37")},
    "gemini-2.5-pro": {"input": Decimal("1.15"), "output": Decimal("9.20")},
}
DEFAULT_MODEL = "gemini-flash-latest"
_PER_TOKENS = Decimal(1_000_000)


def calculate_cost(model: str, prompt_tokens: int, candidates_tokens: int) -> Decimal:
    """
    Estimate the cost of a structuring call.

    Unknown models are priced like the default flash model.
    Returns cost in EUR.
    """
    costs = MODEL_COSTS_EUR.get(model, MODEL_COSTS_EUR[DEFAULT_MODEL])

    input_cost = Decimal(max(prompt_tokens, 0)) / _PER_TOKENS * costs["input"]
    output_cost = Decimal(max(candidates_tokens, 0)) / _PER_TOKENS * costs["output"]

    return input_cost + output_cost


def build_usage(
    model: str,
    prompt_tokens: int | None,
    candidates_tokens: int | None,
    total_tokens: int | None = None,
) -> UsageMetrics:
    """Build UsageMetrics from raw (possibly missing) backend token counts."""
    prompt = prompt_tokens or 0
    candidates = candidates_tokens or 0
    total = total_tokens if total_tokens is not None else prompt + candidates
    return UsageMetrics(
        prompt_tokens=prompt,
        candidates_tokens=candidates,
        total_tokens=total,
        cost_eur=calculate_cost(model, prompt, candidates),
    )


def aggregate_usage(metrics: Iterable[UsageMetrics | None]) -> UsageMetrics:
    """Sum usage from every structuring call of one request. Missing entries count as zero."""
    total = UsageMetrics()
    for item in metrics:
        if item is not None:
            total = total + item
    return total


class UsageTracker:
    """
    Track usage across the stages of one request.

    Usage:
        tracker = UsageTracker()
        tracker.add(web_usage, stage="web")
        tracker.add(video_usage, stage="video")
        print(tracker.total.total_tokens)
    """

    def __init__(self):
        self.calls: list[dict] = []

    def add(self, usage: UsageMetrics | None, stage: str = "unknown") -> None:
        """Record one call. None (backend reported no usage) is recorded as zero."""
        usage = usage or UsageMetrics()
        self.calls.append({
            "timestamp": datetime.now(UTC).isoformat(),
            "stage": stage,
            "usage": usage,
        })

    @property
    def total(self) -> UsageMetrics:
        return aggregate_usage(call["usage"] for call in self.calls)

    def summary(self) -> dict:
        """Get a summary of tracked usage."""
        total = self.total
        return {
            "total_calls": len(self.calls),
            "total_tokens": total.total_tokens,
            "total_cost_eur": float(total.cost_eur),
            "by_stage": self._costs_by_stage(),
        }

    def _costs_by_stage(self) -> dict[str, float]:
        """Get costs grouped by stage."""
        by_stage: dict[str, Decimal] = {}
        for call in self.calls:
            stage = call["stage"]
            by_stage[stage] = by_stage.get(stage, Decimal("0")) + call["usage"].cost_eur
        return {k: float(v) for k, v in by_stage.items()}
