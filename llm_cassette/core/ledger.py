"""
In-process usage ledger.

Tracks per-call token usage and cost, separating real spend (live and
record calls) from replayed or mocked calls, which cost nothing but still
report what they saved.

Two independent switches shape the numbers:
1. include_*_in_totals - whether replay/mock usage counts toward spend totals
2. zero_out_*_in_calls - whether the per-call cost shown for replay/mock is 0
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from .pricing import DEFAULT_PRICING_TABLE, PricingTable, calculate_cost
from .token_counter import TokenUsage
from llm_cassette.storage.models import UsageEvent


SAVING_MODES = ("replay", "mock")


@dataclass
class UsageTotals:
    """Aggregated figures over every event in the ledger."""
    calls: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost_usd: float = 0.0
    saved_usd: float = 0.0
    saved_tokens: int = 0


@dataclass
class LedgerSummary:
    """Totals plus the per-call events they were computed from."""
    total: UsageTotals
    calls: List[UsageEvent] = field(default_factory=list)


class UsageLedger:
    """Accumulates usage events for one process or session.

    Events are never persisted.
    """

    def __init__(
        self,
        pricing: PricingTable = DEFAULT_PRICING_TABLE,
        include_replay_in_totals: bool = False,
        include_mock_in_totals: bool = False,
        zero_out_replay_in_calls: bool = True,
        zero_out_mock_in_calls: bool = False
    ):
        self.pricing = pricing
        self.include_replay_in_totals = include_replay_in_totals
        self.include_mock_in_totals = include_mock_in_totals
        self.zero_out_replay_in_calls = zero_out_replay_in_calls
        self.zero_out_mock_in_calls = zero_out_mock_in_calls
        self._events: List[UsageEvent] = []

    @property
    def events(self) -> List[UsageEvent]:
        return list(self._events)

    def price(self, model: Optional[str], usage: Optional[TokenUsage]) -> Optional[float]:
        """Live-rate cost of a call; None for unknown models."""
        return calculate_cost(model, usage, self.pricing)

    def on_call(
        self,
        mode: str,
        key: str,
        model: str,
        usage: Optional[TokenUsage] = None,
        at: Optional[datetime] = None,
        cost_usd: Optional[float] = None
    ) -> UsageEvent:
        """Record one dispatched call.

        Args:
            mode: "live", "record", "replay" or "mock"
            key: Content key of the call
            model: Model identifier used for pricing
            usage: Token usage, if known
            at: Event time (defaults to now)
            cost_usd: Explicit cost overriding the pricing table

        Returns:
            The stored UsageEvent
        """
        cost = cost_usd if cost_usd is not None else self.price(model, usage)

        saved_usd = 0.0
        saved_tokens = 0
        if usage is not None and mode in SAVING_MODES:
            saved_usd = self.price(model, usage) or 0.0
            saved_tokens = usage.total_tokens

        if mode == "replay" and self.zero_out_replay_in_calls:
            cost = 0.0
        if mode == "mock" and self.zero_out_mock_in_calls:
            cost = 0.0

        event = UsageEvent(
            mode=mode,
            key=key,
            model=model,
            usage=usage,
            cost_usd=cost,
            saved_usd=saved_usd,
            saved_tokens=saved_tokens,
            at=at or datetime.now(timezone.utc)
        )
        self._events.append(event)
        return event

    def _counts_toward_totals(self, mode: str) -> bool:
        if mode == "replay":
            return self.include_replay_in_totals
        if mode == "mock":
            return self.include_mock_in_totals
        return True

    def summary(self) -> LedgerSummary:
        """Aggregate all events.

        Savings always accumulate; spend totals skip replay/mock events
        unless configured to include them.
        """
        total = UsageTotals()
        for event in self._events:
            total.calls += 1
            total.saved_usd += event.saved_usd
            total.saved_tokens += event.saved_tokens

            if not self._counts_toward_totals(event.mode):
                continue
            if event.usage is not None:
                total.prompt_tokens += event.usage.prompt_tokens
                total.completion_tokens += event.usage.completion_tokens
                total.total_tokens += event.usage.total_tokens
            total.cost_usd += event.cost_usd or 0.0

        total.cost_usd = round(total.cost_usd, 6)
        total.saved_usd = round(total.saved_usd, 6)
        return LedgerSummary(total=total, calls=list(self._events))

    def reset(self) -> None:
        self._events.clear()
