"""
Unit tests for the usage ledger.

Tests spend versus savings accounting per event kind.
"""

from datetime import datetime, timezone

import pytest

from llm_cassette.core.ledger import UsageLedger
from llm_cassette.core.token_counter import TokenUsage


USAGE = TokenUsage(prompt_tokens=100, completion_tokens=50, total_tokens=150)


class TestUsageLedger:
    """Test event recording and summaries."""

    def test_replay_saves_without_spending(self):
        """Verify a replay adds 0.045 saved and no tokens to totals."""
        ledger = UsageLedger()

        event = ledger.on_call("replay", "k", "gpt-4o-mini", USAGE)
        summary = ledger.summary()

        assert event.saved_usd == pytest.approx(0.045)
        assert event.saved_tokens == 150
        assert event.cost_usd == 0.0
        assert summary.total.saved_usd == pytest.approx(0.045)
        assert summary.total.total_tokens == 0
        assert summary.total.cost_usd == 0.0
        assert summary.total.calls == 1

    def test_record_counts_as_spend(self):
        ledger = UsageLedger()

        ledger.on_call("record", "k", "gpt-4o-mini", USAGE)
        total = ledger.summary().total

        assert total.cost_usd == pytest.approx(0.045)
        assert total.total_tokens == 150
        assert total.prompt_tokens == 100
        assert total.completion_tokens == 50
        assert total.saved_usd == 0.0

    def test_include_replay_in_totals(self):
        """Verify the inclusion switch counts replay tokens."""
        ledger = UsageLedger(include_replay_in_totals=True)

        ledger.on_call("replay", "k", "gpt-4o-mini", USAGE)

        assert ledger.summary().total.total_tokens == 150

    def test_replay_cost_shown_when_not_zeroed(self):
        ledger = UsageLedger(zero_out_replay_in_calls=False)

        event = ledger.on_call("replay", "k", "gpt-4o-mini", USAGE)

        assert event.cost_usd == pytest.approx(0.045)

    def test_mock_events(self):
        """Verify mock defaults: excluded from totals, cost shown."""
        ledger = UsageLedger()

        event = ledger.on_call("mock", "k", "gpt-4o-mini", USAGE)
        ledger.on_call("mock", "k2", "mock")

        assert event.cost_usd == pytest.approx(0.045)
        assert ledger.summary().total.total_tokens == 0
        assert ledger.summary().total.saved_tokens == 150

    def test_zero_out_mock(self):
        ledger = UsageLedger(zero_out_mock_in_calls=True, include_mock_in_totals=True)

        event = ledger.on_call("mock", "k", "gpt-4o-mini", USAGE)

        assert event.cost_usd == 0.0
        assert ledger.summary().total.total_tokens == 150

    def test_unknown_model_has_no_cost(self):
        ledger = UsageLedger()

        event = ledger.on_call("live", "k", "some-local-model", USAGE)

        assert event.cost_usd is None
        assert ledger.summary().total.cost_usd == 0.0
        assert ledger.summary().total.total_tokens == 150

    def test_explicit_cost_and_time(self):
        ledger = UsageLedger()
        at = datetime(2024, 1, 1, tzinfo=timezone.utc)

        event = ledger.on_call("live", "k", "gpt-4o-mini", USAGE, at=at, cost_usd=1.25)

        assert event.cost_usd == 1.25
        assert event.at == at

    def test_events_and_reset(self):
        """Verify events are listed in order and cleared by reset."""
        ledger = UsageLedger()
        ledger.on_call("live", "a", "gpt-4o-mini", USAGE)
        ledger.on_call("replay", "b", "gpt-4o-mini", USAGE)

        assert [e.key for e in ledger.events] == ["a", "b"]
        assert [e.key for e in ledger.summary().calls] == ["a", "b"]

        ledger.reset()

        assert ledger.events == []
        assert ledger.summary().total.calls == 0
