"""
Tests for the usage ledger.
"""

from datetime import timedelta

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from ccmanager.testing.fixtures import FIXED_NOW
from ccmanager.types.usage import TimeRange, UsageMetric, UsageSample
from ccmanager.usage import UsageLedger, metric_value


def _sample(days_ago: float, claude: int = 0, codex: int = 0, calls: int = 1, cost: float = 0.0) -> UsageSample:
    tokens = {}
    if claude:
        tokens["claude"] = claude
    if codex:
        tokens["codex"] = codex
    return UsageSample(
        date=FIXED_NOW - timedelta(days=days_ago),
        tokens=tokens,
        api_calls=calls,
        cost=cost,
    )


class TestMetricValue:
    def test_tokens_summed_across_providers(self) -> None:
        assert metric_value(_sample(0, claude=100, codex=50), UsageMetric.TOKENS) == 150

    def test_tokens_for_one_provider(self) -> None:
        sample = _sample(0, claude=100, codex=50)

        assert metric_value(sample, UsageMetric.TOKENS, "codex") == 50
        assert metric_value(sample, UsageMetric.TOKENS, "other") == 0

    def test_api_calls_and_cost(self) -> None:
        sample = _sample(0, claude=10, calls=3, cost=0.25)

        assert metric_value(sample, UsageMetric.API_CALLS) == 3
        assert metric_value(sample, UsageMetric.COST) == 0.25


class TestQuery:
    def test_week_window_excludes_older_samples(self, ledger: UsageLedger) -> None:
        for days_ago in (0, 1, 6, 8, 40):
            ledger.record_sample(_sample(days_ago, claude=100))

        series = ledger.query(TimeRange.WEEK, UsageMetric.TOKENS)

        assert len(series.values()) == 3

    def test_window_boundaries_are_inclusive(self, ledger: UsageLedger) -> None:
        ledger.record_sample(_sample(7, claude=5))
        ledger.record_sample(_sample(0, claude=7))

        assert ledger.query(TimeRange.WEEK, UsageMetric.TOKENS).values() == [5, 7]

    def test_future_samples_are_excluded(self, ledger: UsageLedger) -> None:
        ledger.record_sample(_sample(-1, claude=5))

        assert ledger.query(TimeRange.DAY, UsageMetric.TOKENS).values() == []

    def test_series_is_chronological(self, ledger: UsageLedger) -> None:
        ledger.record_sample(_sample(1, claude=1))
        ledger.record_sample(_sample(3, claude=3))
        ledger.record_sample(_sample(2, claude=2))

        dates = [date for date, _ in ledger.query(TimeRange.WEEK, UsageMetric.TOKENS)]

        assert dates == sorted(dates)

    def test_series_is_restartable_and_live(self, ledger: UsageLedger) -> None:
        series = ledger.query(TimeRange.DAY, UsageMetric.API_CALLS)
        ledger.record_sample(_sample(0, claude=1, calls=2))

        assert list(series) == list(series)
        ledger.record_sample(_sample(0, claude=1, calls=4))
        assert series.values() == [2, 4]

    def test_accepts_timedelta(self, ledger: UsageLedger) -> None:
        ledger.record_sample(_sample(0.5, claude=10))
        ledger.record_sample(_sample(2, claude=10))

        assert ledger.total(timedelta(days=1), UsageMetric.TOKENS) == 10

    def test_total_per_provider(self, ledger: UsageLedger) -> None:
        ledger.record_sample(_sample(0, claude=100, codex=30))
        ledger.record_sample(_sample(1, claude=50))

        assert ledger.total(TimeRange.MONTH, UsageMetric.TOKENS, provider="claude") == 150
        assert ledger.total(TimeRange.MONTH, UsageMetric.TOKENS, provider="codex") == 30

    @given(
        ages=st.lists(st.integers(min_value=0, max_value=200), max_size=30),
        range_=st.sampled_from(list(TimeRange)),
    )
    @settings(max_examples=100)
    def test_property_query_returns_exactly_samples_in_window(
        self, ages: list[int], range_: TimeRange
    ) -> None:
        """
        Property 7: Windowed usage queries

        For any set of samples and any range, the query SHALL return exactly
        the samples dated within [now - range, now].
        """
        ledger = UsageLedger(clock=lambda: FIXED_NOW)
        for age in ages:
            ledger.record_sample(_sample(age, claude=1))

        window_days = range_.value.days
        expected = sum(1 for age in ages if age <= window_days)

        assert len(ledger.query(range_, UsageMetric.TOKENS).values()) == expected


class TestBuckets:
    def test_daily_buckets_cover_window(self, ledger: UsageLedger) -> None:
        ledger.record_sample(_sample(0.1, claude=10))
        ledger.record_sample(_sample(0.2, claude=5))
        ledger.record_sample(_sample(3.5, claude=7))

        buckets = ledger.buckets(TimeRange.WEEK, UsageMetric.TOKENS)

        assert len(buckets) == 7
        assert buckets[0][0] == FIXED_NOW - timedelta(days=7)
        assert [value for _, value in buckets] == [0, 0, 0, 7, 0, 0, 15]

    def test_sample_at_now_lands_in_last_bucket(self, ledger: UsageLedger) -> None:
        ledger.record_sample(_sample(0, claude=3))

        assert ledger.buckets(TimeRange.DAY, UsageMetric.TOKENS) == [
            (FIXED_NOW - timedelta(days=1), 3)
        ]

    def test_non_positive_width_rejected(self, ledger: UsageLedger) -> None:
        with pytest.raises(ValueError):
            ledger.buckets(TimeRange.DAY, UsageMetric.TOKENS, width=timedelta(0))


def test_ledger_keeps_date_order() -> None:
    ledger = UsageLedger(clock=lambda: FIXED_NOW)
    ledger.record_sample(_sample(1))
    ledger.record_sample(_sample(5))
    ledger.record_sample(_sample(0))

    assert len(ledger) == 3
    assert [s.date for s in ledger.samples()] == sorted(s.date for s in ledger.samples())
