"""
Usage ledger for CCManager.

Collects token, API call and cost samples as an append-only series and
answers windowed queries over it.
"""

import threading
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta, timezone

from ccmanager.types.usage import TimeRange, UsageMetric, UsageSample


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _window(range_: TimeRange | timedelta) -> timedelta:
    return range_.value if isinstance(range_, TimeRange) else range_


def metric_value(
    sample: UsageSample,
    metric: UsageMetric,
    provider: str | None = None,
) -> float:
    """
    Map a sample to a single metric value.

    Tokens are summed across providers unless ``provider`` is given.
    """
    if metric is UsageMetric.TOKENS:
        if provider is None:
            return sample.total_tokens
        return sample.tokens.get(provider, 0)
    if metric is UsageMetric.API_CALLS:
        return sample.api_calls
    return sample.cost


class UsageSeries:
    """
    Restartable view of ledger samples inside a window.

    Iterating yields ``(date, value)`` pairs in chronological order. Each
    iteration re-scans the ledger, so samples recorded after the series was
    created are seen on the next pass.
    """

    def __init__(
        self,
        ledger: "UsageLedger",
        window: timedelta,
        metric: UsageMetric,
        provider: str | None,
    ) -> None:
        self._ledger = ledger
        self.window = window
        self.metric = metric
        self.provider = provider

    def __iter__(self) -> Iterator[tuple[datetime, float]]:
        now = self._ledger.now()
        start = now - self.window
        for sample in self._ledger.samples():
            if start <= sample.date <= now:
                yield sample.date, metric_value(sample, self.metric, self.provider)

    def values(self) -> list[float]:
        return [value for _, value in self]


class UsageLedger:
    """
    Append-only series of usage samples.

    Example:
        ```python
        ledger = UsageLedger()
        ledger.record_sample(UsageSample(date=now, tokens={"claude": 1200}, api_calls=1, cost=0.036))
        for date, tokens in ledger.query(TimeRange.WEEK, UsageMetric.TOKENS, provider="claude"):
            ...
        ```
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        """
        Args:
            clock: Returns the current time (default: timezone-aware UTC now)
        """
        self._samples: list[UsageSample] = []
        self._lock = threading.Lock()
        self._clock = clock or _utcnow

    def __len__(self) -> int:
        return len(self._samples)

    def now(self) -> datetime:
        return self._clock()

    def record_sample(self, sample: UsageSample) -> None:
        """Append a sample; samples are kept in date order."""
        with self._lock:
            if self._samples and sample.date < self._samples[-1].date:
                index = len(self._samples)
                while index > 0 and self._samples[index - 1].date > sample.date:
                    index -= 1
                self._samples.insert(index, sample)
            else:
                self._samples.append(sample)

    def samples(self) -> list[UsageSample]:
        """Snapshot of every stored sample, oldest first."""
        with self._lock:
            return list(self._samples)

    def query(
        self,
        range_: TimeRange | timedelta,
        metric: UsageMetric,
        provider: str | None = None,
    ) -> UsageSeries:
        """
        Samples dated within ``[now - range, now]`` mapped to ``metric``.

        Args:
            range_: Look-back window
            metric: Quantity to report
            provider: For TOKENS, restrict to one provider's tokens
        """
        return UsageSeries(self, _window(range_), metric, provider)

    def total(
        self,
        range_: TimeRange | timedelta,
        metric: UsageMetric,
        provider: str | None = None,
    ) -> float:
        return sum(self.query(range_, metric, provider).values())

    def buckets(
        self,
        range_: TimeRange | timedelta,
        metric: UsageMetric,
        width: timedelta = timedelta(days=1),
        provider: str | None = None,
    ) -> list[tuple[datetime, float]]:
        """
        Sum the windowed series into fixed-width buckets.

        Buckets start at ``now - range`` and every bucket in the window is
        returned, including empty ones, oldest first.
        """
        if width <= timedelta(0):
            raise ValueError("bucket width must be positive")

        series = self.query(range_, metric, provider)
        now = self.now()
        start = now - series.window

        count = max(1, -(-series.window // width))
        totals = [0.0] * count
        for date, value in series:
            index = min(int((date - start) / width), count - 1)
            totals[index] += value

        return [(start + width * i, totals[i]) for i in range(count)]
