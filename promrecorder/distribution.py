"""Histogram and summary aggregation for distribution metrics."""

from __future__ import annotations

import bisect
import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from .common import Matcher


@dataclass(frozen=True, order=True)
class Quantile:
    """A quantile between 0 and 1."""

    value: float


def parse_quantiles(values: Iterable[float]) -> list[Quantile]:
    """Build quantiles from raw values, clamping each into ``[0, 1]``."""
    return [Quantile(min(max(float(v), 0.0), 1.0)) for v in values]


class BucketHistogram:
    """A cumulative bucketed histogram with fixed upper bounds."""

    def __init__(self, bounds: Sequence[float]) -> None:
        if not bounds:
            raise ValueError("histogram bounds cannot be empty")
        self._bounds = [float(b) for b in bounds]
        self._counts = [0] * len(self._bounds)
        self.count = 0
        self.sum = 0.0

    def record_many(self, samples: Iterable[float]) -> None:
        """Record every sample into the buckets whose bound it does not exceed."""
        for sample in samples:
            self.count += 1
            self.sum += sample
            self._counts = [
                count + 1 if sample <= bound else count
                for bound, count in zip(self._bounds, self._counts)
            ]

    def buckets(self) -> list[tuple[float, int]]:
        """Return ``(upper bound, cumulative count)`` pairs in bound order."""
        return list(zip(self._bounds, self._counts))


class Summary:
    """Keeps samples so that quantiles can be queried."""

    def __init__(self) -> None:
        self._samples: list[float] = []

    @property
    def count(self) -> int:
        return len(self._samples)

    def add(self, value: float) -> None:
        """Add a sample."""
        bisect.insort(self._samples, float(value))

    def quantile(self, q: float) -> float | None:
        """Return the value at quantile ``q``, or None if empty or ``q`` is out of range."""
        if not self._samples or not 0.0 <= q <= 1.0:
            return None
        rank = math.floor(q * (len(self._samples) - 1))
        return self._samples[rank]


class Distribution:
    """Either a bucketed histogram or a quantile summary with a running sum."""

    def __init__(
        self,
        histogram: BucketHistogram | None = None,
        summary: Summary | None = None,
        quantiles: Sequence[Quantile] = (),
    ) -> None:
        if (histogram is None) == (summary is None):
            raise ValueError("a distribution is either a histogram or a summary")
        self.histogram = histogram
        self.summary = summary
        self.quantiles = tuple(quantiles)
        self._summary_sum = 0.0

    @staticmethod
    def new_histogram(buckets: Sequence[float]) -> Distribution:
        """Create a histogram distribution with the given bucket bounds."""
        return Distribution(histogram=BucketHistogram(buckets))

    @staticmethod
    def new_summary(quantiles: Sequence[Quantile]) -> Distribution:
        """Create a summary distribution reporting the given quantiles."""
        return Distribution(summary=Summary(), quantiles=quantiles)

    @property
    def is_histogram(self) -> bool:
        return self.histogram is not None

    @property
    def sum(self) -> float:
        if self.histogram is not None:
            return self.histogram.sum
        return self._summary_sum

    @property
    def count(self) -> int:
        if self.histogram is not None:
            return self.histogram.count
        assert self.summary is not None
        return self.summary.count

    def record_samples(self, samples: Iterable[float]) -> None:
        """Record a batch of samples."""
        if self.histogram is not None:
            self.histogram.record_many(samples)
            return
        assert self.summary is not None
        for sample in samples:
            self.summary.add(sample)
            self._summary_sum += sample


class DistributionBuilder:
    """Chooses histogram buckets or a summary for a metric name."""

    def __init__(
        self,
        quantiles: Sequence[Quantile],
        buckets: Sequence[float] | None = None,
        bucket_overrides: Mapping[Matcher, Sequence[float]] | None = None,
    ) -> None:
        self.quantiles = tuple(quantiles)
        self.buckets = list(buckets) if buckets is not None else None
        self.bucket_overrides = (
            sorted(((m, list(v)) for m, v in bucket_overrides.items()), key=lambda e: e[0])
            if bucket_overrides is not None
            else None
        )

    def _matching_override(self, name: str) -> list[float] | None:
        for matcher, buckets in self.bucket_overrides or ():
            if matcher.matches(name):
                return buckets
        return None

    def get_distribution(self, name: str) -> Distribution:
        """Create an empty distribution suited to ``name``."""
        override = self._matching_override(name)
        if override is not None:
            return Distribution.new_histogram(override)
        if self.buckets is not None:
            return Distribution.new_histogram(self.buckets)
        return Distribution.new_summary(self.quantiles)

    def get_distribution_type(self, name: str) -> str:
        """Return ``"histogram"`` or ``"summary"`` for ``name``."""
        if self.buckets is not None or self._matching_override(name) is not None:
            return "histogram"
        return "summary"