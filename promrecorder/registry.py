"""Metric storage, clocks and idle-metric tracking."""

from __future__ import annotations

import enum
import threading
import time
from datetime import timedelta

from .metrics import Counter, Gauge, Histogram, Key


class MetricKindMask(enum.Flag):
    """A set of metric kinds."""

    NONE = 0
    COUNTER = 1
    GAUGE = 2
    HISTOGRAM = 4
    ALL = COUNTER | GAUGE | HISTOGRAM


_SINGLE_KINDS = (MetricKindMask.COUNTER, MetricKindMask.GAUGE, MetricKindMask.HISTOGRAM)


def _seconds(value: float | timedelta) -> float:
    return value.total_seconds() if isinstance(value, timedelta) else float(value)


class MockClock:
    """Controls the time seen by a mocked :class:`Clock`."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._time = 0.0

    @property
    def time(self) -> float:
        return self._time

    def increment(self, seconds: float | timedelta) -> None:
        """Advance the mocked time."""
        with self._lock:
            self._time += _seconds(seconds)


class Clock:
    """A monotonic clock in seconds, optionally driven by a :class:`MockClock`."""

    def __init__(self, mock: MockClock | None = None) -> None:
        self._mock = mock

    def now(self) -> float:
        """Return the current time in seconds."""
        if self._mock is not None:
            return self._mock.time
        return time.monotonic()

    @staticmethod
    def mock() -> tuple[Clock, MockClock]:
        """Return a clock and the mock that controls it."""
        controller = MockClock()
        return Clock(controller), controller


class Registry:
    """Holds one handle per key for each metric kind."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stores: dict[MetricKindMask, dict[Key, Counter | Gauge | Histogram]] = {
            kind: {} for kind in _SINGLE_KINDS
        }
        self._factories = {
            MetricKindMask.COUNTER: Counter,
            MetricKindMask.GAUGE: Gauge,
            MetricKindMask.HISTOGRAM: Histogram,
        }

    def _store(self, kind: MetricKindMask) -> dict[Key, Counter | Gauge | Histogram]:
        try:
            return self._stores[kind]
        except KeyError:
            raise ValueError(f"not a single metric kind: {kind!r}") from None

    def _get_or_create(self, kind: MetricKindMask, key: Key):
        store = self._store(kind)
        with self._lock:
            handle = store.get(key)
            if handle is None:
                handle = store[key] = self._factories[kind]()
            return handle

    def get_or_create_counter(self, key: Key) -> Counter:
        """Return the counter for ``key``, creating it if needed."""
        return self._get_or_create(MetricKindMask.COUNTER, key)

    def get_or_create_gauge(self, key: Key) -> Gauge:
        """Return the gauge for ``key``, creating it if needed."""
        return self._get_or_create(MetricKindMask.GAUGE, key)

    def get_or_create_histogram(self, key: Key) -> Histogram:
        """Return the histogram for ``key``, creating it if needed."""
        return self._get_or_create(MetricKindMask.HISTOGRAM, key)

    def _snapshot(self, kind: MetricKindMask) -> list:
        with self._lock:
            return list(self._store(kind).items())

    def counters(self) -> list[tuple[Key, Counter]]:
        """Return ``(key, counter)`` pairs in registration order."""
        return self._snapshot(MetricKindMask.COUNTER)

    def gauges(self) -> list[tuple[Key, Gauge]]:
        """Return ``(key, gauge)`` pairs in registration order."""
        return self._snapshot(MetricKindMask.GAUGE)

    def histograms(self) -> list[tuple[Key, Histogram]]:
        """Return ``(key, histogram)`` pairs in registration order."""
        return self._snapshot(MetricKindMask.HISTOGRAM)

    def remove(self, kind: MetricKindMask, key: Key) -> bool:
        """Remove the metric; return whether it was present."""
        store = self._store(kind)
        with self._lock:
            return store.pop(key, None) is not None

    def _remove_if_generation(self, kind: MetricKindMask, key: Key, generation: int) -> bool:
        """Remove the metric unless it was updated since ``generation``."""
        store = self._store(kind)
        with self._lock:
            handle = store.get(key)
            if handle is None:
                return True
            if handle.generation != generation:
                return False
            del store[key]
            return True


class Recency:
    """Tracks when metrics last changed and expires idle ones."""

    def __init__(
        self,
        clock: Clock,
        mask: MetricKindMask,
        idle_timeout: float | timedelta | None,
    ) -> None:
        self._clock = clock
        self._mask = mask
        self._idle_timeout = None if idle_timeout is None else _seconds(idle_timeout)
        self._lock = threading.Lock()
        self._seen: dict[tuple[MetricKindMask, Key], tuple[int, float]] = {}

    @property
    def mask(self) -> MetricKindMask:
        return self._mask

    @property
    def idle_timeout(self) -> float | None:
        return self._idle_timeout

    def should_store(
        self, kind: MetricKindMask, key: Key, generation: int, registry: Registry
    ) -> bool:
        """Return whether the metric is still live; idle metrics are removed from ``registry``."""
        if self._idle_timeout is None or kind not in self._mask:
            return True

        entry_key = (kind, key)
        with self._lock:
            now = self._clock.now()
            entry = self._seen.get(entry_key)
            if entry is None:
                self._seen[entry_key] = (generation, now)
                return True

            last_generation, last_update = entry
            if last_generation != generation:
                self._seen[entry_key] = (generation, now)
                return True

            if now - last_update > self._idle_timeout:
                if registry._remove_if_generation(kind, key, generation):
                    del self._seen[entry_key]
                    return False
            return True