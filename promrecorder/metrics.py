"""Metric keys, labels, metric handles and the process-wide recorder slot."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Union

LabelLike = Union["Label", tuple[str, str]]


@dataclass(frozen=True)
class Label:
    """A single key/value label attached to a metric."""

    key: str
    value: str


def _to_labels(labels: Iterable[LabelLike]) -> tuple[Label, ...]:
    return tuple(
        label if isinstance(label, Label) else Label(str(label[0]), str(label[1]))
        for label in labels
    )


@dataclass(frozen=True)
class Key:
    """A metric name together with its ordered labels."""

    name: str
    labels: tuple[Label, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", str(self.name))
        object.__setattr__(self, "labels", _to_labels(self.labels))

    @staticmethod
    def from_name(name: str) -> Key:
        """Create a key with no labels."""
        return Key(name)

    @staticmethod
    def from_parts(name: str, labels: Iterable[LabelLike]) -> Key:
        """Create a key from a name and labels (``Label`` objects or pairs)."""
        return Key(name, _to_labels(labels))

    def with_extra_labels(self, labels: Iterable[LabelLike]) -> Key:
        """Return a key with ``labels`` appended after the existing ones."""
        extra = _to_labels(labels)
        if not extra:
            return self
        return Key(self.name, self.labels + extra)


class _Handle:
    """Shared state of a metric handle: a lock and an update generation."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._generation = 0

    @property
    def generation(self) -> int:
        """Number of updates made through this handle."""
        return self._generation


class Counter(_Handle):
    """A monotonically increasing unsigned counter."""

    def __init__(self) -> None:
        super().__init__()
        self._value = 0

    @property
    def value(self) -> int:
        return self._value

    def increment(self, value: int) -> None:
        """Add ``value`` to the counter."""
        if value < 0:
            raise ValueError("counter increments cannot be negative")
        with self._lock:
            self._value += int(value)
            self._generation += 1

    def absolute(self, value: int) -> None:
        """Raise the counter to ``value`` if it is currently lower."""
        with self._lock:
            self._value = max(self._value, int(value))
            self._generation += 1


class Gauge(_Handle):
    """A floating-point value that can go up and down."""

    def __init__(self) -> None:
        super().__init__()
        self._value = 0.0

    @property
    def value(self) -> float:
        return self._value

    def set(self, value: float) -> None:
        """Set the gauge to ``value``."""
        with self._lock:
            self._value = float(value)
            self._generation += 1

    def increment(self, value: float) -> None:
        """Add ``value`` to the gauge."""
        with self._lock:
            self._value += float(value)
            self._generation += 1

    def decrement(self, value: float) -> None:
        """Subtract ``value`` from the gauge."""
        with self._lock:
            self._value -= float(value)
            self._generation += 1


class Histogram(_Handle):
    """Collects raw samples until they are drained for aggregation."""

    def __init__(self) -> None:
        super().__init__()
        self._samples: list[float] = []

    def record(self, value: float | timedelta) -> None:
        """Record a sample; a ``timedelta`` is recorded in seconds."""
        sample = value.total_seconds() if isinstance(value, timedelta) else float(value)
        with self._lock:
            self._samples.append(sample)
            self._generation += 1

    def drain(self) -> list[float]:
        """Remove and return every sample recorded so far."""
        with self._lock:
            samples, self._samples = self._samples, []
        return samples


_recorder_lock = threading.Lock()
_recorder: Any = None


def set_recorder(recorder: Any) -> None:
    """Install ``recorder`` as the global recorder; raises if one is installed."""
    global _recorder
    with _recorder_lock:
        if _recorder is not None:
            raise RuntimeError(
                "attempted to set a recorder after the metrics system was already initialized"
            )
        _recorder = recorder


def try_recorder() -> Any:
    """Return the global recorder, or None if none is installed."""
    return _recorder


def clear_recorder() -> None:
    """Remove the global recorder, if any."""
    global _recorder
    with _recorder_lock:
        _recorder = None