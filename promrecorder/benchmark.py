"""A load generator that measures how fast metrics can be recorded."""

from __future__ import annotations

import bisect
import getopt
import logging
import math
import sys
import threading
import time
from dataclasses import dataclass

from .metrics import Counter, Gauge, Histogram, Key, clear_recorder, set_recorder, try_recorder
from .registry import Registry

logger = logging.getLogger(__name__)

LOOP_SAMPLE = 1000

_OK_KEY = Key.from_name("ok")
_TOTAL_KEY = Key.from_name("total")

_OPTIONS = (
    ("d", "duration", "number of seconds to run the benchmark", "INTEGER"),
    (
        "m",
        "mode",
        "whether or run the benchmark in slow or fast mode (static vs dynamic handles)",
        "STRING",
    ),
    ("p", "producers", "number of producers", "INTEGER"),
    ("h", "help", "print this help menu", None),
)


class Controller:
    """Performs recorder upkeep on behalf of a :class:`BenchmarkingRecorder`."""

    def __init__(self, registry: Registry) -> None:
        self._registry = registry

    def upkeep(self) -> None:
        """Clear the samples held by every histogram."""
        for _, histogram in self._registry.histograms():
            histogram.drain()


class BenchmarkingRecorder:
    """A minimal recorder backed by a registry, used to measure recording overhead."""

    def __init__(self) -> None:
        self._registry = Registry()

    def controller(self) -> Controller:
        """Return a controller attached to this recorder."""
        return Controller(self._registry)

    def describe_counter(self, key_name: str, unit: object, description: str) -> None:
        """Descriptions are ignored."""

    def describe_gauge(self, key_name: str, unit: object, description: str) -> None:
        """Descriptions are ignored."""

    def describe_histogram(self, key_name: str, unit: object, description: str) -> None:
        """Descriptions are ignored."""

    def register_counter(self, key: Key) -> Counter:
        """Return the counter for ``key``."""
        return self._registry.get_or_create_counter(key)

    def register_gauge(self, key: Key) -> Gauge:
        """Return the gauge for ``key``."""
        return self._registry.get_or_create_gauge(key)

    def register_histogram(self, key: Key) -> Histogram:
        """Return the histogram for ``key``."""
        return self._registry.get_or_create_histogram(key)


class LatencyRecorder:
    """Records latencies in nanoseconds and answers percentile queries."""

    def __init__(self) -> None:
        self._values: list[int] = []

    def __len__(self) -> int:
        return len(self._values)

    def record(self, nanos: int | float) -> None:
        """Record a latency; negative values are clamped to zero."""
        bisect.insort(self._values, max(0, int(nanos)))

    @property
    def min(self) -> int:
        return self._values[0] if self._values else 0

    @property
    def max(self) -> int:
        return self._values[-1] if self._values else 0

    def value_at_percentile(self, percentile: float) -> int:
        """Return the smallest recorded value at or below which ``percentile``% of values lie."""
        if not self._values:
            return 0
        percentile = min(max(float(percentile), 0.0), 100.0)
        rank = math.ceil(percentile / 100.0 * len(self._values))
        rank = min(max(rank, 1), len(self._values))
        return self._values[rank - 1]

    def summary(self) -> str:
        """Return a one-line min/percentile/max overview."""
        return (
            f"min: {nanos_to_readable(self.min):<8} "
            f"p50: {nanos_to_readable(self.value_at_percentile(50.0)):<8} "
            f"p95: {nanos_to_readable(self.value_at_percentile(95.0)):<8} "
            f"p99: {nanos_to_readable(self.value_at_percentile(99.0)):<8} "
            f"p999: {nanos_to_readable(self.value_at_percentile(99.9)):<8} "
            f"max: {nanos_to_readable(self.max):<8}"
        )


def nanos_to_readable(nanos: int) -> str:
    """Format a nanosecond count with a human-friendly unit."""
    value = float(nanos)
    if value < 1_000.0:
        return f"{int(nanos)}ns"
    if value < 1_000_000.0:
        return f"{value / 1_000.0:.0f}μs"
    if value < 2_000_000_000.0:
        return f"{value / 1_000_000.0:.2f}ms"
    return f"{value / 1_000_000_000.0:.3f}s"


@dataclass(frozen=True)
class BenchmarkOptions:
    """Parsed command-line options."""

    duration: int = 60
    producers: int = 1
    mode: str = "slow"
    show_help: bool = False


def _parse_count(name: str, text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise ValueError(f"invalid value for --{name}: {text!r}") from None
    if value < 0:
        raise ValueError(f"invalid value for --{name}: {text!r}")
    return value


def parse_args(argv: list[str]) -> BenchmarkOptions:
    """Parse command-line arguments; raises ValueError on bad input."""
    shorts = "".join(s + (":" if hint else "") for s, _, _, hint in _OPTIONS)
    longs = [long + ("=" if hint else "") for _, long, _, hint in _OPTIONS]
    try:
        pairs, _ = getopt.gnu_getopt(list(argv), shorts, longs)
    except getopt.GetoptError as exc:
        raise ValueError(str(exc)) from exc

    names = {f"-{s}": long for s, long, _, _ in _OPTIONS}
    names.update({f"--{long}": long for _, long, _, _ in _OPTIONS})
    values: dict[str, str] = {}
    for flag, value in pairs:
        values.setdefault(names[flag], value)

    if "help" in values:
        return BenchmarkOptions(show_help=True)

    mode_text = values.get("mode")
    mode = "fast" if mode_text is not None and mode_text.lower() == "fast" else "slow"
    return BenchmarkOptions(
        duration=_parse_count("duration", values.get("duration", "60")),
        producers=_parse_count("producers", values.get("producers", "1")),
        mode=mode,
    )


def _usage(program: str) -> str:
    lines = [f"Usage: {program} [options]", "", "Options:"]
    for short, long, description, hint in _OPTIONS:
        flags = f"-{short}, --{long}" + (f" {hint}" if hint else "")
        lines.append(f"    {flags:<24}{description}")
    return "\n".join(lines) + "\n"


class _RecentClock:
    """A nanosecond clock whose cheap reading is refreshed periodically."""

    def __init__(self) -> None:
        self._recent = time.perf_counter_ns()

    @staticmethod
    def now() -> int:
        return time.perf_counter_ns()

    def recent(self) -> int:
        return self._recent

    def refresh(self) -> None:
        self._recent = time.perf_counter_ns()


class _RateCounter:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0

    def add(self, amount: int) -> None:
        with self._lock:
            self._value += amount

    def load(self) -> int:
        with self._lock:
            return self._value


class _Generator:
    def __init__(
        self, done: threading.Event, rate_counter: _RateCounter, clock: _RecentClock
    ) -> None:
        self._done = done
        self._rate_counter = rate_counter
        self._clock = clock
        self._gauge = 0
        self._latency = LatencyRecorder()

    def run(self, fast: bool) -> None:
        try:
            self._loop(self._fast_ops() if fast else self._slow_ops)
        finally:
            logger.info("    sender latency: %s", self._latency.summary())

    def _fast_ops(self):
        recorder = try_recorder()
        if recorder is None:
            raise RuntimeError("no recorder is installed")
        counter = recorder.register_counter(_OK_KEY)
        gauge = recorder.register_gauge(_TOTAL_KEY)
        histogram = recorder.register_histogram(_OK_KEY)

        def ops(value: float, elapsed: float) -> None:
            counter.increment(1)
            gauge.set(value)
            histogram.record(elapsed)

        return ops

    @staticmethod
    def _slow_ops(value: float, elapsed: float) -> None:
        recorder = try_recorder()
        if recorder is not None:
            recorder.register_counter(_OK_KEY).increment(1)
        recorder = try_recorder()
        if recorder is not None:
            recorder.register_gauge(_TOTAL_KEY).set(value)
        recorder = try_recorder()
        if recorder is not None:
            recorder.register_histogram(_OK_KEY).record(elapsed)

    def _loop(self, ops) -> None:
        clock = self._clock
        loop_counter = 0
        t0: int | None = None
        while True:
            loop_counter += 1
            self._gauge += 1
            t1 = clock.recent()

            if t0 is not None:
                start = clock.now() if loop_counter % LOOP_SAMPLE == 0 else None
                ops(float(self._gauge), (t1 - t0) / 1e9)

                if start is not None:
                    self._latency.record(clock.now() - start)
                    self._rate_counter.add(LOOP_SAMPLE * 3)
                    if self._done.is_set():
                        break

            t0 = t1


def main(argv: list[str] | None = None) -> None:
    """Run the benchmark from the command line."""
    logging.basicConfig(level=logging.INFO)
    program = sys.argv[0] if sys.argv and sys.argv[0] else "metrics-benchmark"
    if argv is None:
        argv = sys.argv[1:]

    try:
        options = parse_args(argv)
    except ValueError as exc:
        logger.error("Failed to parse command line args: %s", exc)
        return

    if options.show_help:
        print(_usage(program), end="")
        return

    logger.info("metrics benchmark")
    logger.info("duration: %ss", options.duration)
    logger.info("producers: %s", options.producers)

    recorder = BenchmarkingRecorder()
    controller = recorder.controller()
    set_recorder(recorder)
    logger.info("sink configured")

    clock = _RecentClock()
    done = threading.Event()
    stop_clock = threading.Event()
    rate_counter = _RateCounter()
    fast = options.mode == "fast"

    try:
        producers = [
            threading.Thread(
                target=_Generator(done, rate_counter, clock).run, args=(fast,), daemon=True
            )
            for _ in range(options.producers)
        ]
        for producer in producers:
            producer.start()

        def refresh_clock() -> None:
            while not stop_clock.wait(0.01):
                clock.refresh()

        threading.Thread(target=refresh_clock, daemon=True).start()

        total = 0
        t0 = time.perf_counter_ns()
        upkeep_latency = LatencyRecorder()
        for _ in range(options.duration):
            t1 = time.perf_counter_ns()

            start = time.perf_counter_ns()
            controller.upkeep()
            upkeep_latency.record(time.perf_counter_ns() - start)

            turn_total = rate_counter.load()
            turn_delta = turn_total - total
            total = turn_total
            elapsed = max(t1 - t0, 1) / 1_000_000_000.0
            logger.info("sample ingest rate: %.0f samples/sec", turn_delta / elapsed)
            t0 = t1
            time.sleep(1.0)

        logger.info("-" * 80)
        logger.info(" ingested samples total: %s", total)
        logger.info("   recorder upkeep: %s", upkeep_latency.summary())

        done.set()
        for producer in producers:
            producer.join()
    finally:
        done.set()
        stop_clock.set()
        clear_recorder()


if __name__ == "__main__":
    main()