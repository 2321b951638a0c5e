"""The Prometheus recorder and the handle that renders its exposition output."""

from __future__ import annotations

import math
import threading
from collections.abc import Mapping
from decimal import Decimal

from .common import (
    sanitize_description,
    sanitize_label_key,
    sanitize_label_value,
    sanitize_metric_name,
)
from .distribution import Distribution, DistributionBuilder, parse_quantiles
from .metrics import Counter, Gauge, Histogram, Key
from .registry import Clock, MetricKindMask, Recency, Registry

_DEFAULT_QUANTILES = (0.0, 0.5, 0.9, 0.95, 0.99, 0.999, 1.0)

LabelSet = tuple[str, ...]


def _format_number(value: float | int) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    return format(Decimal(repr(value)).normalize(), "f")


def _metric_line(
    name: str,
    suffix: str | None,
    labels: LabelSet,
    extra: tuple[str, str] | None,
    value: str,
) -> str:
    full_name = f"{name}_{suffix}" if suffix else name
    parts = list(labels)
    if extra is not None:
        parts.append(f'{extra[0]}="{extra[1]}"')
    label_block = "{" + ",".join(parts) + "}" if parts else ""
    return f"{full_name}{label_block} {value}\n"


class _Inner:
    def __init__(
        self,
        distribution_builder: DistributionBuilder,
        recency: Recency,
        global_labels: Mapping[str, str],
    ) -> None:
        self.registry = Registry()
        self.recency = recency
        self.distribution_builder = distribution_builder
        self.global_labels = dict(global_labels)
        self.distributions: dict[str, dict[LabelSet, Distribution]] = {}
        self.descriptions: dict[str, str] = {}
        self.lock = threading.Lock()

    def key_to_parts(self, key: Key) -> tuple[str, LabelSet]:
        name = sanitize_metric_name(key.name)
        values = dict(self.global_labels)
        values.update((label.key, label.value) for label in key.labels)
        labels = tuple(
            f'{sanitize_label_key(k)}="{sanitize_label_value(v)}"' for k, v in values.items()
        )
        return name, labels

    def _collect(self, kind: MetricKindMask, handles, read) -> dict[str, dict[LabelSet, object]]:
        collected: dict[str, dict[LabelSet, object]] = {}
        for key, handle in handles:
            if not self.recency.should_store(kind, key, handle.generation, self.registry):
                continue
            name, labels = self.key_to_parts(key)
            collected.setdefault(name, {})[labels] = read(handle)
        return collected

    def _collect_distributions(self) -> None:
        for key, histogram in self.registry.histograms():
            name, labels = self.key_to_parts(key)
            if not self.recency.should_store(
                MetricKindMask.HISTOGRAM, key, histogram.generation, self.registry
            ):
                by_labels = self.distributions.get(name)
                if by_labels is not None:
                    by_labels.pop(labels, None)
                    if not by_labels:
                        del self.distributions[name]
                continue

            by_labels = self.distributions.setdefault(name, {})
            distribution = by_labels.get(labels)
            if distribution is None:
                distribution = by_labels[labels] = self.distribution_builder.get_distribution(name)
            distribution.record_samples(histogram.drain())

    def _header(self, name: str, metric_type: str) -> list[str]:
        lines = []
        description = self.descriptions.get(name)
        if description is not None:
            lines.append(f"# HELP {name} {sanitize_description(description)}\n")
        lines.append(f"# TYPE {name} {metric_type}\n")
        return lines

    def render(self) -> str:
        with self.lock:
            counters = self._collect(
                MetricKindMask.COUNTER, self.registry.counters(), lambda c: c.value
            )
            gauges = self._collect(MetricKindMask.GAUGE, self.registry.gauges(), lambda g: g.value)
            self._collect_distributions()

            out: list[str] = []
            for metric_type, collected in (("counter", counters), ("gauge", gauges)):
                for name, by_labels in collected.items():
                    out.extend(self._header(name, metric_type))
                    out.extend(
                        _metric_line(name, None, labels, None, _format_number(value))
                        for labels, value in by_labels.items()
                    )
                    out.append("\n")

            for name, by_labels in self.distributions.items():
                distribution_type = self.distribution_builder.get_distribution_type(name)
                out.extend(self._header(name, distribution_type))
                for labels, distribution in by_labels.items():
                    out.extend(self._distribution_lines(name, labels, distribution))
                out.append("\n")

            return "".join(out)

    @staticmethod
    def _distribution_lines(name: str, labels: LabelSet, distribution: Distribution) -> list[str]:
        lines = []
        if distribution.histogram is not None:
            histogram = distribution.histogram
            for bound, count in histogram.buckets():
                lines.append(
                    _metric_line(name, "bucket", labels, ("le", _format_number(bound)), str(count))
                )
            lines.append(_metric_line(name, "bucket", labels, ("le", "+Inf"), str(histogram.count)))
        else:
            assert distribution.summary is not None
            for quantile in distribution.quantiles:
                value = distribution.summary.quantile(quantile.value)
                lines.append(
                    _metric_line(
                        name,
                        None,
                        labels,
                        ("quantile", _format_number(quantile.value)),
                        _format_number(0.0 if value is None else value),
                    )
                )
        lines.append(_metric_line(name, "sum", labels, None, _format_number(distribution.sum)))
        lines.append(_metric_line(name, "count", labels, None, str(distribution.count)))
        return lines


class PrometheusHandle:
    """Renders the recorder's current metrics in the Prometheus text format."""

    def __init__(self, inner: _Inner) -> None:
        self._inner = inner

    def render(self) -> str:
        """Take a snapshot of all live metrics and return the exposition payload."""
        return self._inner.render()


class PrometheusRecorder:
    """A recorder that stores metrics for Prometheus exposition."""

    def __init__(
        self,
        distribution_builder: DistributionBuilder | None = None,
        recency: Recency | None = None,
        global_labels: Mapping[str, str] | None = None,
    ) -> None:
        if distribution_builder is None:
            distribution_builder = DistributionBuilder(parse_quantiles(_DEFAULT_QUANTILES))
        if recency is None:
            recency = Recency(Clock(), MetricKindMask.NONE, None)
        self._inner = _Inner(distribution_builder, recency, global_labels or {})

    def handle(self) -> PrometheusHandle:
        """Return a handle that renders this recorder's metrics."""
        return PrometheusHandle(self._inner)

    def _describe(self, key_name: str, description: str) -> None:
        sanitized = sanitize_metric_name(str(key_name))
        with self._inner.lock:
            self._inner.descriptions.setdefault(sanitized, description)

    def describe_counter(self, key_name: str, unit: object, description: str) -> None:
        """Attach a description to a counter, unless one is already set."""
        self._describe(key_name, description)

    def describe_gauge(self, key_name: str, unit: object, description: str) -> None:
        """Attach a description to a gauge, unless one is already set."""
        self._describe(key_name, description)

    def describe_histogram(self, key_name: str, unit: object, description: str) -> None:
        """Attach a description to a histogram, unless one is already set."""
        self._describe(key_name, description)

    def register_counter(self, key: Key) -> Counter:
        """Return the counter handle for ``key``."""
        return self._inner.registry.get_or_create_counter(key)

    def register_gauge(self, key: Key) -> Gauge:
        """Return the gauge handle for ``key``."""
        return self._inner.registry.get_or_create_gauge(key)

    def register_histogram(self, key: Key) -> Histogram:
        """Return the histogram handle for ``key``."""
        return self._inner.registry.get_or_create_histogram(key)