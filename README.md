# promrecorder

An in-process metrics recorder that keeps counters, gauges and histograms and
renders them in the Prometheus text exposition format.

## Installing

```
pip install promrecorder
```

The package has no runtime dependencies beyond the standard library.

## Recording and rendering

```python
from promrecorder.builder import PrometheusBuilder
from promrecorder.metrics import Key, Label

recorder = PrometheusBuilder().build_recorder()

requests = recorder.register_counter(Key.from_name("http_requests"))
requests.increment(1)

temperature = recorder.register_gauge(
    Key.from_parts("room_temperature", [Label("room", "lab")])
)
temperature.set(21.5)

latency = recorder.register_histogram(Key.from_name("request_latency_seconds"))
latency.record(0.042)

print(recorder.handle().render())
```

`render()` on a `PrometheusHandle` produces the payload: counters first, then
gauges, then histograms, each metric preceded by a `# TYPE` line and, if a
description was given with `describe_counter`, `describe_gauge` or
`describe_histogram`, a `# HELP` line. The first description for a name wins.

By default histograms are rendered as Prometheus summaries with the quantiles
0, 0.5, 0.9, 0.95, 0.99, 0.999 and 1. Use `set_quantiles` to choose others.
`Histogram.record` also accepts a `datetime.timedelta`, recorded in seconds.

## Histograms with buckets

`PrometheusBuilder.set_buckets` makes every histogram a true Prometheus
histogram with the given upper bounds. `set_buckets_for_metric` sets bounds
only for metric names that a `promrecorder.common.Matcher` accepts
(`MatchKind.FULL`, `PREFIX` or `SUFFIX`, tried in that order):

```python
from promrecorder.common import Matcher, MatchKind

builder = PrometheusBuilder().set_buckets_for_metric(
    Matcher(MatchKind.PREFIX, "request_"), [0.01, 0.1, 1.0]
)
```

Empty bucket or quantile lists raise `EmptyBucketsOrQuantilesError`.

## Names, labels and descriptions

Metric names and label keys are rewritten to fit the Prometheus data model:
invalid characters become underscores, and a label key starting with two
underscores gets a third. Label values and descriptions are escaped. The
functions doing this (`sanitize_metric_name`, `sanitize_label_key`,
`sanitize_label_value`, `sanitize_description`) live in `promrecorder.common`.
Labels added with `add_global_label` are applied to every metric; labels on
the metric's own key win over them.

## Idle metrics

```python
from promrecorder.registry import MetricKindMask

builder = PrometheusBuilder().idle_timeout(
    MetricKindMask.COUNTER | MetricKindMask.HISTOGRAM, 10
)
```

Metrics of the masked kinds that have not been updated within the timeout (in
seconds, or a `timedelta`) are dropped the next time output is rendered, and
return once they are updated again. `build_with_clock` together with
`promrecorder.registry.Clock.mock()` lets tests drive time by hand.

## The global recorder

`PrometheusBuilder.install_recorder()` builds a recorder, installs it as the
process-wide recorder and returns its handle; if one is already installed it
raises `FailedToSetGlobalRecorderError`. `promrecorder.metrics.try_recorder()`
returns the installed recorder (or `None`) and `clear_recorder()` removes it.

## What the package does not do

The builder accepts exporter settings — `with_http_listener`,
`with_push_gateway` (the endpoint must be an http or https URL) and
`add_allowed_address` (an IP address or subnet) — and validates them, but the
package runs no HTTP scrape endpoint and pushes nothing to a push gateway. To
publish metrics, serve or send the string from `PrometheusHandle.render()`
yourself.

## Benchmark

A load generator drives a simple registry-backed recorder from several
producer threads and logs the ingest rate and latency percentiles:

```
promrecorder-benchmark --duration 10 --producers 2 --mode fast
```

`--duration` defaults to 60 seconds and `--producers` to 1. `--mode slow` (the
default) looks up metric handles on every call; `--mode fast` registers them
once up front. `--help` prints the options.