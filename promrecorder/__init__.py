"""Metrics recorder rendering the Prometheus text exposition format, with a benchmark."""

__version__ = "0.1.0"

__all__ = [
    "benchmark",
    "builder",
    "common",
    "distribution",
    "metrics",
    "recorder",
    "registry",
]