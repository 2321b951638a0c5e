"""Builder for configuring and creating a Prometheus recorder and its exporter settings."""

from __future__ import annotations

import ipaddress
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import timedelta
from typing import ClassVar, Union
from urllib.parse import urlsplit

from .common import (
    EmptyBucketsOrQuantilesError,
    FailedToSetGlobalRecorderError,
    InvalidAllowlistAddressError,
    InvalidPushGatewayEndpointError,
    Matcher,
)
from .distribution import DistributionBuilder, Quantile, parse_quantiles
from .metrics import set_recorder
from .recorder import PrometheusHandle, PrometheusRecorder
from .registry import Clock, MetricKindMask, Recency

_DEFAULT_QUANTILES = (0.0, 0.5, 0.9, 0.95, 0.99, 0.999, 1.0)

IpNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


@dataclass(frozen=True)
class HttpListenerConfig:
    """Serve a scrape endpoint on ``host``:``port``."""

    host: str = "0.0.0.0"
    port: int = 9000
    type_name: ClassVar[str] = "http-listener"


@dataclass(frozen=True)
class PushGatewayConfig:
    """Push the rendered payload to ``endpoint`` every ``interval`` seconds."""

    endpoint: str
    interval: float
    type_name: ClassVar[str] = "push-gateway"


ExporterConfig = Union[HttpListenerConfig, PushGatewayConfig]


def _seconds(value: float | timedelta) -> float:
    return value.total_seconds() if isinstance(value, timedelta) else float(value)


def _parse_listen_address(address: tuple[str, int] | str) -> HttpListenerConfig:
    if isinstance(address, str):
        host, sep, port_text = address.rpartition(":")
        if not sep or not port_text.isdigit():
            raise ValueError(f"invalid listen address: {address!r}")
        host = host.strip("[]")
        port = int(port_text)
    else:
        host, port = address
        port = int(port)
    if not 0 <= port <= 65535:
        raise ValueError(f"port out of range: {port}")
    return HttpListenerConfig(str(host), port)


class PrometheusBuilder:
    """Configures and creates a Prometheus recorder/exporter.

    Every configuration method returns the builder, so calls can be chained.
    """

    def __init__(self) -> None:
        self.exporter_config: ExporterConfig = HttpListenerConfig()
        self.allowed_addresses: list[IpNetwork] | None = None
        self.quantiles: list[Quantile] = parse_quantiles(_DEFAULT_QUANTILES)
        self.buckets: list[float] | None = None
        self.bucket_overrides: dict[Matcher, list[float]] | None = None
        self.idle_timeout_seconds: float | None = None
        self.recency_mask: MetricKindMask = MetricKindMask.NONE
        self.global_labels: dict[str, str] | None = None

    def with_http_listener(self, address: tuple[str, int] | str) -> PrometheusBuilder:
        """Expose a scrape endpoint at ``address``; disables the push gateway."""
        self.exporter_config = _parse_listen_address(address)
        return self

    def with_push_gateway(self, endpoint: str, interval: float | timedelta) -> PrometheusBuilder:
        """Push to a gateway periodically; disables the HTTP listener.

        Raises InvalidPushGatewayEndpointError if ``endpoint`` is not a valid URI.
        """
        try:
            parts = urlsplit(endpoint)
            _ = parts.port
        except ValueError as exc:
            raise InvalidPushGatewayEndpointError(exc) from exc
        if parts.scheme not in ("http", "https"):
            raise InvalidPushGatewayEndpointError(f"unsupported scheme in {endpoint!r}")
        if not parts.hostname:
            raise InvalidPushGatewayEndpointError(f"missing host in {endpoint!r}")
        self.exporter_config = PushGatewayConfig(endpoint, _seconds(interval))
        return self

    def add_allowed_address(self, address: str) -> PrometheusBuilder:
        """Allow scrape requests from an IP address or subnet.

        Raises InvalidAllowlistAddressError if ``address`` cannot be parsed.
        """
        try:
            network = ipaddress.ip_network(address, strict=False)
        except ValueError as exc:
            raise InvalidAllowlistAddressError(exc) from exc
        if self.allowed_addresses is None:
            self.allowed_addresses = []
        self.allowed_addresses.append(network)
        return self

    def set_quantiles(self, quantiles: Iterable[float]) -> PrometheusBuilder:
        """Set the quantiles reported for summaries; raises if empty."""
        values = list(quantiles)
        if not values:
            raise EmptyBucketsOrQuantilesError()
        self.quantiles = parse_quantiles(values)
        return self

    def set_buckets(self, values: Iterable[float]) -> PrometheusBuilder:
        """Render every histogram with these bucket bounds; raises if empty."""
        bounds = [float(v) for v in values]
        if not bounds:
            raise EmptyBucketsOrQuantilesError()
        self.buckets = bounds
        return self

    def set_buckets_for_metric(
        self, matcher: Matcher, values: Iterable[float]
    ) -> PrometheusBuilder:
        """Use these bucket bounds for metrics matching ``matcher``; raises if empty."""
        bounds = [float(v) for v in values]
        if not bounds:
            raise EmptyBucketsOrQuantilesError()
        if self.bucket_overrides is None:
            self.bucket_overrides = {}
        self.bucket_overrides[matcher.sanitized()] = bounds
        return self

    def idle_timeout(
        self, mask: MetricKindMask, timeout: float | timedelta | None
    ) -> PrometheusBuilder:
        """Remove metrics of the kinds in ``mask`` that stay unchanged for ``timeout``."""
        self.idle_timeout_seconds = None if timeout is None else _seconds(timeout)
        self.recency_mask = MetricKindMask.NONE if self.idle_timeout_seconds is None else mask
        return self

    def add_global_label(self, key: str, value: str) -> PrometheusBuilder:
        """Add a label applied to every metric; the latest value for a key wins."""
        if self.global_labels is None:
            self.global_labels = {}
        self.global_labels[str(key)] = str(value)
        return self

    def install_recorder(self) -> PrometheusHandle:
        """Build the recorder, install it globally and return a handle to it."""
        recorder = self.build_recorder()
        handle = recorder.handle()
        try:
            set_recorder(recorder)
        except RuntimeError as exc:
            raise FailedToSetGlobalRecorderError(exc) from exc
        return handle

    def build_recorder(self) -> PrometheusRecorder:
        """Build the recorder using the system clock."""
        return self.build_with_clock(Clock())

    def build_with_clock(self, clock: Clock) -> PrometheusRecorder:
        """Build the recorder using ``clock`` for idle tracking."""
        distribution_builder = DistributionBuilder(
            self.quantiles, self.buckets, self.bucket_overrides
        )
        recency = Recency(clock, self.recency_mask, self.idle_timeout_seconds)
        return PrometheusRecorder(
            distribution_builder=distribution_builder,
            recency=recency,
            global_labels=dict(self.global_labels or {}),
        )