"""Search and index metrics, exposed to Prometheus and mirrored to OpenTelemetry.

Every metric is declared once through ``_metric``; the returned bridge writes
the Prometheus sample and the matching OTel instrument together. OTel
instruments resolve lazily against whatever meter provider is installed
globally (a no-op one unless an exporter was configured).
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
import time
from typing import Any, Literal

from opentelemetry import metrics as otel_metrics
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest


MetricKind = Literal["counter", "histogram", "gauge"]

_PROMETHEUS_TYPES = {"counter": Counter, "histogram": Histogram, "gauge": Gauge}


class _BoundMetric:
    def __init__(self, bridge: MetricBridge, labels: dict[str, str]) -> None:
        self._bridge = bridge
        self._labels = labels

    def inc(self, amount: float = 1.0) -> None:
        self._bridge.prometheus.labels(**self._labels).inc(amount)
        self._bridge.instrument().add(amount, self._labels)

    def observe(self, value: float) -> None:
        self._bridge.prometheus.labels(**self._labels).observe(value)
        self._bridge.instrument().record(value, self._labels)

    def set(self, value: float) -> None:
        # OTel has no settable gauge here; publish the change as an up/down delta
        self._bridge.prometheus.labels(**self._labels).set(value)
        key = tuple(sorted(self._labels.items()))
        delta = value - self._bridge.last_values.get(key, 0.0)
        if delta:
            self._bridge.instrument().add(delta, self._labels)
        self._bridge.last_values[key] = value


class MetricBridge:
    """A Prometheus metric paired with its OpenTelemetry instrument."""

    def __init__(self, kind: MetricKind, prometheus: Counter | Histogram | Gauge, name: str, description: str) -> None:
        self.kind = kind
        self.prometheus = prometheus
        self.name = name
        self.description = description
        self.last_values: dict[tuple[tuple[str, str], ...], float] = {}
        self._instrument: Any = None

    def labels(self, **labels: str) -> _BoundMetric:
        return _BoundMetric(self, labels)

    def instrument(self) -> Any:
        if self._instrument is None:
            meter = otel_metrics.get_meter("meme_search")
            create = {
                "counter": meter.create_counter,
                "histogram": meter.create_histogram,
                "gauge": meter.create_up_down_counter,
            }[self.kind]
            self._instrument = create(self.name, description=self.description)
        return self._instrument


def _metric(kind: MetricKind, name: str, description: str, labels: list[str], **options: Any) -> MetricBridge:
    prometheus = _PROMETHEUS_TYPES[kind](name, description, labels, **options)
    return MetricBridge(kind, prometheus, name, description)


SEARCH_REQUESTS = _metric(
    "counter",
    "meme_search_requests_total",
    "Search requests by outcome (hit, miss, recent, syntax_error, error)",
    ["backend", "outcome"],
)

SEARCH_LATENCY = _metric(
    "histogram",
    "meme_search_latency_seconds",
    "Search latency from raw query to hydrated records",
    ["backend"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
)

INDEX_MUTATIONS = _metric(
    "counter",
    "meme_index_mutations_total",
    "Full-text index maintenance operations",
    ["backend", "operation", "status"],
)

INDEX_RECORD_COUNT = _metric(
    "gauge",
    "meme_index_record_count",
    "Records in the full-text index after the last load or rebuild",
    ["backend"],
)

HTTP_REQUEST_LATENCY = _metric(
    "histogram",
    "meme_http_request_latency_seconds",
    "HTTP request latency in seconds",
    ["route", "status"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

OTLP_EXPORT_STATUS = _metric(
    "gauge",
    "meme_otlp_exporter_enabled",
    "Whether OTLP span export is attached (1) or not (0)",
    ["protocol"],
)


@contextmanager
def track_latency(histogram: MetricBridge, **labels: str) -> Iterator[None]:
    """Observe the block's wall time on ``histogram``, whether or not it raises."""
    start = time.perf_counter()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.perf_counter() - start)


def get_metrics() -> bytes:
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
