"""
In-process metrics for the place intelligence engine

Covers:
- Build latency and outcome (success / cache_hit / fallback)
- Upstream fetch outcomes per collaborator
- Cache hit rates and in-flight request sharing
- Telemetry sampling decisions
- Circuit breaker states

Usage:
    from place_intel.core.metrics import metrics

    with metrics.build_latency.labels(outcome="success").time():
        ...

    metrics.upstream_fetches_total.labels(service="weather", outcome="timeout").inc()
"""

import logging
import threading
import time
from collections import deque
from contextlib import contextmanager
from typing import Dict, Tuple

logger = logging.getLogger(__name__)


class _Metric:
    """Shared label handling for the primitives below."""

    def __init__(self, name: str, description: str, labels: tuple = ()):
        self.name = name
        self.description = description
        self.label_names = labels
        self._lock = threading.Lock()

    def _label_values(self, kwargs: Dict[str, str]) -> Tuple[str, ...]:
        return tuple(str(kwargs.get(label, "")) for label in self.label_names)


class Counter(_Metric):
    """Monotonic, thread-safe counter."""

    def __init__(self, name: str, description: str, labels: tuple = ()):
        super().__init__(name, description, labels)
        self._values: Dict[tuple, float] = {}

    def labels(self, **kwargs) -> "_BoundCounter":
        return _BoundCounter(self, self._label_values(kwargs))

    def inc(self, value: float = 1.0, labels: tuple = ()):
        with self._lock:
            self._values[labels] = self._values.get(labels, 0.0) + value

    def get(self, labels: tuple = ()) -> float:
        with self._lock:
            return self._values.get(labels, 0.0)

    def get_all(self) -> Dict[tuple, float]:
        with self._lock:
            return dict(self._values)


class _BoundCounter:
    def __init__(self, counter: Counter, labels: tuple):
        self._counter = counter
        self._labels = labels

    def inc(self, value: float = 1.0):
        self._counter.inc(value, self._labels)

    def get(self) -> float:
        return self._counter.get(self._labels)


class Gauge(_Metric):
    """Thread-safe gauge holding the last value set per label set."""

    def __init__(self, name: str, description: str, labels: tuple = ()):
        super().__init__(name, description, labels)
        self._values: Dict[tuple, float] = {}

    def labels(self, **kwargs) -> "_BoundGauge":
        return _BoundGauge(self, self._label_values(kwargs))

    def set(self, value: float, labels: tuple = ()):
        with self._lock:
            self._values[labels] = value

    def get(self, labels: tuple = ()) -> float:
        with self._lock:
            return self._values.get(labels, 0.0)

    def get_all(self) -> Dict[tuple, float]:
        with self._lock:
            return dict(self._values)


class _BoundGauge:
    def __init__(self, gauge: Gauge, labels: tuple):
        self._gauge = gauge
        self._labels = labels

    def set(self, value: float):
        self._gauge.set(value, self._labels)

    def get(self) -> float:
        return self._gauge.get(self._labels)


class Histogram(_Metric):
    """Sample-keeping histogram; retains the most recent observations per label set."""

    MAX_SAMPLES = 10000

    def __init__(self, name: str, description: str, labels: tuple = ()):
        super().__init__(name, description, labels)
        self._values: Dict[tuple, deque] = {}

    def labels(self, **kwargs) -> "_BoundHistogram":
        return _BoundHistogram(self, self._label_values(kwargs))

    def observe(self, value: float, labels: tuple = ()):
        with self._lock:
            samples = self._values.setdefault(labels, deque(maxlen=self.MAX_SAMPLES))
            samples.append(value)

    @contextmanager
    def time(self, labels: tuple = ()):
        start = time.perf_counter()
        try:
            yield
        finally:
            self.observe(time.perf_counter() - start, labels)

    def get_stats(self, labels: tuple = ()) -> Dict:
        with self._lock:
            values = sorted(self._values.get(labels, ()))
        if not values:
            return {"count": 0, "sum": 0, "avg": 0, "p50": 0, "p95": 0, "p99": 0}

        count = len(values)

        def pct(q: float) -> float:
            return values[min(int(count * q), count - 1)]

        total = sum(values)
        return {
            "count": count,
            "sum": total,
            "avg": total / count,
            "p50": pct(0.50),
            "p95": pct(0.95),
            "p99": pct(0.99),
        }

    def get_all_stats(self) -> Dict[tuple, Dict]:
        with self._lock:
            keys = list(self._values)
        return {labels: self.get_stats(labels) for labels in keys}


class _BoundHistogram:
    def __init__(self, histogram: Histogram, labels: tuple):
        self._histogram = histogram
        self._labels = labels

    def observe(self, value: float):
        self._histogram.observe(value, self._labels)

    @contextmanager
    def time(self):
        with self._histogram.time(self._labels):
            yield

    def get_stats(self) -> Dict:
        return self._histogram.get_stats(self._labels)


class PlaceIntelMetrics:
    """
    Centralized metrics for the place intelligence engine.
    """

    def __init__(self):
        self.build_latency = Histogram(
            name="place_intel_build_latency_seconds",
            description="Duration of build_place_intelligence calls",
            labels=("outcome",),
        )

        self.builds_total = Counter(
            name="place_intel_builds_total",
            description="Intelligence builds by outcome",
            labels=("outcome",),
        )

        self.upstream_fetches_total = Counter(
            name="place_intel_upstream_fetches_total",
            description="Upstream collaborator fetches by outcome",
            labels=("service", "outcome"),
        )

        self.cache_lookups_total = Counter(
            name="place_intel_cache_lookups_total",
            description="Cache lookups by cache and result",
            labels=("cache", "result"),
        )

        self.inflight_joins_total = Counter(
            name="place_intel_inflight_joins_total",
            description="Callers that attached to an already running fetch",
            labels=("cache",),
        )

        self.telemetry_samples_total = Counter(
            name="place_intel_telemetry_samples_total",
            description="Telemetry sampling decisions and write outcomes",
            labels=("outcome",),
        )

        self.circuit_breaker_state = Gauge(
            name="place_intel_circuit_breaker_state",
            description="Circuit breaker state (0=closed, 1=open, 2=half-open)",
            labels=("name",),
        )

        self.errors_total = Counter(
            name="place_intel_errors_total",
            description="Errors absorbed by component and type",
            labels=("component", "error_type"),
        )

        logger.debug("Place intelligence metrics initialized")

    def _counters(self):
        return [
            self.builds_total,
            self.upstream_fetches_total,
            self.cache_lookups_total,
            self.inflight_joins_total,
            self.telemetry_samples_total,
            self.errors_total,
        ]

    def export_metrics(self) -> Dict:
        """Export all metrics in a JSON-friendly shape."""

        def flatten(metric) -> Dict[str, float]:
            return {
                ",".join(labels) or "_": value
                for labels, value in metric.get_all().items()
            }

        return {
            "builds": {
                "total": flatten(self.builds_total),
                "latency": {
                    ",".join(labels) or "_": stats
                    for labels, stats in self.build_latency.get_all_stats().items()
                },
            },
            "upstream": {"fetches": flatten(self.upstream_fetches_total)},
            "cache": {
                "lookups": flatten(self.cache_lookups_total),
                "inflight_joins": flatten(self.inflight_joins_total),
            },
            "telemetry": {"samples": flatten(self.telemetry_samples_total)},
            "circuit_breakers": {"state": flatten(self.circuit_breaker_state)},
            "errors": {"total": flatten(self.errors_total)},
        }

    def export_prometheus_format(self) -> str:
        """Export metrics in Prometheus text format."""
        lines = []

        def add_metric(metric, metric_type: str, values: Dict):
            lines.append(f"# HELP {metric.name} {metric.description}")
            lines.append(f"# TYPE {metric.name} {metric_type}")
            for labels, value in values.items():
                if labels:
                    label_str = ",".join(
                        f'{k}="{v}"' for k, v in zip(metric.label_names, labels)
                    )
                    lines.append(f"{metric.name}{{{label_str}}} {value}")
                else:
                    lines.append(f"{metric.name} {value}")

        for counter in self._counters():
            add_metric(counter, "counter", counter.get_all())
        add_metric(self.circuit_breaker_state, "gauge", self.circuit_breaker_state.get_all())

        return "\n".join(lines)


# Global metrics instance
metrics = PlaceIntelMetrics()


def get_metrics() -> PlaceIntelMetrics:
    """Get the global metrics instance."""
    return metrics
