"""
Process metrics exported in Prometheus text format.
"""

from __future__ import annotations

from threading import Lock

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram, generate_latest


class MetricsRegistry:
    def __init__(self):
        self.registry = CollectorRegistry()
        self._counters: dict[str, Counter] = {}
        self._histograms: dict[str, Histogram] = {}
        self._lock = Lock()

    def _counter(self, name: str) -> Counter:
        with self._lock:
            counter = self._counters.get(name)
            if counter is None:
                counter = Counter(name, name.replace("_", " "), registry=self.registry)
                self._counters[name] = counter
            return counter

    def _histogram(self, name: str) -> Histogram:
        with self._lock:
            histogram = self._histograms.get(name)
            if histogram is None:
                histogram = Histogram(name, name.replace("_", " "), registry=self.registry)
                self._histograms[name] = histogram
            return histogram

    def inc(self, name: str, value: float = 1.0):
        if value < 0:
            return
        self._counter(name).inc(value)

    def observe(self, name: str, value: float):
        self._histogram(name).observe(value)

    def value(self, name: str) -> float:
        sample_name = name if name.endswith("_total") else f"{name}_total"
        found = self.registry.get_sample_value(sample_name)
        return float(found or 0.0)

    def export(self) -> tuple[bytes, str]:
        return generate_latest(self.registry), CONTENT_TYPE_LATEST


metrics = MetricsRegistry()
