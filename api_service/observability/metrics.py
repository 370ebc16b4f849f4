from __future__ import annotations

from typing import Mapping

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    GCCollector,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)


DB_QUERY_DURATION = "db_query_duration_seconds"
API_ERRORS = "api_errors_total"
HTTP_REQUEST_DURATION = "http_request_duration_seconds"

REQUIRED_HISTOGRAMS = (DB_QUERY_DURATION, HTTP_REQUEST_DURATION)
REQUIRED_COUNTERS = (API_ERRORS,)

DATA_ENDPOINT = "/api/data"


class UnregisteredMetricError(LookupError):
    """Raised when an instrument name was never registered on the registry."""


class ServiceMetrics:
    """The process-wide Prometheus registry and the instruments recorded into it.

    Build one per process (the app factory does) and hand it to whatever needs
    it. prometheus_client serialises updates per metric, so callers never lock.
    """

    def __init__(self, project: str = "observability-demo", *, runtime_collectors: bool = True) -> None:
        self.project = project
        self.registry = CollectorRegistry()

        self._histograms: dict[str, Histogram] = {
            DB_QUERY_DURATION: Histogram(
                DB_QUERY_DURATION,
                "Duration of database queries in seconds",
                ["operation", "success"],
                registry=self.registry,
            ),
            HTTP_REQUEST_DURATION: Histogram(
                HTTP_REQUEST_DURATION,
                "Duration of HTTP requests in seconds",
                ["method", "path", "status_code", "project"],
                registry=self.registry,
            ),
        }
        self._counters: dict[str, Counter] = {
            API_ERRORS: Counter(
                API_ERRORS,
                "Total number of API errors",
                ["endpoint", "status_code"],
                registry=self.registry,
            ),
        }

        if runtime_collectors:
            ProcessCollector(registry=self.registry)
            PlatformCollector(registry=self.registry)
            GCCollector(registry=self.registry)

        self._validate()

        # Visible to scrapers (at 0) before the first failure.
        self._counters[API_ERRORS].labels(endpoint=DATA_ENDPOINT, status_code="500")

    def _validate(self) -> None:
        missing = [name for name in REQUIRED_HISTOGRAMS if name not in self._histograms]
        missing += [name for name in REQUIRED_COUNTERS if name not in self._counters]
        if missing:
            raise UnregisteredMetricError(f"instruments not registered: {', '.join(missing)}")

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST

    def histogram(self, name: str) -> Histogram:
        try:
            return self._histograms[name]
        except KeyError:
            raise UnregisteredMetricError(f"histogram {name!r} is not registered") from None

    def counter(self, name: str) -> Counter:
        try:
            return self._counters[name]
        except KeyError:
            raise UnregisteredMetricError(f"counter {name!r} is not registered") from None

    def observe(self, histogram_name: str, labels: Mapping[str, object], seconds: float) -> None:
        if seconds < 0:
            raise ValueError(f"duration must be >= 0, got {seconds!r}")
        histogram = self.histogram(histogram_name)
        histogram.labels(**{key: str(value) for key, value in labels.items()}).observe(seconds)

    def increment(self, counter_name: str, labels: Mapping[str, object]) -> None:
        counter = self.counter(counter_name)
        counter.labels(**{key: str(value) for key, value in labels.items()}).inc()

    def observe_http_request(self, method: str, path: str, status_code: int, seconds: float) -> None:
        self.observe(
            HTTP_REQUEST_DURATION,
            {"method": method, "path": path, "status_code": status_code, "project": self.project},
            max(seconds, 0.0),
        )

    def render(self) -> bytes:
        return generate_latest(self.registry)
