"""
Pipeline metrics - latency timer plus Prometheus counters for the gateway.
Exposed at GET /metrics.
"""
import time
from typing import Optional

from prometheus_client import Counter, Gauge, Histogram

WEBHOOK_REQUESTS_TOTAL = Counter(
    "hookgate_webhook_requests_total",
    "Webhook requests processed by the pipeline",
    labelnames=("connector_id", "status"),
)
WEBHOOK_FAILURES_TOTAL = Counter(
    "hookgate_webhook_failures_total",
    "Webhook requests rejected by the pipeline, by failure code",
    labelnames=("connector_id", "code"),
)
PERSISTENCE_ERRORS_TOTAL = Counter(
    "hookgate_persistence_errors_total",
    "DecisionEvents that could not be persisted",
    labelnames=("connector_id",),
)
PIPELINE_DURATION = Histogram(
    "hookgate_pipeline_duration_seconds",
    "End-to-end pipeline latency per request",
    labelnames=("connector_id",),
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)
REPLAY_CACHE_ENTRIES = Gauge(
    "hookgate_replay_cache_entries",
    "Live entries in the in-process replay cache",
    labelnames=("connector_id",),
)


class Timer:
    """Simple timer for measuring operation latency."""

    def __init__(self):
        self._start: Optional[float] = None
        self._end: Optional[float] = None

    def start(self) -> "Timer":
        self._start = time.monotonic()
        return self

    def stop(self) -> int:
        """Stop timer and return elapsed milliseconds."""
        self._end = time.monotonic()
        return self.elapsed_ms

    @property
    def elapsed_ms(self) -> int:
        if self._start is None:
            return 0
        end = self._end or time.monotonic()
        return int((end - self._start) * 1000)

    @property
    def elapsed_seconds(self) -> float:
        if self._start is None:
            return 0.0
        end = self._end or time.monotonic()
        return end - self._start


def record_outcome(connector_id: str, status: str, code: Optional[str] = None) -> None:
    WEBHOOK_REQUESTS_TOTAL.labels(connector_id=connector_id, status=status).inc()
    if code:
        WEBHOOK_FAILURES_TOTAL.labels(connector_id=connector_id, code=code).inc()


def record_persistence_error(connector_id: str) -> None:
    PERSISTENCE_ERRORS_TOTAL.labels(connector_id=connector_id).inc()
