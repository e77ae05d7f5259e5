"""
Prometheus metrics for the playback engine.

Environment Variables:
    METRICS_ENABLED: Enable metrics server (true/false) - default: false
    METRICS_PORT: HTTP port for /metrics endpoint - default: 8080

Usage:
    from playback.metrics import start_metrics_server, track_delivery

    start_metrics_server(enabled=True, port=8080)
    track_delivery("diff")

Helpers are no-ops until init_metrics() has run.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Generator

from prometheus_client import Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)

COMMITS_DELIVERED: "Counter" = None  # type: ignore
COMMITS_SKIPPED: "Counter" = None  # type: ignore
STORE_FETCHES: "Counter" = None  # type: ignore
FETCH_DURATION: "Histogram" = None  # type: ignore
LATEST_TIME: "Gauge" = None  # type: ignore

_metrics_initialized = False
_metrics_lock = threading.Lock()


def init_metrics() -> None:
    """Create the metric objects once per process."""
    global COMMITS_DELIVERED, COMMITS_SKIPPED, STORE_FETCHES, FETCH_DURATION, LATEST_TIME
    global _metrics_initialized

    with _metrics_lock:
        if _metrics_initialized:
            return

        # labels: mode (full, diff, jump, seed)
        COMMITS_DELIVERED = Counter(
            "playback_commits_delivered_total",
            "Total number of commits delivered to the graph consumer",
            labelnames=["mode"],
        )

        # labels: reason (malformed, invalid_base, out_of_order, stale)
        COMMITS_SKIPPED = Counter(
            "playback_commits_skipped_total",
            "Total number of commits skipped instead of delivered",
            labelnames=["reason"],
        )

        # labels: result (ok, empty, error)
        STORE_FETCHES = Counter(
            "playback_store_fetch_total",
            "Total number of commit store range queries",
            labelnames=["result"],
        )

        FETCH_DURATION = Histogram(
            "playback_fetch_duration_seconds",
            "Duration of commit store range queries in seconds",
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0),
        )

        LATEST_TIME = Gauge(
            "playback_latest_time_ms",
            "Lower-bound timestamp of the next range query",
        )

        _metrics_initialized = True
        logger.info("Prometheus metrics initialized")


def start_metrics_server(enabled: bool, port: int) -> None:
    """
    Start Prometheus metrics HTTP server in a background thread.

    Example:
        start_metrics_server(enabled=True, port=8080)
        # curl http://localhost:8080/metrics
    """
    if not enabled:
        logger.info("Metrics server disabled")
        return

    init_metrics()

    try:
        start_http_server(port, addr="0.0.0.0")
        logger.info(f"Metrics server started on http://0.0.0.0:{port}/metrics")
    except OSError as e:
        logger.error(f"Failed to start metrics server: {e}")


@contextmanager
def track_fetch_duration() -> Generator[None, None, None]:
    if FETCH_DURATION is None:
        yield
        return

    with FETCH_DURATION.time():
        yield


def track_delivery(mode: str) -> None:
    if COMMITS_DELIVERED is not None:
        COMMITS_DELIVERED.labels(mode=mode).inc()


def track_skip(reason: str) -> None:
    if COMMITS_SKIPPED is not None:
        COMMITS_SKIPPED.labels(reason=reason).inc()


def track_fetch(result: str) -> None:
    if STORE_FETCHES is not None:
        STORE_FETCHES.labels(result=result).inc()


def set_latest_time(latest_time: int) -> None:
    if LATEST_TIME is not None:
        LATEST_TIME.set(latest_time)
