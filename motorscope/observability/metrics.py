"""
Prometheus metrics for monitoring the background orchestrator.

Defines and exposes metrics for:
- Refresh passes and their outcomes
- Per-listing refresh outcomes
- Pass latency
- Auth state transitions
- Alarm fires and routed messages

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from motorscope.config.settings import get_settings

logger = logging.getLogger(__name__)

# Passes touch a remote page and an extraction call per listing, so they
# run much longer than a single request.
PASS_LATENCY_BUCKETS = (1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0)
ITEM_LATENCY_BUCKETS = (0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the orchestrator.

    Usage:
        metrics = MetricsCollector()
        metrics.start_server()

        metrics.record_pass("completed", refreshed=4, errors=1, latency=31.2)
        metrics.record_item("rate_limited", latency=0.8)
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        self.refresh_passes = Counter(
            "motorscope_refresh_passes_total",
            "Refresh passes by outcome",
            ["outcome"],  # completed, rate_limited, skipped_running, skipped_unauthenticated, empty
        )

        self.refresh_items = Counter(
            "motorscope_refresh_items_total",
            "Listings refreshed by outcome",
            ["outcome"],  # success, error, rate_limited
        )

        self.refresh_pass_latency = Histogram(
            "motorscope_refresh_pass_latency_seconds",
            "Wall time of a refresh pass",
            buckets=PASS_LATENCY_BUCKETS,
        )

        self.refresh_item_latency = Histogram(
            "motorscope_refresh_item_latency_seconds",
            "Wall time of a single listing refresh",
            buckets=ITEM_LATENCY_BUCKETS,
        )

        self.refresh_running = Gauge(
            "motorscope_refresh_running",
            "1 while a refresh pass is active",
        )

        self.auth_events = Counter(
            "motorscope_auth_events_total",
            "Session state machine events",
            ["event"],  # initialized, renewed, renewal_failed, login, login_failed, logout, disconnect
        )

        self.alarms_fired = Counter(
            "motorscope_alarms_fired_total",
            "Timer wake-ups delivered to the orchestrator",
            ["alarm"],
        )

        self.messages_handled = Counter(
            "motorscope_messages_handled_total",
            "Cross-context messages routed by the orchestrator",
            ["message_type", "status"],  # status: ok, ignored, error
        )

        self._server_started = False

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to listen on (defaults to settings.metrics_port)
        """
        if self._server_started:
            logger.warning("Metrics server already started")
            return

        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port)
        self._server_started = True
        logger.info("Metrics server started on port %d", port)

    def record_pass(
        self,
        outcome: str,
        refreshed: int = 0,
        errors: int = 0,
        latency: float = 0.0,
    ) -> None:
        """
        Record a finished (or skipped) refresh pass.

        Args:
            outcome: Pass outcome label
            refreshed: Listings refreshed successfully
            errors: Listings that failed
            latency: Pass wall time in seconds
        """
        self.refresh_passes.labels(outcome=outcome).inc()
        if latency > 0:
            self.refresh_pass_latency.observe(latency)
        logger.debug(
            "Recorded refresh pass outcome=%s refreshed=%d errors=%d",
            outcome, refreshed, errors,
        )

    def record_item(self, outcome: str, latency: float = 0.0) -> None:
        """Record one listing refresh outcome."""
        self.refresh_items.labels(outcome=outcome).inc()
        if latency > 0:
            self.refresh_item_latency.observe(latency)

    def set_refresh_running(self, running: bool) -> None:
        self.refresh_running.set(1 if running else 0)

    def record_auth_event(self, event: str) -> None:
        self.auth_events.labels(event=event).inc()

    def record_alarm(self, alarm: str) -> None:
        self.alarms_fired.labels(alarm=alarm).inc()

    def record_message(self, message_type: str, status: str) -> None:
        self.messages_handled.labels(message_type=message_type, status=status).inc()


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
