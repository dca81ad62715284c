"""Tests for the Prometheus metrics collector."""

from prometheus_client import REGISTRY

from motorscope.observability.metrics import get_metrics


def _value(name, labels=None):
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestMetricsCollector:
    def test_singleton(self):
        assert get_metrics() is get_metrics()

    def test_record_pass(self):
        before = _value("motorscope_refresh_passes_total", {"outcome": "rate_limited"})

        get_metrics().record_pass("rate_limited", refreshed=1, errors=1, latency=2.0)

        assert _value("motorscope_refresh_passes_total", {"outcome": "rate_limited"}) == before + 1

    def test_record_auth_event(self):
        before = _value("motorscope_auth_events_total", {"event": "renewed"})

        get_metrics().record_auth_event("renewed")

        assert _value("motorscope_auth_events_total", {"event": "renewed"}) == before + 1

    def test_running_gauge(self):
        metrics = get_metrics()

        metrics.set_refresh_running(True)
        assert _value("motorscope_refresh_running") == 1.0

        metrics.set_refresh_running(False)
        assert _value("motorscope_refresh_running") == 0.0

    def test_record_message(self):
        labels = {"message_type": "CHECK_AUTH", "status": "ok"}
        before = _value("motorscope_messages_handled_total", labels)

        get_metrics().record_message("CHECK_AUTH", "ok")

        assert _value("motorscope_messages_handled_total", labels) == before + 1
