"""Observability layer - logging, metrics, and tracing."""

from motorscope.observability.logging import log_context, setup_logging
from motorscope.observability.metrics import MetricsCollector, get_metrics
from motorscope.observability.tracing import setup_tracing, span

__all__ = ["setup_logging", "log_context", "MetricsCollector", "get_metrics", "setup_tracing", "span"]
