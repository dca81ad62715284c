"""
OpenTelemetry spans for refresh passes.

A pass opens a ``refresh_pass`` span with one ``refresh_item`` child per
listing. Without ``setup_tracing()`` the global provider is the no-op one,
so ``span()`` costs nothing.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.trace import Span, StatusCode

from motorscope import __version__

logger = logging.getLogger(__name__)

INSTRUMENTATION_NAME = "motorscope"
DEFAULT_OTLP_ENDPOINT = "http://localhost:4317"

_provider: TracerProvider | None = None


def setup_tracing(
    service_name: str,
    otlp_endpoint: str | None = None,
    *,
    exporter: SpanExporter | None = None,
) -> TracerProvider:
    """
    Install the global TracerProvider. Later calls return the first provider.

    Spans go to an OTLP gRPC collector unless ``exporter`` is given
    (tests pass an InMemorySpanExporter, exported synchronously).
    """
    global _provider
    if _provider is not None:
        return _provider

    provider = TracerProvider(
        resource=Resource.create({
            "service.name": service_name,
            "service.version": __version__,
        })
    )
    if exporter is not None:
        provider.add_span_processor(SimpleSpanProcessor(exporter))
    else:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )

        endpoint = otlp_endpoint or DEFAULT_OTLP_ENDPOINT
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True))
        )

    trace.set_tracer_provider(provider)
    _provider = provider
    logger.info("Tracing enabled for %s (exporter=%s)", service_name, otlp_endpoint or "custom")
    return provider


def is_tracing_enabled() -> bool:
    return _provider is not None


@contextmanager
def span(name: str, **attributes: Any) -> Iterator[Span]:
    """
    Run the block inside a span; None-valued attributes are skipped.

    An exception escaping the block marks the span as errored and is re-raised.
    """
    tracer = trace.get_tracer(INSTRUMENTATION_NAME, __version__)
    with tracer.start_as_current_span(name, record_exception=False) as current:
        for key, value in attributes.items():
            if value is not None:
                current.set_attribute(key, value)
        try:
            yield current
        except Exception as exc:
            current.record_exception(exc)
            current.set_status(StatusCode.ERROR, str(exc))
            raise


def set_outcome(current: Span, outcome: str, error: str | None = None) -> None:
    """Tag a span with a pass or item outcome; an error message marks it failed."""
    current.set_attribute("motorscope.outcome", outcome)
    if error:
        current.set_status(StatusCode.ERROR, error)


def add_trace_context(
    _logger: Any, _method: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor: attach the active trace and span ids."""
    ctx = trace.get_current_span().get_span_context()
    if ctx.is_valid:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict
