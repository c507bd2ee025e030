"""Lifecycle management for OpenTelemetry tracing in trialkit.

Sets up the tracer provider with the streaming JSONL exporter and exposes
helpers for getting a tracer, clearing traces and tracing custom steps
inside trial bodies with ``trace_step``.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor

from trialkit.tracing.exporters import StreamingFileSpanExporter


logger = logging.getLogger(__name__)

_exporter: StreamingFileSpanExporter | None = None


def init_tracing(*, service_name: str = "trialkit", output_path: Path | str = "traces.jsonl") -> None:
    """Initialize OpenTelemetry tracing with streaming file export.

    The global tracer provider can only be installed once per process;
    later calls redirect the existing exporter to ``output_path``.
    """
    global _exporter

    if _exporter is not None:
        _exporter.reset(output_path)
        return

    _exporter = StreamingFileSpanExporter(output_path)
    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(SimpleSpanProcessor(_exporter))
    trace.set_tracer_provider(provider)
    logger.debug("Tracing spans to %s", output_path)


def set_trace_output_path(output_path: Path | str) -> None:
    """Set the output path for the current exporter.

    Useful for testing to redirect traces to a temporary file.
    """
    init_tracing(output_path=output_path)


def get_tracer(name: str = "trialkit") -> trace.Tracer:
    """Get a tracer instance for creating spans."""
    return trace.get_tracer(name)


def clear_traces() -> None:
    """Clear the trace file."""
    if _exporter is not None:
        _exporter.reset()


@contextmanager
def trace_step(name: str, attributes: dict[str, Any] | None = None) -> Iterator[trace.Span]:
    """Context manager for tracing custom steps in trial bodies.

    Creates a span that nests under the span of the running invocation.
    """
    tracer = get_tracer()
    with tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                span.set_attribute(key, value)
        yield span
