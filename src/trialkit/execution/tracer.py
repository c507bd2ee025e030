"""Invocation tracer - handles tracing for trial execution."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

from opentelemetry.trace import Span, StatusCode

from trialkit.tracing import get_tracer


if TYPE_CHECKING:
    from trialkit.models.result import ExecutionResult
    from trialkit.models.units import Invocation


@dataclass
class InvocationTracer:
    """Handles tracing spans for invocations."""

    enabled: bool = False

    @contextmanager
    def span(self, invocation: Invocation, tags: frozenset[str] = frozenset()) -> Iterator[Span | None]:
        """Context manager for optional tracing."""
        if not self.enabled:
            yield None
            return

        tracer = get_tracer()
        with tracer.start_as_current_span(f"trial.{invocation.identifier}") as span:
            unit = invocation.unit
            span.set_attribute("trial.identifier", invocation.identifier)
            span.set_attribute("trial.name", unit.label)
            if unit.location is not None:
                span.set_attribute("trial.location", str(unit.location))
            if tags:
                span.set_attribute("trial.tags", sorted(tags))
            if invocation.id_suffix:
                span.set_attribute("trial.case", invocation.id_suffix)
            yield span

    def record(self, span: Span | None, result: ExecutionResult) -> None:
        """Record span attributes from an invocation result."""
        if not span:
            return
        span.set_attribute("trial.status", result.status.value)
        span.set_attribute("trial.duration_ms", result.duration_ms)
        if result.known_issues:
            span.set_attribute("trial.known_issues", len(result.known_issues))
        if not result.issues:
            return
        span.set_attribute("trial.issues", [issue.kind.value for issue in result.issues])
        span.set_status(StatusCode.ERROR, result.issues[0].message)
        for issue in result.issues:
            if issue.error is not None:
                span.record_exception(issue.error)
