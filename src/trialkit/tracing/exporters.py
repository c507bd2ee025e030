"""Streaming file exporter for OpenTelemetry spans.

Writes spans to a JSONL file as they are finished, avoiding memory buildup.
Spans may finish on worker threads running synchronous trials, so writes
are serialized with a lock.
"""

import json
import logging
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult


logger = logging.getLogger(__name__)


class StreamingFileSpanExporter(SpanExporter):
    """Exports spans to a file in JSONL format as they are received."""

    def __init__(self, output_path: Path | str) -> None:
        self._lock = threading.Lock()
        self.reset(output_path)

    def reset(self, output_path: Path | str | None = None) -> None:
        """Truncate the output file, optionally moving it to ``output_path``."""
        with self._lock:
            if output_path is not None:
                self.output_path = Path(output_path)
            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            self.output_path.write_text("")

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        """Append a batch of spans to the file."""
        lines = [json.dumps(self._span_to_dict(span), default=str) for span in spans]
        try:
            with self._lock, self.output_path.open("a", encoding="utf-8") as f:
                for line in lines:
                    f.write(line + "\n")
        except OSError:
            logger.exception("Error exporting spans to %s", self.output_path)
            return SpanExportResult.FAILURE
        return SpanExportResult.SUCCESS

    def shutdown(self) -> None:
        """Nothing to release; the file is opened per batch."""

    def _span_to_dict(self, span: ReadableSpan) -> dict[str, Any]:
        """Convert a ReadableSpan to a JSON-serializable dict."""
        return {
            "traceId": format(span.context.trace_id, "032x"),
            "spanId": format(span.context.span_id, "016x"),
            "parentSpanId": format(span.parent.span_id, "016x") if span.parent else None,
            "name": span.name,
            "kind": span.kind.name if span.kind else "INTERNAL",
            "startTimeUnixNano": span.start_time,
            "endTimeUnixNano": span.end_time,
            "attributes": dict(span.attributes or {}),
            "status": {
                "code": span.status.status_code.name if span.status else "UNSET",
                "description": span.status.description if span.status else None,
            },
            "events": [
                {
                    "name": e.name,
                    "timeUnixNano": e.timestamp,
                    "attributes": dict(e.attributes or {}),
                }
                for e in (span.events or [])
            ],
            "resource": {"attributes": dict(span.resource.attributes)},
            "scope": {"name": span.instrumentation_scope.name if span.instrumentation_scope else ""},
        }
