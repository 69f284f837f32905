"""
File-based exporters for offline inspection of emitted segments.

Each exported span or log record is written as one JSON object per line.
Segments can be sent from several threads at once, so writes are serialised.
"""

import json
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from opentelemetry.sdk._logs.export import LogExportResult, LogRecordExporter
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult


class _JsonLinesFile:
    def __init__(self, output_path: str | Path, append: bool):
        self.output_path = Path(output_path)
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        if not append and self.output_path.exists():
            self.output_path.unlink()
        self._lock = threading.Lock()

    def write(self, rows: list[dict[str, Any]]) -> None:
        with self._lock, open(self.output_path, "a", encoding="utf-8") as f:
            for row in rows:
                f.write(json.dumps(row, default=str) + "\n")


def span_to_dict(span: ReadableSpan) -> dict[str, Any]:
    return {
        "name": span.name,
        "trace_id": format(span.context.trace_id, "032x"),
        "span_id": format(span.context.span_id, "016x"),
        "parent_span_id": format(span.parent.span_id, "016x") if span.parent else None,
        "start_time": span.start_time,
        "end_time": span.end_time,
        "status": {
            "status_code": span.status.status_code.name,
            "description": span.status.description,
        },
        "attributes": dict(span.attributes) if span.attributes else {},
        "events": [
            {
                "name": event.name,
                "timestamp": event.timestamp,
                "attributes": dict(event.attributes) if event.attributes else {},
            }
            for event in span.events
        ],
        "kind": span.kind.name if span.kind else "INTERNAL",
        "resource": dict(span.resource.attributes) if span.resource else {},
    }


class FileSpanExporter(SpanExporter):
    """Export spans to a JSON-lines file."""

    def __init__(self, output_path: str | Path, append: bool = True):
        self._file = _JsonLinesFile(output_path, append)

    @property
    def output_path(self) -> Path:
        return self._file.output_path

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        try:
            self._file.write([span_to_dict(span) for span in spans])
            return SpanExportResult.SUCCESS
        except Exception:
            return SpanExportResult.FAILURE

    def shutdown(self) -> None:
        pass

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return True


def _log_record_to_dict(item: Any) -> dict[str, Any]:
    # Batches hold either LogData wrappers or the records themselves depending on SDK version.
    record = getattr(item, "log_record", item)
    resource = getattr(record, "resource", None) or getattr(item, "resource", None)
    severity = getattr(record, "severity_number", None)
    trace_id = getattr(record, "trace_id", None)
    span_id = getattr(record, "span_id", None)
    body = getattr(record, "body", None)
    attributes = getattr(record, "attributes", None)
    return {
        "timestamp": getattr(record, "timestamp", None),
        "observed_timestamp": getattr(record, "observed_timestamp", None),
        "severity_number": severity.value if severity else None,
        "severity_text": getattr(record, "severity_text", None),
        "body": str(body) if body else None,
        "attributes": dict(attributes) if attributes else {},
        "trace_id": format(trace_id, "032x") if trace_id else None,
        "span_id": format(span_id, "016x") if span_id else None,
        "resource": dict(resource.attributes) if resource else {},
    }


class FileLogExporter(LogRecordExporter):
    """Export log records to a JSON-lines file."""

    def __init__(self, output_path: str | Path, append: bool = True):
        self._file = _JsonLinesFile(output_path, append)

    @property
    def output_path(self) -> Path:
        return self._file.output_path

    def export(self, batch: Sequence) -> LogExportResult:  # type: ignore[override]
        try:
            self._file.write([_log_record_to_dict(item) for item in batch])
            return LogExportResult.SUCCESS
        except Exception:
            return LogExportResult.FAILURE

    def shutdown(self) -> None:
        pass

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return True
