"""Shared fixtures: a recorder wired to an in-memory span exporter, and a tracer on top of it."""

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from segtrace.backend import Recorder, Segment, SpanExporterEmitter
from segtrace.span import Span, SpanContext
from segtrace.tracer import Tracer


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture
def recorder(span_exporter: InMemorySpanExporter) -> Recorder:
    rec = Recorder(emitter=SpanExporterEmitter(span_exporter, service_name="test-service"))
    yield rec
    rec.clear_trace_entity()


@pytest.fixture
def tracer(recorder: Recorder) -> Tracer:
    return Tracer(recorder=recorder)


@pytest.fixture
def segment(recorder: Recorder) -> Segment:
    return Segment(recorder, "test-segment")


@pytest.fixture
def span(segment: Segment) -> Span:
    """A span over a detached root segment (not installed as the current entity)."""
    return Span(segment, SpanContext(span_id=segment.id, trace_id=segment.trace_id))
