"""Tests for SpanBuilder parent resolution, tags, timestamps and send-on-start."""

import logging

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from segtrace.backend import EnvironmentHostResolver, FacadeSegment, Recorder, Segment, Subsegment, TraceHeader
from segtrace.span import SpanContext
from segtrace.tags import References
from segtrace.tracer import Tracer

REMOTE_TRACE_ID = "1-5c72a1e1-0123456789abcdef01234567"
REMOTE_PARENT_ID = "89abcdef01234567"


def test_span_name(tracer: Tracer) -> None:
    """The operation name becomes the entity name."""
    span = tracer.build_span("checkout").start()
    assert span.operation_name == "checkout"
    assert span.entity.name == "checkout"


def test_first_span_is_root_segment(tracer: Tracer) -> None:
    """Without any parent a new root segment is created."""
    span = tracer.build_span("root").start()
    assert isinstance(span.entity, Segment)
    assert span.context.span_id == span.entity.id
    assert span.context.trace_id == span.entity.trace_id


def test_start_does_not_change_current_entity(tracer: Tracer) -> None:
    """start() restores the recorder's current entity afterwards."""
    tracer.build_span("root").start()
    assert tracer.recorder.get_trace_entity() is None


def test_start_active_sets_active_span(tracer: Tracer) -> None:
    """start_active() activates the new span and its entity."""
    scope = tracer.build_span("root").start_active()
    assert tracer.active_span is scope.span
    assert tracer.recorder.get_trace_entity() is scope.span.entity
    scope.close()
    assert tracer.active_span is None
    assert scope.span.finished


def test_implicit_parent_is_active_span(tracer: Tracer) -> None:
    """A span started while another is active becomes its subsegment."""
    with tracer.build_span("parent").start_active() as scope:
        child = tracer.build_span("child").start()
        assert isinstance(child.entity, Subsegment)
        assert child.entity.parent is scope.span.entity
        assert child.entity.trace_id == scope.span.entity.trace_id


def test_explicit_parent_overrides_active_span(tracer: Tracer) -> None:
    """as_child_of() wins over the active span."""
    other = tracer.build_span("other").start()
    with tracer.build_span("active").start_active() as scope:
        child = tracer.build_span("child").as_child_of(other).start()
        assert scope.span.entity.subsegments == []
    assert child.entity.parent is other.entity
    assert len(other.entity.subsegments) == 1


def test_explicit_parent_context_of_live_span(tracer: Tracer) -> None:
    """A context obtained from a live span resolves to that span's entity."""
    parent = tracer.build_span("parent").start()
    child = tracer.build_span("child").as_child_of(parent).start()
    grandchild = tracer.start_span("grandchild", child_of=child)
    assert child.entity.parent is parent.entity
    assert grandchild.entity.parent is child.entity


def test_remote_context_uses_facade_with_context_ids(tracer: Tracer) -> None:
    """A bare context becomes a facade parent carrying its ids."""
    remote = SpanContext(span_id=REMOTE_PARENT_ID, trace_id=REMOTE_TRACE_ID)
    span = tracer.build_span("handler").as_child_of(remote).start()
    assert isinstance(span.entity, Subsegment)
    assert isinstance(span.entity.parent, FacadeSegment)
    assert span.entity.trace_id == REMOTE_TRACE_ID
    assert span.entity.parent_id == REMOTE_PARENT_ID


def test_remote_context_ids_from_trace_header_baggage(tracer: Tracer) -> None:
    """Ids missing from the context are taken from a trace header in baggage."""
    header = f"Root={REMOTE_TRACE_ID};Parent={REMOTE_PARENT_ID};Sampled=1"
    remote = SpanContext(baggage={tracer.trace_header_key: header})
    span = tracer.build_span("handler").as_child_of(remote).start()
    assert span.entity.trace_id == REMOTE_TRACE_ID
    assert span.entity.parent_id == REMOTE_PARENT_ID
    assert span.get_baggage_item(tracer.trace_header_key) == header


def test_ignore_active_span_starts_new_trace(tracer: Tracer) -> None:
    """ignore_active_span() creates a root segment even inside an active span."""
    with tracer.build_span("active").start_active() as scope:
        span = tracer.build_span("detached").ignore_active_span().start()
        assert scope.span.entity.subsegments == []
    assert isinstance(span.entity, Segment)
    assert span.entity.trace_id != scope.span.entity.trace_id


def test_host_managed_context_gives_subsegment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Under a host that owns the top-level segment, parentless spans are subsegments."""
    monkeypatch.setenv("SEGTRACE_TEST_HOST", "1")
    monkeypatch.setenv("SEGTRACE_TEST_HEADER", f"Root={REMOTE_TRACE_ID};Parent={REMOTE_PARENT_ID};Sampled=1")
    recorder = Recorder(host_resolvers=[EnvironmentHostResolver(["SEGTRACE_TEST_HOST"], "SEGTRACE_TEST_HEADER")])
    span = Tracer(recorder=recorder).build_span("handler").start()
    assert isinstance(span.entity, Subsegment)
    assert isinstance(span.entity.parent, FacadeSegment)
    assert span.entity.trace_id == REMOTE_TRACE_ID
    assert span.entity.parent_id == REMOTE_PARENT_ID


def test_host_marker_unset_gives_root_segment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Without the marker variable the host resolver stays out of the way."""
    monkeypatch.delenv("SEGTRACE_TEST_HOST", raising=False)
    recorder = Recorder(host_resolvers=[EnvironmentHostResolver(["SEGTRACE_TEST_HOST"])])
    span = Tracer(recorder=recorder).build_span("handler").start()
    assert isinstance(span.entity, Segment)


def test_pre_existing_segment_becomes_parent(tracer: Tracer) -> None:
    """A segment already current on the recorder parents new spans."""
    segment = tracer.recorder.begin_segment("outer")
    span = tracer.build_span("inner").start()
    assert span.entity.parent is segment
    assert tracer.recorder.get_trace_entity() is segment


def test_send_on_start_exports_in_progress_entity(tracer: Tracer, span_exporter: InMemorySpanExporter) -> None:
    """send_on_start() exports the entity immediately, still in progress."""
    span = tracer.build_span("long-running").send_on_start().start()
    exported = span_exporter.get_finished_spans()
    assert len(exported) == 1
    assert exported[0].name == "long-running"
    assert exported[0].attributes["in_progress"] is True
    assert exported[0].end_time is None
    assert not span.finished


def test_builder_tags(tracer: Tracer) -> None:
    """Tags given to the builder are applied on start."""
    span = (
        tracer.build_span("request")
        .with_tag("http.method", "POST")
        .with_tag("http.status_code", 503)
        .with_tag("fault", True)
        .start()
    )
    assert span.entity.http.to_dict() == {"request": {"method": "POST"}, "response": {"status": 503}}
    assert span.entity.fault is True


def test_start_timestamp_microseconds(tracer: Tracer) -> None:
    """Explicit start timestamps are given in microseconds and stored in seconds."""
    span = tracer.build_span("timed").with_start_timestamp(1551016321000000).start()
    assert span.entity.start_time == 1551016321.0


def test_child_baggage_is_isolated_from_parent(tracer: Tracer) -> None:
    """Children copy the parent's baggage; writes to the copy do not leak back."""
    parent = tracer.build_span("parent").start()
    parent.set_baggage_item("tenant", "t1")
    child = tracer.build_span("child").as_child_of(parent).start()
    assert child.get_baggage_item("tenant") == "t1"
    child.set_baggage_item("tenant", "t2")
    child.set_baggage_item("extra", "x")
    assert parent.get_baggage_item("tenant") == "t1"
    assert parent.get_baggage_item("extra") is None


def test_implicit_parent_does_not_copy_baggage(tracer: Tracer) -> None:
    """Only explicit parents pass baggage on."""
    with tracer.build_span("parent").start_active() as scope:
        scope.span.set_baggage_item("tenant", "t1")
        child = tracer.build_span("child").start()
    assert child.get_baggage_item("tenant") is None


def test_follows_from_reference_is_ignored_with_warning(
    tracer: Tracer, caplog: pytest.LogCaptureFixture
) -> None:
    """Non child_of references are logged and play no part in parent resolution."""
    other = tracer.build_span("other").start()
    with caplog.at_level(logging.WARNING, logger="segtrace.tracer"):
        span = tracer.build_span("follower").add_reference(References.FOLLOWS_FROM, other.context).start()
    assert isinstance(span.entity, Segment)
    assert "follows_from" in caplog.text


def test_replacing_reference_warns(tracer: Tracer, caplog: pytest.LogCaptureFixture) -> None:
    """A second reference of the same type replaces the first."""
    first = tracer.build_span("first").start()
    second = tracer.build_span("second").start()
    with caplog.at_level(logging.WARNING, logger="segtrace.tracer"):
        span = tracer.build_span("child").as_child_of(first).as_child_of(second).start()
    assert span.entity.parent is second.entity
    assert "Replacing reference" in caplog.text


def test_none_parent_is_ignored(tracer: Tracer) -> None:
    """as_child_of(None) leaves the builder unchanged."""
    span = tracer.build_span("root").as_child_of(None).start()
    assert isinstance(span.entity, Segment)


def test_root_span_context_exposes_trace_header(tracer: Tracer) -> None:
    """A started span's context yields a header naming its trace and entity, without touching baggage."""
    with tracer.build_span("root").start_active() as scope:
        span = scope.span
        header = span.context.trace_header
        assert header == TraceHeader(root=span.entity.trace_id, parent=span.entity.id, sampled=True)
        assert span.context.to_trace_id() == (
            f"Root={span.entity.trace_id};Parent={span.entity.id};Sampled=1"
        )
        assert span.get_baggage_item(tracer.trace_header_key) is None
        assert dict(span.context.baggage_items()) == {}


def test_trace_header_of_child_of_pre_existing_segment(tracer: Tracer) -> None:
    """Spans under a segment opened directly on the recorder carry that segment's trace id."""
    segment = tracer.recorder.begin_segment("outer", sampled=False)
    span = tracer.build_span("inner").start()
    header = span.context.trace_header
    assert header.root == segment.trace_id
    assert header.parent == span.entity.id
    assert header.sampled is False
    assert segment.trace_id in span.context.to_trace_id()


def test_trace_header_follows_is_sampled_tag(tracer: Tracer) -> None:
    """Changing the sampling decision on a root span updates its propagated header."""
    span = tracer.build_span("root").start()
    span.set_tag("isSampled", False)
    assert span.context.to_trace_id().endswith("Sampled=0")


def test_trace_header_continues_trace_in_other_tracer(tracer: Tracer) -> None:
    """A header emitted by one tracer parents spans in another through baggage."""
    upstream = tracer.build_span("upstream").start()
    downstream_tracer = Tracer(recorder=Recorder())
    remote = SpanContext(baggage={downstream_tracer.trace_header_key: upstream.context.to_trace_id()})
    span = downstream_tracer.build_span("downstream").as_child_of(remote).start()
    assert span.entity.trace_id == upstream.entity.trace_id
    assert span.entity.parent_id == upstream.entity.id
    assert span.entity.parent_segment.sampled is True


def test_context_without_trace_id_has_no_header() -> None:
    """Contexts without a valid trace id produce no header."""
    assert SpanContext(span_id="89abcdef01234567").trace_header is None
    assert SpanContext(trace_id="not-a-trace-id").to_trace_id() is None
