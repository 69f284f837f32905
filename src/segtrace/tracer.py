"""
Tracer and SpanBuilder.

The tracing API and the recorder keep separate notions of "current": the API
has explicit parent references and the scope stack, the recorder has its own
per-thread current entity. SpanBuilder.start() reconciles the two by resolving
the parent entity, installing it as the recorder's current entity just long
enough to create the child, and then putting the original entity back.

Parent resolution at start():

  1. child_of a live Span          -> that span's entity, baggage copied
  2. child_of a bare SpanContext   -> FacadeSegment with the context's ids, baggage copied
  3. no child_of, ignore_active    -> no parent (new root segment), no baggage
  4. otherwise                     -> recorder's current entity (may be None), no baggage

When nothing resolves as parent but the host runs its own top-level segment
(see Recorder.resolve_host_context), a subsegment is created instead of a
second root segment.
"""

import logging
import time
from collections.abc import Iterable, Mapping
from typing import Any, NamedTuple

from .attributes.containers import TagValue
from .backend.entities import Entity, FacadeSegment
from .backend.ids import TRACE_HEADER_KEY, TraceHeader, is_valid_entity_id, is_valid_trace_id
from .backend.recorder import Recorder
from .errors import UnsupportedOperationError
from .scope import Scope, ScopeManager
from .span import Span, SpanContext
from .tags import References, Tag

logger = logging.getLogger(__name__)


class Reference(NamedTuple):
    type: str
    referenced_context: SpanContext


def child_of(referenced_context: SpanContext) -> Reference:
    return Reference(References.CHILD_OF, referenced_context)


def follows_from(referenced_context: SpanContext) -> Reference:
    return Reference(References.FOLLOWS_FROM, referenced_context)


class CapturingSpanContext(SpanContext):
    """Context that keeps the live Span it belongs to, so its entity can be used as a parent."""

    def __init__(self, span: Span):
        super().__init__(
            span_id=span.context.span_id,
            trace_id=span.context.trace_id,
            sampled=span.context.sampled,
        )
        self.span = span

    @property
    def baggage(self) -> dict[str, str]:
        return self.span.context.baggage

    def baggage_items(self):
        return self.span.context.baggage_items()

    def set_baggage_item(self, key: str, value: str) -> None:
        self.span.context.set_baggage_item(key, value)

    def get_baggage_item(self, key: str) -> str | None:
        return self.span.context.get_baggage_item(key)


class SpanBuilder:
    """
    Collects options for a single span until start().

    A builder is owned by the thread that created it and must not be shared;
    its tag and reference maps are plain, unsynchronised dicts.
    """

    def __init__(self, tracer: "Tracer", operation_name: str):
        self._tracer = tracer
        self._operation_name = operation_name
        self._tags: dict[str, TagValue] = {}
        self._references: dict[str, SpanContext] = {}
        self._start_time: float | None = None
        self._ignore_active_span = False
        self._send_on_start = False

    def as_child_of(self, parent: Span | SpanContext | None) -> "SpanBuilder":
        if parent is None:
            return self
        if isinstance(parent, Span):
            return self.add_reference(References.CHILD_OF, CapturingSpanContext(parent))
        return self.add_reference(References.CHILD_OF, parent)

    def add_reference(self, reference_type: str, referenced_context: SpanContext | None) -> "SpanBuilder":
        if referenced_context is None:
            return self
        if reference_type in self._references:
            logger.warning(
                "Replacing reference of type %r: multiple references of the same type are not supported",
                reference_type,
            )
        self._references[reference_type] = referenced_context
        return self

    def ignore_active_span(self) -> "SpanBuilder":
        self._ignore_active_span = True
        return self

    def send_on_start(self) -> "SpanBuilder":
        """Send the entity as soon as it starts instead of waiting for the whole trace to finish."""
        self._send_on_start = True
        return self

    def with_tag(self, key: str | Tag, value: TagValue) -> "SpanBuilder":
        self._tags[key.key if isinstance(key, Tag) else key] = value
        return self

    def with_start_timestamp(self, timestamp: int) -> "SpanBuilder":
        """Start time in microseconds since the epoch."""
        self._start_time = timestamp / 1000.0 / 1000.0
        return self

    def start_active(self, finish_on_close: bool = True) -> Scope:
        return self._tracer.scope_manager.activate(self.start(), finish_on_close)  # type: ignore[return-value]

    def _resolve_parent(self, current: Entity | None) -> tuple[Entity | None, dict[str, str]]:
        explicit = self._references.get(References.CHILD_OF)
        if isinstance(explicit, CapturingSpanContext):
            return explicit.span.entity, dict(explicit.baggage)
        if explicit is not None:
            return self._tracer.facade_for(explicit), dict(explicit.baggage)
        if self._ignore_active_span:
            return None, {}
        return current, {}

    def start(self) -> Span:
        for reference_type in self._references:
            if reference_type != References.CHILD_OF:
                logger.warning(
                    "Ignoring reference of type %r: only %r references are supported",
                    reference_type,
                    References.CHILD_OF,
                )

        recorder = self._tracer.recorder
        original = recorder.get_trace_entity()
        parent, parent_baggage = self._resolve_parent(original)

        # Borrow the recorder's current-entity slot so it parents the new entity for us.
        recorder.set_trace_entity(parent)
        try:
            if recorder.get_trace_entity() is None and recorder.resolve_host_context() is None:
                entity = recorder.begin_segment(self._operation_name)
            else:
                entity = recorder.begin_subsegment(self._operation_name)
        finally:
            recorder.set_trace_entity(original)

        entity.in_progress = True
        entity.start_time = self._start_time if self._start_time is not None else time.time()

        context = SpanContext(
            span_id=entity.id,
            baggage=parent_baggage,
            trace_id=entity.trace_id,
            sampled=entity.parent_segment.sampled,
        )
        span = Span(entity, context)
        for key, value in self._tags.items():
            span.set_tag(key, value)

        if self._send_on_start:
            recorder.send_entity(entity)
        return span


class Tracer:
    """Entry point for instrumented code."""

    def __init__(
        self,
        recorder: Recorder | None = None,
        scope_manager: ScopeManager | None = None,
        trace_header_key: str = TRACE_HEADER_KEY,
    ):
        self._recorder = recorder if recorder is not None else Recorder()
        self._scope_manager = scope_manager if scope_manager is not None else ScopeManager(self._recorder)
        self.trace_header_key = trace_header_key

    @property
    def recorder(self) -> Recorder:
        return self._recorder

    @property
    def scope_manager(self) -> ScopeManager:
        return self._scope_manager

    @property
    def active_span(self) -> Span | None:
        return self._scope_manager.active_span

    def build_span(self, operation_name: str) -> SpanBuilder:
        return SpanBuilder(self, operation_name)

    def start_span(
        self,
        operation_name: str,
        child_of: Span | SpanContext | None = None,
        references: Iterable[Reference] | None = None,
        tags: Mapping[str, TagValue] | None = None,
        start_time: int | None = None,
        ignore_active_span: bool = False,
    ) -> Span:
        """Build and start a span in one call. ``start_time`` is in microseconds."""
        builder = self.build_span(operation_name).as_child_of(child_of)
        for reference in references or ():
            builder.add_reference(reference.type, reference.referenced_context)
        for key, value in (tags or {}).items():
            builder.with_tag(key, value)
        if start_time is not None:
            builder.with_start_timestamp(start_time)
        if ignore_active_span:
            builder.ignore_active_span()
        return builder.start()

    def start_active_span(self, operation_name: str, finish_on_close: bool = True, **kwargs: Any) -> Scope:
        span = self.start_span(operation_name, **kwargs)
        return self._scope_manager.activate(span, finish_on_close)  # type: ignore[return-value]

    def activate_span(self, span: Any, finish_on_close: bool = False) -> Scope | None:
        return self._scope_manager.activate(span, finish_on_close)

    def facade_for(self, context: SpanContext) -> FacadeSegment:
        """Placeholder parent for a context with no live span (e.g. one read from a remote caller)."""
        header = TraceHeader.from_string(context.get_baggage_item(self.trace_header_key))
        trace_id = context.trace_id if is_valid_trace_id(context.trace_id) else header.root
        entity_id = context.span_id if is_valid_entity_id(context.span_id) else header.parent
        sampled = context.sampled if context.sampled is not None else header.sampled
        return FacadeSegment(self._recorder, trace_id=trace_id, entity_id=entity_id, sampled=sampled)

    def inject(self, span_context: SpanContext, format: str, carrier: Any) -> None:
        raise UnsupportedOperationError(
            "SpanContext propagation is not supported; rely on trace header propagation instead"
        )

    def extract(self, format: str, carrier: Any) -> SpanContext:
        raise UnsupportedOperationError(
            "SpanContext propagation is not supported; rely on trace header propagation instead"
        )

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self._recorder.force_flush(timeout_millis)

    def shutdown(self) -> None:
        self._recorder.shutdown()
