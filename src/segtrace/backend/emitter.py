"""
Emit trace entities through OpenTelemetry span exporters.

Each entity becomes one ReadableSpan:
  - trace id / span id / parent id come from the entity's hex ids;
  - attribute containers are flattened to dotted keys
    (http.request.method, metadata.default.foo, service.version, ...);
  - recorded exceptions become "exception" events;
  - error or fault gives status ERROR.
Any SDK SpanExporter (console, file, OTLP, in-memory) can then ship them.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Any

from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import Event, ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult
from opentelemetry.sdk.util.instrumentation import InstrumentationScope
from opentelemetry.trace import SpanContext, SpanKind, Status, StatusCode, TraceFlags

from .. import __version__
from .entities import Entity, FacadeSegment
from .ids import entity_id_to_int, trace_id_to_int

logger = logging.getLogger(__name__)

_CONTAINERS = ("annotations", "aws", "http", "sql", "metadata")


class Emitter(ABC):
    """Transmits entities to a collector."""

    @abstractmethod
    def send_entity(self, entity: Entity, include_subsegments: bool = True) -> bool:
        """Send ``entity`` (and optionally its subtree). Returns True on success."""
        pass

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return True

    def shutdown(self) -> None:
        pass


def _to_ns(seconds: float | None) -> int | None:
    if seconds is None:
        return None
    return int(round(seconds * 1_000_000_000))


def _hex_to_int(value: str | None) -> int | None:
    if not value:
        return None
    try:
        return entity_id_to_int(value)
    except ValueError:
        return None


def _attribute_value(value: Any) -> Any:
    """OTEL attributes must be primitives or homogeneous sequences of primitives."""
    if isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, (list, tuple)) and value:
        first_type = type(value[0])
        if first_type in (str, bool, int, float) and all(type(v) is first_type for v in value):
            return tuple(value)
    return json.dumps(value, default=str, sort_keys=True)


def entity_attributes(entity: Entity) -> dict[str, Any]:
    """Flatten an entity's fields and containers into OTEL span attributes."""
    attrs: dict[str, Any] = {
        "segment.type": "segment" if entity.is_root else "subsegment",
        "error": entity.error,
        "fault": entity.fault,
        "throttle": entity.throttle,
    }
    if entity.in_progress:
        attrs["in_progress"] = True
    for name in _CONTAINERS:
        for key, value in getattr(entity, name).flatten(name).items():
            attrs[key] = _attribute_value(value)
    if entity.is_root:
        for key, value in entity.service.flatten("service").items():
            attrs[key] = _attribute_value(value)
        if entity.user:
            attrs["user"] = entity.user
        if entity.origin:
            attrs["origin"] = entity.origin
        attrs["sampled"] = entity.sampled
    return attrs


def _walk(entity: Entity, include_subsegments: bool) -> Iterator[Entity]:
    yield entity
    if include_subsegments:
        for sub in entity.subsegments:
            yield from _walk(sub, include_subsegments)


class SpanExporterEmitter(Emitter):
    """Convert entities to ReadableSpans and hand them to an OpenTelemetry SpanExporter."""

    def __init__(
        self,
        exporter: SpanExporter,
        service_name: str = "segtrace",
        resource: Resource | None = None,
    ):
        self.exporter = exporter
        self.resource = resource or Resource.create(
            {"service.name": service_name, "telemetry.sdk.name": "segtrace"}
        )
        self.scope = InstrumentationScope("segtrace", __version__)

    def to_readable_span(self, entity: Entity) -> ReadableSpan:
        root = entity.parent_segment
        trace_id = trace_id_to_int(entity.trace_id)
        flags = TraceFlags(TraceFlags.SAMPLED if root.sampled else TraceFlags.DEFAULT)
        context = SpanContext(
            trace_id=trace_id,
            span_id=entity_id_to_int(entity.id),
            is_remote=False,
            trace_flags=flags,
        )
        parent = None
        parent_span_id = _hex_to_int(entity.parent_id)
        if parent_span_id is not None:
            parent = SpanContext(
                trace_id=trace_id,
                span_id=parent_span_id,
                is_remote=entity.parent is None or isinstance(entity.parent, FacadeSegment),
                trace_flags=flags,
            )

        event_time = _to_ns(entity.end_time if entity.end_time is not None else entity.start_time)
        events = [
            Event(
                "exception",
                {
                    "exception.type": record["type"],
                    "exception.message": record["message"],
                    "exception.stacktrace": record["stacktrace"],
                },
                timestamp=event_time,
            )
            for record in list(entity.exceptions)
        ]

        if entity.fault or entity.error:
            status = Status(StatusCode.ERROR, "fault" if entity.fault else "error")
        else:
            status = Status(StatusCode.UNSET)

        return ReadableSpan(
            name=entity.name,
            context=context,
            parent=parent,
            resource=self.resource,
            attributes=entity_attributes(entity),
            events=events,
            kind=SpanKind.SERVER if entity.is_root else SpanKind.INTERNAL,
            status=status,
            start_time=_to_ns(entity.start_time),
            end_time=None if entity.in_progress else _to_ns(entity.end_time),
            instrumentation_scope=self.scope,
        )

    def send_entity(self, entity: Entity, include_subsegments: bool = True) -> bool:
        spans = [self.to_readable_span(e) for e in _walk(entity, include_subsegments)]
        try:
            result = self.exporter.export(spans)
        except Exception:
            logger.exception("Span exporter failed for entity %r (%s)", entity.name, entity.id)
            return False
        if result is not SpanExportResult.SUCCESS:
            logger.warning("Span exporter reported %s for entity %r (%s)", result.name, entity.name, entity.id)
            return False
        return True

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self.exporter.force_flush(timeout_millis)

    def shutdown(self) -> None:
        self.exporter.shutdown()
