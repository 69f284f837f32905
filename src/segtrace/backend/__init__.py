"""Segment/subsegment entity model, recorder and emitters."""

from .emitter import Emitter, SpanExporterEmitter
from .entities import Entity, FacadeSegment, Segment, Subsegment
from .ids import TRACE_HEADER_KEY, TraceHeader, new_entity_id, new_trace_id
from .recorder import EnvironmentHostResolver, HostContextResolver, Recorder

__all__ = [
    "Emitter",
    "SpanExporterEmitter",
    "Entity",
    "Segment",
    "Subsegment",
    "FacadeSegment",
    "TRACE_HEADER_KEY",
    "TraceHeader",
    "new_entity_id",
    "new_trace_id",
    "HostContextResolver",
    "EnvironmentHostResolver",
    "Recorder",
]
