"""
Recorder: the per-thread "current entity" slot, the entity factory and the send path.

The recorder keeps exactly one current entity per thread. begin_segment() and
begin_subsegment() parent new entities to whatever that slot holds and then
install the new entity in it. When an entity closes, the slot falls back to the
entity's parent (or None for a segment) if it still pointed at that entity.

Sending:
  - a root segment is sent once, with its whole subtree, after it and every
    subsegment below it are closed;
  - a subsegment whose root is a FacadeSegment is sent on its own as soon as it
    closes, since the facade's owner sends the real root.
"""

import logging
import os
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from ..errors import SegmentNotFoundError
from .entities import Entity, FacadeSegment, Segment, Subsegment
from .ids import TraceHeader

if TYPE_CHECKING:
    from .emitter import Emitter

logger = logging.getLogger(__name__)


class HostContextResolver(ABC):
    """Detects an execution environment that opens the top-level segment itself."""

    @abstractmethod
    def resolve(self, recorder: "Recorder") -> FacadeSegment | None:
        """Return a facade for the host's segment, or None when not running under such a host."""
        pass


class EnvironmentHostResolver(HostContextResolver):
    """
    Host detection driven by environment variables.

    The host is considered present when every variable in ``marker_env`` is set
    and non-empty. The facade's ids come from the trace header found in
    ``trace_header_env`` (fresh ids when that is missing or malformed).
    """

    def __init__(
        self,
        marker_env: Sequence[str],
        trace_header_env: str | None = None,
        name: str = "host",
    ):
        self.marker_env = tuple(marker_env)
        self.trace_header_env = trace_header_env
        self.name = name

    def resolve(self, recorder: "Recorder") -> FacadeSegment | None:
        if not self.marker_env:
            return None
        if not all(os.environ.get(var, "").strip() for var in self.marker_env):
            return None
        raw = os.environ.get(self.trace_header_env, "") if self.trace_header_env else ""
        return FacadeSegment.from_trace_header(recorder, TraceHeader.from_string(raw), name=self.name)


class Recorder:
    """Entity factory and per-thread current-entity holder."""

    def __init__(
        self,
        emitter: "Emitter | None" = None,
        host_resolvers: Iterable[HostContextResolver] = (),
        sampled: bool = True,
    ):
        self.emitter = emitter
        self.host_resolvers = list(host_resolvers)
        self.sampled = sampled
        self._local = threading.local()

    def get_trace_entity(self) -> Entity | None:
        return getattr(self._local, "entity", None)

    def set_trace_entity(self, entity: Entity | None) -> None:
        self._local.entity = entity

    def clear_trace_entity(self) -> None:
        self._local.entity = None

    def resolve_host_context(self) -> FacadeSegment | None:
        """Facade for a host-managed top-level segment, or None."""
        for resolver in self.host_resolvers:
            facade = resolver.resolve(self)
            if facade is not None:
                return facade
        return None

    def begin_segment(
        self,
        name: str,
        trace_id: str | None = None,
        parent_id: str | None = None,
        sampled: bool | None = None,
    ) -> Segment:
        """Start a new root segment and make it the current entity."""
        segment = Segment(
            self,
            name,
            trace_id=trace_id,
            parent_id=parent_id,
            sampled=self.sampled if sampled is None else sampled,
        )
        self.set_trace_entity(segment)
        return segment

    def begin_subsegment(self, name: str) -> Subsegment:
        """Start a subsegment of the current entity (or of the host's segment) and make it current."""
        parent = self.get_trace_entity()
        if parent is None:
            parent = self.resolve_host_context()
        if parent is None:
            raise SegmentNotFoundError(f"Cannot begin subsegment {name!r}: no segment in progress")
        subsegment = Subsegment(self, name, parent)
        self.set_trace_entity(subsegment)
        return subsegment

    def entity_closed(self, entity: Entity) -> None:
        """Called by Entity.close(): fix up the current slot and send what is complete."""
        if self.get_trace_entity() is entity:
            self.set_trace_entity(entity.parent if isinstance(entity, Subsegment) else None)

        segment = entity.parent_segment
        if isinstance(entity, Subsegment) and isinstance(segment, FacadeSegment):
            self.send_subsegment(entity)
        elif segment.ready_to_send() and segment.mark_emitted():
            self.send_segment(segment)

    def send_segment(self, segment: Segment) -> bool:
        """Send a root segment with its subsegments. Failures are logged, not raised."""
        if not segment.sampled:
            logger.debug("Segment %s not sampled; not sending", segment.id)
            return False
        return self._send(segment, include_subsegments=True)

    def send_subsegment(self, subsegment: Subsegment) -> bool:
        """Send a single subsegment. Failures are logged, not raised."""
        if not subsegment.parent_segment.sampled:
            logger.debug("Subsegment %s not sampled; not sending", subsegment.id)
            return False
        return self._send(subsegment, include_subsegments=False)

    def send_entity(self, entity: Entity) -> bool:
        """Send an entity immediately (e.g. while still in progress)."""
        if isinstance(entity, Subsegment):
            return self.send_subsegment(entity)
        if isinstance(entity, Segment):
            return self.send_segment(entity)
        return False

    def _send(self, entity: Entity, include_subsegments: bool) -> bool:
        if self.emitter is None:
            return False
        try:
            return self.emitter.send_entity(entity, include_subsegments=include_subsegments)
        except Exception:
            logger.exception("Failed to send %s %r (%s)", type(entity).__name__, entity.name, entity.id)
            return False

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self.emitter.force_flush(timeout_millis) if self.emitter is not None else True

    def shutdown(self) -> None:
        if self.emitter is not None:
            self.emitter.shutdown()
