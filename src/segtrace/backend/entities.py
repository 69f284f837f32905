"""
Segment / subsegment trace entities.

A trace is a strict tree: one root Segment, any number of nested Subsegments,
each with exactly one parent. Every entity carries its own attribute
containers (annotations, aws, http, sql, metadata-by-namespace); only the root
Segment has the service container and the user / origin / sampled fields.

A FacadeSegment stands in for a root segment owned somewhere else (a remote
caller, or a hosting platform that opens the top-level segment itself). It
only exists so subsegments have a parent with the right ids; it is never
mutated, closed or sent.
"""

import json
import threading
import time
import traceback
from typing import TYPE_CHECKING, Any

from ..attributes.containers import AttributeMap
from ..errors import EntityAlreadyClosedError, FacadeSegmentMutationError
from ..tags import MetadataNamespaces
from .ids import TraceHeader, new_entity_id, new_trace_id

if TYPE_CHECKING:
    from .recorder import Recorder


def describe_exception(exc: BaseException) -> dict[str, Any]:
    """Exception record with its full stack, outermost frame first."""
    stack = traceback.extract_tb(exc.__traceback__) if exc.__traceback__ else []
    return {
        "id": new_entity_id(),
        "type": type(exc).__name__,
        "message": str(exc),
        "stack": [
            {"path": frame.filename, "line": frame.lineno, "label": frame.name} for frame in stack
        ],
        "stacktrace": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    }


class Entity:
    """Common state for segments and subsegments."""

    is_root = False

    def __init__(self, recorder: "Recorder | None", name: str, parent: "Entity | None" = None):
        self.recorder = recorder
        self.name = name
        self.id = new_entity_id()
        self.parent = parent
        self.parent_id: str | None = parent.id if parent is not None else None

        self.start_time: float = time.time()
        self.end_time: float | None = None
        self.in_progress = True

        self.error = False
        self.fault = False
        self.throttle = False

        self.annotations = AttributeMap()
        self.aws = AttributeMap()
        self.http = AttributeMap()
        self.sql = AttributeMap()
        # namespace -> AttributeMap
        self.metadata = AttributeMap()

        self.exceptions: list[dict[str, Any]] = []
        self._subsegments: list[Subsegment] = []
        self._lock = threading.Lock()
        self._closed = False

    @property
    def trace_id(self) -> str:
        return self.parent_segment.trace_id

    @property
    def parent_segment(self) -> "Segment":
        raise NotImplementedError

    @property
    def subsegments(self) -> list["Subsegment"]:
        with self._lock:
            return list(self._subsegments)

    @property
    def closed(self) -> bool:
        return self._closed

    def add_subsegment(self, subsegment: "Subsegment") -> None:
        with self._lock:
            self._subsegments.append(subsegment)

    def put_metadata(self, key: str, value: Any, namespace: str = MetadataNamespaces.DEFAULT) -> None:
        self.metadata.child(namespace)[key] = value

    def add_exception(self, exc: BaseException) -> None:
        """Record an exception with its stack; marks the entity as faulted."""
        self.fault = True
        record = describe_exception(exc)
        with self._lock:
            self.exceptions.append(record)

    def close(self, end_time: float | None = None) -> None:
        """End the entity and hand it back to the recorder.

        Raises EntityAlreadyClosedError on a second close.
        """
        with self._lock:
            if self._closed:
                raise EntityAlreadyClosedError(f"Entity {self.name!r} ({self.id}) is already closed")
            self._closed = True
            if end_time is not None:
                self.end_time = end_time
            elif self.end_time is None:
                self.end_time = time.time()
            self.in_progress = False
        self._release()
        if self.recorder is not None:
            self.recorder.entity_closed(self)

    def _release(self) -> None:
        pass

    def to_document(self) -> dict[str, Any]:
        """Segment-document style dict of this entity and its subsegments."""
        doc: dict[str, Any] = {
            "name": self.name,
            "id": self.id,
            "trace_id": self.trace_id,
            "start_time": self.start_time,
        }
        if self.parent_id:
            doc["parent_id"] = self.parent_id
        if self.in_progress:
            doc["in_progress"] = True
        else:
            doc["end_time"] = self.end_time
        for flag in ("error", "fault", "throttle"):
            if getattr(self, flag):
                doc[flag] = True
        for name in ("annotations", "aws", "http", "sql", "metadata"):
            container: AttributeMap = getattr(self, name)
            if len(container):
                doc[name] = container.to_dict()
        with self._lock:
            exceptions = list(self.exceptions)
            subsegments = list(self._subsegments)
        if exceptions:
            doc["cause"] = {"exceptions": exceptions}
        if subsegments:
            doc["subsegments"] = [s.to_document() for s in subsegments]
        return doc

    def to_json(self) -> str:
        return json.dumps(self.to_document(), default=str)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, id={self.id!r}, trace_id={self.trace_id!r})"


class Segment(Entity):
    """Root entity of a trace."""

    is_root = True

    def __init__(
        self,
        recorder: "Recorder | None",
        name: str,
        trace_id: str | None = None,
        parent_id: str | None = None,
        sampled: bool = True,
    ):
        super().__init__(recorder, name)
        self._trace_id = trace_id or new_trace_id()
        self.parent_id = parent_id
        self.sampled = sampled
        self.user: str | None = None
        self.origin: str | None = None
        self.service = AttributeMap()
        self._open_subsegments = 0
        self._emitted = False

    @property
    def trace_id(self) -> str:
        return self._trace_id

    @property
    def parent_segment(self) -> "Segment":
        return self

    @property
    def reference_count(self) -> int:
        with self._lock:
            return self._open_subsegments

    def increment(self) -> None:
        with self._lock:
            self._open_subsegments += 1

    def decrement(self) -> None:
        with self._lock:
            self._open_subsegments = max(0, self._open_subsegments - 1)

    def ready_to_send(self) -> bool:
        """Closed, with no subsegment still open."""
        with self._lock:
            return self._closed and self._open_subsegments == 0

    def mark_emitted(self) -> bool:
        """Claim the single send of this segment. Returns False if it was already claimed."""
        with self._lock:
            if self._emitted:
                return False
            self._emitted = True
            return True

    def to_document(self) -> dict[str, Any]:
        doc = super().to_document()
        if self.user:
            doc["user"] = self.user
        if self.origin:
            doc["origin"] = self.origin
        if len(self.service):
            doc["service"] = self.service.to_dict()
        return doc


class Subsegment(Entity):
    """Child entity; shares the trace id of its root segment."""

    def __init__(self, recorder: "Recorder | None", name: str, parent: Entity):
        super().__init__(recorder, name, parent)
        self._parent_segment = parent.parent_segment
        parent.add_subsegment(self)
        self._parent_segment.increment()

    @property
    def parent_segment(self) -> Segment:
        return self._parent_segment

    def _release(self) -> None:
        self._parent_segment.decrement()

    def to_document(self) -> dict[str, Any]:
        doc = super().to_document()
        doc["type"] = "subsegment"
        return doc


class FacadeSegment(Segment):
    """Read-only placeholder for a root segment owned elsewhere."""

    def __init__(
        self,
        recorder: "Recorder | None",
        name: str = "facade",
        trace_id: str | None = None,
        entity_id: str | None = None,
        sampled: bool | None = None,
    ):
        super().__init__(recorder, name, trace_id=trace_id, sampled=True if sampled is None else sampled)
        if entity_id:
            self.id = entity_id
        self._emitted = True

    @classmethod
    def from_trace_header(
        cls, recorder: "Recorder | None", header: TraceHeader, name: str = "facade"
    ) -> "FacadeSegment":
        return cls(recorder, name, trace_id=header.root, entity_id=header.parent, sampled=header.sampled)

    def put_metadata(self, key: str, value: Any, namespace: str = MetadataNamespaces.DEFAULT) -> None:
        raise FacadeSegmentMutationError("Facade segments cannot be mutated")

    def add_exception(self, exc: BaseException) -> None:
        raise FacadeSegmentMutationError("Facade segments cannot be mutated")

    def close(self, end_time: float | None = None) -> None:
        raise FacadeSegmentMutationError("Facade segments are closed by their owner, not locally")
