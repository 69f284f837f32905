"""
Span and SpanContext.

A Span wraps exactly one trace entity. Compared to a plain tracing span:

  - tags land in the entity's hierarchical containers (see attributes.paths),
    not in a flat map;
  - logs have no dedicated slot on an entity, so they are stored as metadata
    under the "log" namespace, keyed by timestamp; exceptions are recorded
    with the entity's exception facility instead;
  - operation names are fixed once the entity exists.
"""

import logging
import threading
import time
from collections.abc import Iterator, Mapping
from datetime import datetime, timezone
from typing import Any

from .attributes.containers import TagValue
from .attributes.projection import apply_tag
from .backend.entities import Entity
from .backend.ids import TraceHeader, is_valid_entity_id, is_valid_trace_id
from .errors import UnsupportedOperationError
from .tags import LOG_ERROR_OBJECT, LOG_MESSAGE, MetadataNamespaces, Tag

logger = logging.getLogger(__name__)


class SpanContext:
    """Span id, trace id, sampling decision and baggage. Baggage is always copied in, never shared."""

    def __init__(
        self,
        span_id: str | None = None,
        baggage: Mapping[str, str] | None = None,
        trace_id: str | None = None,
        sampled: bool | None = None,
    ):
        self.span_id = span_id
        self.trace_id = trace_id
        self.sampled = sampled
        self._baggage: dict[str, str] = dict(baggage or {})

    @property
    def baggage(self) -> dict[str, str]:
        return self._baggage

    def baggage_items(self) -> Iterator[tuple[str, str]]:
        return iter(list(self._baggage.items()))

    def set_baggage_item(self, key: str, value: str) -> None:
        self._baggage[key] = value

    def get_baggage_item(self, key: str) -> str | None:
        return self._baggage.get(key)

    @property
    def trace_header(self) -> TraceHeader | None:
        """Header for propagating this context downstream; None without a valid trace id."""
        if not is_valid_trace_id(self.trace_id):
            return None
        parent = self.span_id if is_valid_entity_id(self.span_id) else None
        return TraceHeader(root=self.trace_id, parent=parent, sampled=self.sampled)

    def to_trace_id(self) -> str | None:
        """``Root=...;Parent=...;Sampled=...`` string of trace_header."""
        header = self.trace_header
        return header.to_string() if header is not None else None

    def __repr__(self) -> str:
        return f"SpanContext(span_id={self.span_id!r}, trace_id={self.trace_id!r}, baggage={self._baggage!r})"


class _FinishFlag:
    """One-shot flag: test_and_set() returns True for exactly one caller."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._set = False

    def test_and_set(self) -> bool:
        with self._lock:
            if self._set:
                return False
            self._set = True
            return True

    def is_set(self) -> bool:
        return self._set


def _now_micros() -> int:
    return int(time.time() * 1_000_000)


def format_log_timestamp(timestamp_micros: int) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2019-02-24T13:52:01.000Z."""
    seconds, millis = divmod(timestamp_micros // 1000, 1000)
    moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S") + f".{millis:03d}Z"


class Span:
    """Handle for one operation, backed by a single trace entity."""

    def __init__(self, entity: Entity, context: SpanContext):
        self._entity = entity
        self._context = context
        self._finished = _FinishFlag()

    @property
    def entity(self) -> Entity:
        return self._entity

    @property
    def context(self) -> SpanContext:
        return self._context

    @property
    def operation_name(self) -> str:
        return self._entity.name

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    def set_operation_name(self, operation_name: str) -> "Span":
        raise UnsupportedOperationError("Segment names cannot be changed after creation")

    def set_tag(self, key: str | Tag, value: TagValue) -> "Span":
        """Set a tag; ``key`` may be a plain string or a Tag descriptor."""
        apply_tag(self._entity, key.key if isinstance(key, Tag) else key, value)
        if self._entity.is_root:
            # isSampled may have changed the decision the context propagates.
            self._context.sampled = self._entity.sampled
        return self

    def log_kv(self, key_values: Mapping[str, Any], timestamp: int | None = None) -> "Span":
        """Log structured fields at ``timestamp`` (microseconds since epoch, default now).

        Fields carrying an exception under "error.object" are recorded as an
        exception on the entity. Everything else goes to metadata.log, keyed by
        the millisecond timestamp, so two logs in the same millisecond collide.
        """
        error_object = key_values.get(LOG_ERROR_OBJECT)
        if isinstance(error_object, BaseException):
            self._entity.add_exception(error_object)
            return self
        micros = _now_micros() if timestamp is None else timestamp
        self._entity.put_metadata(format_log_timestamp(micros), dict(key_values), namespace=MetadataNamespaces.LOG)
        return self

    def log_event(self, event: str, timestamp: int | None = None) -> "Span":
        return self.log_kv({LOG_MESSAGE: event}, timestamp)

    def set_baggage_item(self, key: str, value: str) -> "Span":
        self._context.set_baggage_item(key, value)
        return self

    def get_baggage_item(self, key: str) -> str | None:
        return self._context.get_baggage_item(key)

    def finish(self, finish_time: int | None = None) -> None:
        """Set the end time (microseconds since epoch, default now) and close the entity.

        Only the first call has any effect. Errors from closing the entity are
        logged and never raised.
        """
        end_seconds = time.time() if finish_time is None else finish_time / 1000.0 / 1000.0
        if not self._finished.test_and_set():
            return
        try:
            self._entity.end_time = end_seconds
            self._entity.close()
        except Exception:
            logger.exception("Failed to close trace entity %r (%s)", self._entity.name, self._entity.id)

    def __enter__(self) -> "Span":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_val is not None:
            self.set_tag("error", True)
            self.log_kv({"event": "error", LOG_ERROR_OBJECT: exc_val})
        self.finish()

    def __repr__(self) -> str:
        return f"Span(operation_name={self.operation_name!r}, span_id={self._context.span_id!r})"
