"""
Generate segment identifiers and parse trace headers.

Formats:
  trace id    1-{epoch seconds as 8 hex}-{24 random hex}
  entity id   {16 random hex}
  header      Root={trace id};Parent={entity id};Sampled={1|0|?}
"""

import re
import time
import uuid
from dataclasses import dataclass

TRACE_ID_VERSION = "1"
TRACE_HEADER_KEY = "X-Amzn-Trace-Id"

_TRACE_ID_PATTERN = re.compile(r"^1-[0-9a-f]{8}-[0-9a-f]{24}$")
_ENTITY_ID_PATTERN = re.compile(r"^[0-9a-f]{16}$")


def _random_hex(n: int) -> str:
    return uuid.uuid4().hex[:n]


def new_trace_id(epoch_seconds: float | None = None) -> str:
    """Generate a trace id stamped with the given (default: current) epoch second."""
    seconds = int(time.time() if epoch_seconds is None else epoch_seconds)
    return f"{TRACE_ID_VERSION}-{seconds & 0xFFFFFFFF:08x}-{_random_hex(24)}"


def new_entity_id() -> str:
    return _random_hex(16)


def is_valid_trace_id(trace_id: str | None) -> bool:
    return isinstance(trace_id, str) and bool(_TRACE_ID_PATTERN.match(trace_id))


def is_valid_entity_id(entity_id: str | None) -> bool:
    return isinstance(entity_id, str) and bool(_ENTITY_ID_PATTERN.match(entity_id))


def trace_id_to_int(trace_id: str) -> int:
    """128-bit integer form of a trace id (epoch and random parts concatenated)."""
    _, epoch_hex, random_hex = trace_id.split("-")
    return int(epoch_hex + random_hex, 16)


def entity_id_to_int(entity_id: str) -> int:
    return int(entity_id, 16)


@dataclass(frozen=True)
class TraceHeader:
    """Parsed trace header carried between processes (and in baggage)."""

    root: str | None = None
    parent: str | None = None
    sampled: bool | None = None

    @classmethod
    def from_string(cls, header: str | None) -> "TraceHeader":
        """Parse ``Root=...;Parent=...;Sampled=...``. Unknown or malformed parts are ignored."""
        root = parent = None
        sampled: bool | None = None
        for part in (header or "").split(";"):
            key, sep, value = part.partition("=")
            if not sep:
                continue
            key = key.strip().lower()
            value = value.strip()
            if key == "root" and is_valid_trace_id(value):
                root = value
            elif key == "parent" and is_valid_entity_id(value):
                parent = value
            elif key == "sampled":
                sampled = {"1": True, "0": False}.get(value)
        return cls(root=root, parent=parent, sampled=sampled)

    def to_string(self) -> str:
        parts = []
        if self.root:
            parts.append(f"Root={self.root}")
        if self.parent:
            parts.append(f"Parent={self.parent}")
        if self.sampled is not None:
            parts.append(f"Sampled={1 if self.sampled else 0}")
        return ";".join(parts)

    def __str__(self) -> str:
        return self.to_string()
