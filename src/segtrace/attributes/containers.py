"""Thread-safe nested attribute maps used for every attribute container on a trace entity."""

import threading
from collections.abc import Iterator, Mapping, MutableMapping
from typing import Any

TagValue = str | bool | int | float


class AttributeMap(MutableMapping[str, Any]):
    """A mapping whose values are either scalars or nested AttributeMaps.

    Several threads may hold spans on the same trace, so every read and write
    goes through a per-map lock, and nested maps are created under that lock.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None):
        self._lock = threading.RLock()
        self._data: dict[str, Any] = {}
        if initial:
            for key, value in initial.items():
                self[key] = AttributeMap(value) if isinstance(value, Mapping) else value

    def __getitem__(self, key: str) -> Any:
        with self._lock:
            return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def __delitem__(self, key: str) -> None:
        with self._lock:
            del self._data[key]

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            keys = list(self._data)
        return iter(keys)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __repr__(self) -> str:
        return f"AttributeMap({self.to_dict()!r})"

    def child(self, key: str) -> "AttributeMap":
        """Return the nested map at ``key``, creating it (and replacing any scalar there) if needed."""
        with self._lock:
            existing = self._data.get(key)
            if isinstance(existing, AttributeMap):
                return existing
            nested = AttributeMap()
            self._data[key] = nested
            return nested

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict snapshot, recursing into nested maps."""
        with self._lock:
            items = list(self._data.items())
        return {k: v.to_dict() if isinstance(v, AttributeMap) else v for k, v in items}

    def flatten(self, prefix: str = "") -> dict[str, Any]:
        """Leaf values keyed by their dotted path (e.g. ``http.request.method``)."""
        with self._lock:
            items = list(self._data.items())
        result: dict[str, Any] = {}
        for key, value in items:
            path = f"{prefix}.{key}" if prefix else key
            if isinstance(value, AttributeMap):
                result.update(value.flatten(path))
            else:
                result[path] = value
        return result
