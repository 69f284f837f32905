"""Tag-key resolution and projection onto entity attribute containers."""

from .containers import AttributeMap, TagValue
from .paths import Container, TagDestination, resolve_tag_key, split_key
from .projection import apply_tag, container_for, project

__all__ = [
    "AttributeMap",
    "TagValue",
    "Container",
    "TagDestination",
    "resolve_tag_key",
    "split_key",
    "apply_tag",
    "container_for",
    "project",
]
