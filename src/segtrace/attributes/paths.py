"""
Resolve flat, dot-separated tag keys to a location in an entity's attribute tree.

Segment documents keep different kinds of data in different containers, so the
first part of a (synonym-rewritten) key picks the container:

  annotations.*, aws.*, http.*, sql.*   -> the like-named container
  service.*                             -> root segment's service container
  anything else                         -> metadata, grouped by namespace

Metadata namespace rules:

  "foo"                    -> metadata.default.foo
  "metadata.foo"           -> metadata.default.foo
  "widget.foo"             -> metadata.widget.foo
  "metadata.widget.foo"    -> metadata.widget.foo
"""

from dataclasses import dataclass
from enum import Enum

from ..tags import TAG_SYNONYMS, MetadataNamespaces

METADATA_MARKER = "metadata"


class Container(Enum):
    """Attribute containers on a trace entity."""

    ANNOTATIONS = "annotations"
    AWS = "aws"
    HTTP = "http"
    SQL = "sql"
    SERVICE = "service"
    METADATA = "metadata"


_DIRECT_CONTAINERS = {
    Container.ANNOTATIONS.value: Container.ANNOTATIONS,
    Container.AWS.value: Container.AWS,
    Container.HTTP.value: Container.HTTP,
    Container.SQL.value: Container.SQL,
    Container.SERVICE.value: Container.SERVICE,
}


@dataclass(frozen=True)
class TagDestination:
    """Where a tag value lands: a container plus the nested keys inside it.

    For METADATA the first key is the namespace.
    """

    container: Container
    keys: tuple[str, ...]

    @property
    def namespace(self) -> str | None:
        if self.container is not Container.METADATA or not self.keys:
            return None
        return self.keys[0]

    @property
    def dotted(self) -> str:
        return ".".join((self.container.value, *self.keys))


def split_key(key: str) -> list[str]:
    """Split on '.', dropping trailing empty parts but always keeping at least one part."""
    parts = key.split(".")
    while len(parts) > 1 and parts[-1] == "":
        parts.pop()
    return parts


def resolve_tag_key(key: str) -> TagDestination:
    """Translate a raw tag key into its container and nested key path."""
    rewritten = TAG_SYNONYMS.get(key, key)
    parts = split_key(rewritten)
    head, rest = parts[0], parts[1:]

    container = _DIRECT_CONTAINERS.get(head)
    if container is not None:
        return TagDestination(container, tuple(rest))

    # Chomp a leading "metadata" only when something follows it; otherwise the
    # whole key is used and "metadata" is an ordinary sub-key.
    metadata_parts = rest if head == METADATA_MARKER and rest else parts
    if len(metadata_parts) > 1:
        namespace, keys = metadata_parts[0], metadata_parts[1:]
    else:
        namespace, keys = MetadataNamespaces.DEFAULT, metadata_parts
    return TagDestination(Container.METADATA, (namespace, *keys))
