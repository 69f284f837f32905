"""
Project tag values onto trace entities.

apply_tag() first handles the tags that map to entity fields (error, fault,
throttle, isSampled, user, origin, parentId), then falls back to resolving the
key to an attribute container path and storing the value there unchanged.
"""

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from .. import tags
from .containers import AttributeMap, TagValue
from .paths import Container, resolve_tag_key

if TYPE_CHECKING:
    from ..backend.entities import Entity


def project(container: AttributeMap, keys: Sequence[str], value: TagValue) -> None:
    """Store ``value`` at the nested ``keys`` path inside ``container``.

    Intermediate maps are fetched or created; the last key is overwritten,
    whether it previously held a scalar or a nested map. An empty path is a no-op.
    """
    if not keys:
        return
    target = container
    for key in keys[:-1]:
        target = target.child(key)
    target[keys[-1]] = value


def container_for(entity: "Entity", container: Container) -> AttributeMap | None:
    """Return the entity's attribute container, or None if the entity does not have one."""
    if container is Container.SERVICE:
        return entity.service if entity.is_root else None
    return getattr(entity, container.value)


def _apply_field_tag(entity: "Entity", key: str, value: Any) -> bool:
    """Set tags that map onto entity fields. Returns True if the tag was consumed."""
    is_root = entity.is_root
    if isinstance(value, bool):
        if key == tags.ERROR.key:
            entity.error = value
        elif key == tags.FAULT.key:
            entity.fault = value
        elif key == tags.THROTTLE.key:
            entity.throttle = value
        elif key == tags.IS_SAMPLED.key and is_root:
            entity.sampled = value
        else:
            return False
        return True
    if isinstance(value, str):
        if key == tags.USER.key and is_root:
            entity.user = value
        elif key == tags.ORIGIN.key and is_root:
            entity.origin = value
        elif key == tags.PARENT_ID.key:
            entity.parent_id = value
        else:
            return False
        return True
    return False


def apply_tag(entity: "Entity", key: str, value: TagValue) -> None:
    """Set a single tag on ``entity``."""
    if _apply_field_tag(entity, key, value):
        return
    destination = resolve_tag_key(key)
    target = container_for(entity, destination.container)
    if target is None:
        return
    project(target, destination.keys, value)
