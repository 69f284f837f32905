"""
Tag, log-field and reference vocabulary for segtrace spans.

Standard tag names follow the usual tracing conventions (db.*, http.*, error).
Segment documents store some of that data in dedicated containers (sql, http,
service), so TAG_SYNONYMS rewrites the conventional names to their container
paths before a tag is projected onto an entity.

Backend tags (fault, throttle, isSampled, user, origin, parentId) map directly
onto entity fields rather than onto an attribute container.
"""

from typing import Any


class Tag:
    """A typed tag key; ``tag.set(span, value)`` is shorthand for ``span.set_tag(tag.key, value)``."""

    value_type: type | tuple[type, ...] = object

    def __init__(self, key: str):
        self.key = key

    def set(self, span: Any, value: Any) -> Any:
        return span.set_tag(self.key, value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.key!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Tag) and type(other) is type(self) and other.key == self.key

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.key))


class StringTag(Tag):
    value_type = str


class BooleanTag(Tag):
    value_type = bool


class IntTag(Tag):
    value_type = (int, float)


# Standard tags
ERROR = BooleanTag("error")
DB_INSTANCE = StringTag("db.instance")
DB_STATEMENT = StringTag("db.statement")
DB_TYPE = StringTag("db.type")
DB_USER = StringTag("db.user")
HTTP_METHOD = StringTag("http.method")
HTTP_STATUS_CODE = IntTag("http.status_code")
HTTP_URL = StringTag("http.url")

# Extra conventional tags
VERSION = StringTag("version")
DB_DRIVER = StringTag("db.driver")
DB_VERSION = StringTag("db.version")
HTTP_CLIENT_IP = StringTag("http.client_ip")
HTTP_USER_AGENT = StringTag("http.user_agent")
HTTP_CONTENT_LENGTH = StringTag("http.content_length")

# Backend tags: stored as entity fields, not in attribute containers.
FAULT = BooleanTag("fault")
THROTTLE = BooleanTag("throttle")
IS_SAMPLED = BooleanTag("isSampled")  # root segment only
USER = StringTag("user")  # root segment only
ORIGIN = StringTag("origin")  # root segment only, e.g. "AWS::EC2::Instance"
PARENT_ID = StringTag("parentId")

TAG_SYNONYMS: dict[str, str] = {
    DB_INSTANCE.key: "sql.url",
    DB_STATEMENT.key: "sql.sanitized_query",
    DB_TYPE.key: "sql.database_type",
    DB_USER.key: "sql.user",
    DB_DRIVER.key: "sql.driver_version",
    DB_VERSION.key: "sql.database_version",
    HTTP_METHOD.key: "http.request.method",
    HTTP_STATUS_CODE.key: "http.response.status",
    HTTP_URL.key: "http.request.url",
    HTTP_CLIENT_IP.key: "http.request.client_ip",
    HTTP_USER_AGENT.key: "http.request.user_agent",
    HTTP_CONTENT_LENGTH.key: "http.response.content_length",
    VERSION.key: "service.version",
}

# Log field names
LOG_EVENT = "event"
LOG_MESSAGE = "message"
LOG_ERROR_OBJECT = "error.object"
LOG_ERROR_KIND = "error.kind"
LOG_STACK = "stack"


class MetadataNamespaces:
    """Namespaces inside the entity's generic metadata container."""

    DEFAULT = "default"
    LOG = "log"


class References:
    """Span reference types. Only CHILD_OF affects parent resolution."""

    CHILD_OF = "child_of"
    FOLLOWS_FROM = "follows_from"
