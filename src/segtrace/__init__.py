"""segtrace: a span-style tracing API recorded as X-Ray-style segments and subsegments."""

__version__ = "0.1.0"

from .backend import EnvironmentHostResolver, HostContextResolver, Recorder, SpanExporterEmitter
from .config import TracingSettings, load_settings
from .errors import (
    ConfigurationError,
    EntityAlreadyClosedError,
    FacadeSegmentMutationError,
    SegmentNotFoundError,
    SegtraceError,
    UnsupportedOperationError,
)
from .factory import create_tracer
from .scope import Scope, ScopeManager
from .span import Span, SpanContext
from .tracer import Reference, SpanBuilder, Tracer, child_of, follows_from

__all__ = [
    "__version__",
    "Tracer",
    "SpanBuilder",
    "Span",
    "SpanContext",
    "Scope",
    "ScopeManager",
    "Reference",
    "child_of",
    "follows_from",
    "Recorder",
    "HostContextResolver",
    "EnvironmentHostResolver",
    "SpanExporterEmitter",
    "TracingSettings",
    "load_settings",
    "create_tracer",
    "SegtraceError",
    "UnsupportedOperationError",
    "ConfigurationError",
    "SegmentNotFoundError",
    "EntityAlreadyClosedError",
    "FacadeSegmentMutationError",
]
