"""Exceptions raised by the tracing API and the segment backend."""


class SegtraceError(Exception):
    """Base class for all segtrace errors."""

    pass


class UnsupportedOperationError(SegtraceError):
    """Raised for API surface the segment model cannot support (renames, inject/extract)."""

    pass


class ConfigurationError(SegtraceError):
    """Raised when settings from YAML or the environment are invalid."""

    pass


class SegmentNotFoundError(SegtraceError):
    """Raised when a subsegment is requested but there is no parent entity to attach it to."""

    pass


class EntityAlreadyClosedError(SegtraceError):
    """Raised when closing a trace entity that has already been closed."""

    pass


class FacadeSegmentMutationError(UnsupportedOperationError):
    """Raised when a placeholder (facade) segment is mutated or closed."""

    pass
