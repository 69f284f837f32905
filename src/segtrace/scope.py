"""
Active-span tracking.

The recorder already tracks the current entity per thread; the ScopeManager
additionally keeps the whole Scope chain per thread so closing a scope can put
back both the previous scope and the previous entity. Every change to the
current scope goes through ScopeManager._set_current_scope(), which updates
the recorder in the same step.

Scopes are expected to be closed in reverse order of activation. Closing them
out of order is not detected: the thread simply returns to whatever scope the
closed one had captured.
"""

import logging
import threading
from typing import Any

from .backend.recorder import Recorder
from .span import Span
from .tags import LOG_ERROR_OBJECT

logger = logging.getLogger(__name__)


class Scope:
    """Activation record for a span on one thread."""

    def __init__(
        self,
        manager: "ScopeManager",
        previous: "Scope | None",
        span: Span,
        finish_on_close: bool = False,
    ):
        self._manager = manager
        self._previous = previous
        self._span = span
        self._finish_on_close = finish_on_close

    @property
    def span(self) -> Span:
        return self._span

    @property
    def previous(self) -> "Scope | None":
        return self._previous

    def close(self) -> None:
        """Finish the span if requested, then restore the previously active scope."""
        if self._finish_on_close:
            self._span.finish()
        self._manager._set_current_scope(self._previous)

    def __enter__(self) -> "Scope":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_val is not None and self._finish_on_close:
            self._span.set_tag("error", True)
            self._span.log_kv({"event": "error", LOG_ERROR_OBJECT: exc_val})
        self.close()


class ScopeManager:
    """Per-thread stack of active scopes, kept in sync with the recorder's current entity."""

    def __init__(self, recorder: Recorder):
        self._recorder = recorder
        self._local = threading.local()

    @property
    def active(self) -> Scope | None:
        return getattr(self._local, "scope", None)

    @property
    def active_span(self) -> Span | None:
        scope = self.active
        return scope.span if scope is not None else None

    def activate(self, span: Any, finish_on_close: bool = False) -> Scope | None:
        """Make ``span`` active on this thread and return its Scope.

        Anything other than a Span leaves the current scope untouched and is returned as-is.
        """
        if not isinstance(span, Span):
            if span is not None:
                logger.warning(
                    "Cannot activate span: expected %s but got %s", Span.__name__, type(span).__name__
                )
            return self.active
        scope = Scope(self, self.active, span, finish_on_close)
        self._set_current_scope(scope)
        return scope

    def _set_current_scope(self, scope: Scope | None) -> None:
        self._local.scope = scope
        self._recorder.set_trace_entity(scope.span.entity if scope is not None else None)
