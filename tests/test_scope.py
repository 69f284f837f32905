"""Tests for ScopeManager activation and per-thread isolation."""

import logging
import threading

import pytest

from segtrace.scope import ScopeManager
from segtrace.tracer import Tracer


def test_activate_and_close_restore_previous(tracer: Tracer) -> None:
    """Closing a scope restores the previous scope and recorder entity."""
    manager = tracer.scope_manager
    outer = tracer.build_span("outer").start()
    inner = tracer.build_span("inner").as_child_of(outer).start()

    outer_scope = manager.activate(outer)
    inner_scope = manager.activate(inner)
    assert manager.active is inner_scope
    assert inner_scope.previous is outer_scope
    assert tracer.recorder.get_trace_entity() is inner.entity

    inner_scope.close()
    assert manager.active is outer_scope
    assert tracer.recorder.get_trace_entity() is outer.entity
    assert not inner.finished

    outer_scope.close()
    assert manager.active is None
    assert tracer.recorder.get_trace_entity() is None


def test_finish_on_close(tracer: Tracer) -> None:
    """finish_on_close finishes the span before restoring the previous scope."""
    span = tracer.build_span("op").start()
    scope = tracer.scope_manager.activate(span, finish_on_close=True)
    scope.close()
    assert span.finished
    assert span.entity.closed


def test_scope_context_manager_records_error(tracer: Tracer) -> None:
    """An exception leaving a finishing scope marks the span as errored."""
    with pytest.raises(KeyError):
        with tracer.start_active_span("op") as scope:
            raise KeyError("missing")
    assert scope.span.entity.error is True
    assert scope.span.entity.fault is True
    assert scope.span.finished
    assert tracer.active_span is None


def test_activate_non_span_warns(tracer: Tracer, caplog: pytest.LogCaptureFixture) -> None:
    """Activating something that is not a Span leaves the current scope as it was."""
    with tracer.start_active_span("op") as scope:
        with caplog.at_level(logging.WARNING, logger="segtrace.scope"):
            result = tracer.scope_manager.activate(object())
        assert result is scope
        assert tracer.scope_manager.active is scope
    assert "Cannot activate span" in caplog.text


def test_activate_none_returns_current(tracer: Tracer) -> None:
    """activate(None) is a no-op returning the active scope."""
    assert tracer.scope_manager.activate(None) is None


def test_scopes_are_per_thread(tracer: Tracer) -> None:
    """A scope activated on one thread is invisible on another."""
    seen: dict[str, object] = {}

    with tracer.start_active_span("main-thread"):

        def worker() -> None:
            seen["active"] = tracer.active_span
            seen["entity"] = tracer.recorder.get_trace_entity()
            with tracer.start_active_span("worker") as scope:
                seen["worker_is_root"] = scope.span.entity.is_root

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

    assert seen == {"active": None, "entity": None, "worker_is_root": True}


def test_out_of_order_close_restores_captured_previous(tracer: Tracer) -> None:
    """Closing a parent scope before its child returns to whatever the parent captured."""
    manager: ScopeManager = tracer.scope_manager
    outer = manager.activate(tracer.build_span("outer").start())
    inner = manager.activate(tracer.build_span("inner").start())

    outer.close()
    assert manager.active is None

    inner.close()
    assert manager.active is outer
