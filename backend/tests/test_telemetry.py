from __future__ import annotations

import logging
from pathlib import Path

from kb_sync.telemetry import (
    TelemetryEvent,
    capture_events,
    emit_event,
    register_listener,
    unregister_listener,
)
from kb_sync.worker import QueueState


def test_events_reach_listeners_with_sanitized_payload() -> None:
    with capture_events() as events:
        emit_event("custom_event", state=QueueState.DRAINING, path=Path("/tmp/x"), count=2)

    assert events == [
        TelemetryEvent(name="custom_event", payload={"state": "draining", "path": "/tmp/x", "count": 2})
    ]


def test_failing_listener_does_not_break_emit(caplog) -> None:
    def broken(event: TelemetryEvent) -> None:
        raise RuntimeError("listener down")

    register_listener(broken)
    try:
        with capture_events() as events, caplog.at_level(logging.INFO, logger="kb_sync.telemetry"):
            emit_event("after_failure")
    finally:
        unregister_listener(broken)

    assert [event.name for event in events] == ["after_failure"]
    assert "Telemetry listener failed" in caplog.text
    assert 'TELEMETRY {"event": "after_failure"}' in caplog.text
