from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta

import allure
import pytest

from agent_relay.orchestrator.models import ToolId
from agent_relay.orchestrator.sessions import ConversationKey, SessionContinuityTracker

pytestmark = [
    allure.epic("Headless Execution"),
    allure.feature("Session Continuity"),
]


def test_latest_capture_wins_per_key() -> None:
    tracker = SessionContinuityTracker()
    key = ConversationKey(project="p1", phase="implement")

    tracker.capture(key, "S1", ToolId.CLAUDE_CODE)
    tracker.capture(key, "S2", ToolId.CLAUDE_CODE)

    assert tracker.get(key) == "S2"
    state = tracker.get_state(key)
    assert state is not None
    assert state.tool == ToolId.CLAUDE_CODE
    assert tracker.get(ConversationKey(project="p1", phase="review")) is None


def test_clear_and_snapshot() -> None:
    tracker = SessionContinuityTracker()
    tracker.capture("a", "S1")
    tracker.capture(("b", 2), "S2", ToolId.CODEX)

    tracker.clear("a")
    tracker.clear("missing")

    snapshot = tracker.snapshot()
    assert list(snapshot) == [("b", 2)]
    assert snapshot[("b", 2)].session_id == "S2"


def test_empty_session_id_is_rejected() -> None:
    with pytest.raises(ValueError, match="must not be empty"):
        SessionContinuityTracker().capture("a", "  ")


def test_entries_expire_after_max_age() -> None:
    now = [datetime(2026, 1, 1, tzinfo=UTC)]
    tracker = SessionContinuityTracker(max_age_seconds=60, clock=lambda: now[0])
    tracker.capture("a", "S1")

    now[0] += timedelta(seconds=59)
    assert tracker.get("a") == "S1"
    now[0] += timedelta(seconds=2)
    assert tracker.get("a") is None
    assert tracker.snapshot() == {}


def test_concurrent_captures_on_distinct_keys() -> None:
    tracker = SessionContinuityTracker()

    def _capture(index: int) -> None:
        for attempt in range(50):
            tracker.capture(f"key-{index}", f"S{index}-{attempt}")

    threads = [threading.Thread(target=_capture, args=(index,)) for index in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert {key: state.session_id for key, state in tracker.snapshot().items()} == {
        f"key-{index}": f"S{index}-49" for index in range(8)
    }


def test_cleared_expired_and_missing_keys_keep_no_lock() -> None:
    now = [datetime(2026, 1, 1, tzinfo=UTC)]
    tracker = SessionContinuityTracker(max_age_seconds=60, clock=lambda: now[0])
    tracker.capture("cleared", "S1")
    tracker.capture("expiring", "S2")
    tracker.capture("live", "S3")

    tracker.clear("cleared")
    assert tracker.get("never-captured") is None
    now[0] += timedelta(seconds=30)
    tracker.capture("live", "S4")
    now[0] += timedelta(seconds=31)
    assert tracker.get("expiring") is None

    assert set(tracker._key_locks) == {"live"}  # noqa: SLF001
    assert tracker.get("live") == "S4"
