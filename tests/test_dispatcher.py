from __future__ import annotations

import threading

import allure

from agent_relay.orchestrator.dispatcher import EventDispatcher, OrchestratorCallbacks
from agent_relay.orchestrator.models import ExecutionResult, ProgressEvent, ProgressKind

pytestmark = [
    allure.epic("Headless Execution"),
    allure.feature("Event Dispatch"),
]


def _event(message: str) -> ProgressEvent:
    return ProgressEvent(kind=ProgressKind.INFO, message=message, icon="")


def test_notifications_are_delivered_in_order() -> None:
    seen: list[str] = []
    dispatcher = EventDispatcher(
        OrchestratorCallbacks(
            on_progress=lambda event: seen.append(f"progress:{event.message}"),
            on_session_id=lambda session_id: seen.append(f"session:{session_id}"),
            on_result=lambda result: seen.append(f"result:{result.success}"),
        ),
    )

    dispatcher.publish_progress(_event("one"))
    dispatcher.publish_session_id("S1")
    dispatcher.publish_progress(_event("two"))
    dispatcher.publish_result(ExecutionResult(success=True))
    dispatcher.join(timeout=5)

    assert seen == ["progress:one", "session:S1", "progress:two", "result:True"]


def test_failing_callback_does_not_stop_delivery() -> None:
    results: list[ExecutionResult] = []

    def _explode(event: ProgressEvent) -> None:
        raise RuntimeError(event.message)

    dispatcher = EventDispatcher(OrchestratorCallbacks(on_progress=_explode, on_result=results.append))
    dispatcher.publish_progress(_event("boom"))
    dispatcher.publish_result(ExecutionResult(success=False, error="x"))
    dispatcher.join(timeout=5)

    assert [result.error for result in results] == ["x"]


def test_slow_consumer_does_not_block_publisher() -> None:
    release = threading.Event()
    delivered: list[str] = []

    def _slow(event: ProgressEvent) -> None:
        release.wait(5)
        delivered.append(event.message)

    dispatcher = EventDispatcher(OrchestratorCallbacks(on_progress=_slow))
    for index in range(100):
        dispatcher.publish_progress(_event(str(index)))
    dispatcher.publish_result(ExecutionResult(success=True))

    assert delivered == []
    release.set()
    dispatcher.join(timeout=5)
    assert delivered == [str(index) for index in range(100)]


def test_publishing_after_result_is_dropped() -> None:
    seen: list[str] = []
    dispatcher = EventDispatcher(
        OrchestratorCallbacks(
            on_progress=lambda event: seen.append(event.message),
            on_result=lambda result: seen.append("result"),
        ),
    )

    dispatcher.publish_result(ExecutionResult(success=True))
    dispatcher.publish_progress(_event("late"))
    dispatcher.publish_result(ExecutionResult(success=False))
    dispatcher.join(timeout=5)

    assert dispatcher.closed
    assert seen == ["result"]
