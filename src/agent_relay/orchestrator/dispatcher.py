"""Ordered, non-blocking delivery of execution notifications."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass

from agent_relay.orchestrator.models import ExecutionResult, ProgressEvent

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]
SessionIdCallback = Callable[[str], None]
ResultCallback = Callable[[ExecutionResult], None]


@dataclass(slots=True)
class OrchestratorCallbacks:
    """Consumer hooks; any of them may be omitted."""

    on_progress: ProgressCallback | None = None
    on_session_id: SessionIdCallback | None = None
    on_result: ResultCallback | None = None


class EventDispatcher:
    """Deliver notifications for one invocation on a dedicated thread.

    Producers (the stream reader) only enqueue, so a slow or failing consumer
    never stalls reading of the child's output.  The terminal result closes
    the channel; anything published after it is dropped.
    """

    def __init__(self, callbacks: OrchestratorCallbacks, *, name: str = "agent-relay-events") -> None:
        self._callbacks = callbacks
        self._queue: queue.Queue[tuple[str, object]] = queue.Queue()
        self._closed = False
        self._lock = threading.Lock()
        self._thread = threading.Thread(target=self._drain, name=name, daemon=True)
        self._thread.start()

    @property
    def closed(self) -> bool:
        return self._closed

    def publish_progress(self, event: ProgressEvent) -> None:
        self._put("progress", event)

    def publish_session_id(self, session_id: str) -> None:
        self._put("session_id", session_id)

    def publish_result(self, result: ExecutionResult) -> None:
        self._put("result", result, close=True)

    def join(self, timeout: float | None = None) -> None:
        """Wait until every queued notification has been delivered."""

        self._thread.join(timeout)

    def _put(self, kind: str, payload: object, *, close: bool = False) -> None:
        with self._lock:
            if self._closed:
                logger.debug("Dropping %s notification after terminal result", kind)
                return
            if close:
                self._closed = True
            self._queue.put((kind, payload))

    def _drain(self) -> None:
        while True:
            kind, payload = self._queue.get()
            self._deliver(kind, payload)
            if kind == "result":
                return

    def _deliver(self, kind: str, payload: object) -> None:
        if kind == "progress":
            callback: Callable[..., None] | None = self._callbacks.on_progress
        elif kind == "session_id":
            callback = self._callbacks.on_session_id
        else:
            callback = self._callbacks.on_result
        if callback is None:
            return
        try:
            callback(payload)
        except Exception:  # noqa: BLE001
            logger.exception("Execution %s callback failed", kind)
