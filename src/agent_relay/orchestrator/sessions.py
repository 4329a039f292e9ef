"""In-memory session continuity across executions."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Hashable
from datetime import UTC, datetime, timedelta
from typing import NamedTuple

from agent_relay.orchestrator.models import SessionState, ToolId

logger = logging.getLogger(__name__)


class ConversationKey(NamedTuple):
    """Conventional key: one conversation per (project, phase) pair."""

    project: str
    phase: str


class SessionContinuityTracker:
    """Latest captured session id per conversation key.

    Every capture overwrites the previous one; there is no history.  Writes to
    one key never block reads of another, and state lives only as long as the
    tracker instance.
    """

    def __init__(
        self,
        *,
        max_age_seconds: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._entries: dict[Hashable, SessionState] = {}
        self._key_locks: dict[Hashable, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._max_age = (
            timedelta(seconds=max_age_seconds) if max_age_seconds and max_age_seconds > 0 else None
        )
        self._clock = clock or (lambda: datetime.now(UTC))

    def capture(
        self,
        key: Hashable,
        session_id: str,
        tool: ToolId | None = None,
    ) -> SessionState:
        """Store ``session_id`` as the latest for ``key``."""

        if not session_id or not session_id.strip():
            raise ValueError("Session id must not be empty.")
        state = SessionState(tool=tool, session_id=session_id.strip(), captured_at=self._clock())
        with self._lock_for(key):
            previous = self._entries.get(key)
            self._entries[key] = state
        if previous is not None and previous.session_id != state.session_id:
            logger.debug("Session for %s superseded: %s -> %s", key, previous.session_id, state.session_id)
        else:
            logger.debug("Session for %s captured: %s", key, state.session_id)
        return state

    def get(self, key: Hashable) -> str | None:
        state = self.get_state(key)
        return state.session_id if state is not None else None

    def get_state(self, key: Hashable) -> SessionState | None:
        """Return the latest state for ``key``, dropping it if expired."""

        with self._lock_for(key):
            state = self._entries.get(key)
            if state is not None and self._is_expired(state):
                logger.debug("Session for %s expired (captured %s)", key, state.captured_at)
                del self._entries[key]
                state = None
        if state is None:
            self._release(key)
        return state

    def clear(self, key: Hashable) -> None:
        with self._lock_for(key):
            self._entries.pop(key, None)
        self._release(key)

    def snapshot(self) -> dict[Hashable, SessionState]:
        """Copy of all live entries."""

        with self._registry_lock:
            keys = list(self._entries)
        result: dict[Hashable, SessionState] = {}
        for key in keys:
            state = self.get_state(key)
            if state is not None:
                result[key] = state
        return result

    def _is_expired(self, state: SessionState) -> bool:
        return self._max_age is not None and self._clock() - state.captured_at > self._max_age

    def _lock_for(self, key: Hashable) -> threading.Lock:
        with self._registry_lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def _release(self, key: Hashable) -> None:
        # Keys without an entry keep no lock, so the lock map tracks live entries.
        with self._registry_lock:
            if key not in self._entries:
                self._key_locks.pop(key, None)
