"""Gemini CLI ``--output-format stream-json`` adapter."""

from __future__ import annotations

from typing import Any

from agent_relay.orchestrator.adapters.base import (
    ParsedLine,
    SessionCapture,
    error_event,
    info_event,
    load_json_object,
    plain_text_event,
    result_event,
    thinking_event,
    tool_action_event,
)
from agent_relay.orchestrator.models import ProgressEvent

SESSION_FIELD = "session_id"


class GeminiStreamAdapter:
    """Parse Gemini stream-json events.

    ``init`` announces ``session_id`` and model, ``message`` lines carry
    ``role``/``content`` (assistant text may arrive as ``delta`` fragments),
    ``tool_use`` names the tool in ``tool_name``, and ``result`` closes the run
    with a ``status`` and ``stats``.
    """

    def __init__(self) -> None:
        self._session = SessionCapture()

    def parse_line(self, line: str) -> ParsedLine:
        payload = load_json_object(line)
        if payload is None:
            return ParsedLine(event=plain_text_event(line))
        session_id = self._session.offer(payload.get(SESSION_FIELD))
        event = error_event(payload) or _describe(payload)
        return ParsedLine(event=event, session_id=session_id)


def _describe(payload: dict[str, Any]) -> ProgressEvent | None:
    event_type = payload.get("type")
    if event_type == "init":
        model = payload.get("model") or "unknown"
        return info_event(f"Gemini initialized (model: {model})")
    if event_type == "message":
        if payload.get("role") != "assistant":
            return None
        return thinking_event(_message_text(payload))
    if event_type == "tool_use":
        return tool_action_event(payload.get("tool_name") or payload.get("name") or "unknown")
    if event_type == "tool_result":
        return None
    if event_type == "result":
        status = payload.get("status")
        stats = payload.get("stats")
        duration_ms = stats.get("duration_ms") if isinstance(stats, dict) else None
        return result_event(
            success=status == "success",
            label=str(status or "Unknown result"),
            duration_ms=duration_ms,
        )
    for key in ("message", "status", "text"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return info_event(value)
    return None


def _message_text(payload: dict[str, Any]) -> str | None:
    for key in ("content", "delta", "text"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None
