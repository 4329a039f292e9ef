"""Codex ``exec --json`` adapter."""

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

SESSION_FIELD = "thread_id"

_ITEM_ACTIONS = {
    "command_execution": "exec",
    "file_change": "patch",
    "web_search": "search",
}


class CodexJsonAdapter:
    """Parse Codex JSONL events.

    * ``thread.started`` carries ``thread_id``, the id used by
      ``codex exec resume``.
    * ``item.started`` / ``item.completed`` wrap an ``item`` whose ``type`` is
      ``agent_message``, ``reasoning``, ``command_execution``, ``file_change``,
      ``mcp_tool_call``, ``web_search`` or ``error``.
    * ``turn.completed`` ends a successful turn; ``turn.failed`` and ``error``
      report failures.
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
    if event_type == "thread.started":
        return info_event("Codex session started")
    if event_type == "turn.completed":
        return result_event(success=True, label="Turn completed")
    if event_type in {"item.started", "item.updated", "item.completed"}:
        item = payload.get("item")
        if isinstance(item, dict):
            return _describe_item(item, completed=event_type == "item.completed")
        return None
    for key in ("message", "status", "text"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return info_event(value)
    return None


def _describe_item(item: dict[str, Any], *, completed: bool) -> ProgressEvent | None:
    item_type = item.get("type") or item.get("item_type")
    if item_type == "error":
        return error_event({"type": "error", "error": item.get("message") or item.get("text")})
    if item_type in _ITEM_ACTIONS:
        return tool_action_event(_ITEM_ACTIONS[item_type])
    if item_type == "mcp_tool_call":
        return tool_action_event(item.get("tool") or "mcp")
    if item_type in {"agent_message", "reasoning"} and completed:
        return thinking_event(item.get("text"))
    return None
