"""Claude Code ``--output-format stream-json`` adapter."""

from __future__ import annotations

import logging
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

logger = logging.getLogger(__name__)

SESSION_FIELD = "session_id"


class ClaudeStreamAdapter:
    """Parse Claude-style stream-json lines.

    Every line is one JSON object with a ``type``/``subtype`` pair:
    ``system/init`` announces the model, ``assistant`` carries a
    ``message.content`` array of ``text`` and ``tool_use`` blocks, ``user``
    carries tool results (not shown), and ``result`` closes the turn.
    ``session_id`` is repeated on most lines; only the first one counts.
    """

    agent_label = "Claude"

    def __init__(self) -> None:
        self._session = SessionCapture()

    def parse_line(self, line: str) -> ParsedLine:
        payload = load_json_object(line)
        if payload is None:
            return ParsedLine(event=plain_text_event(line))

        logger.debug(
            "stream type=%s subtype=%s",
            payload.get("type"),
            payload.get("subtype") or "none",
        )
        session_id = self._session.offer(payload.get(SESSION_FIELD))
        event = error_event(payload) or self.describe(payload)
        return ParsedLine(event=event, session_id=session_id)

    def describe(self, payload: dict[str, Any]) -> ProgressEvent | None:
        """Map a parsed stream message to a progress event."""

        event_type = payload.get("type")
        subtype = payload.get("subtype")

        if event_type == "system" and subtype == "init":
            model = payload.get("model") or "unknown"
            return info_event(f"{self.agent_label} initialized (model: {model})")

        if event_type == "assistant":
            return _describe_content(payload.get("message"))

        if event_type == "result":
            success = subtype == "success" and not payload.get("is_error")
            return result_event(
                success=success,
                label=str(subtype or "Unknown result"),
                duration_ms=payload.get("duration_ms"),
            )

        if event_type == "system":
            message = payload.get("message") or payload.get("status")
            if isinstance(message, str) and message.strip():
                return info_event(message)
        return None


def _describe_content(message: object) -> ProgressEvent | None:
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if isinstance(content, str):
        return thinking_event(content)
    if not isinstance(content, list):
        return None
    for block in content:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "tool_use":
            return tool_action_event(block.get("name") or "unknown")
        if block_type == "text":
            event = thinking_event(block.get("text"))
            if event is not None:
                return event
    return None
