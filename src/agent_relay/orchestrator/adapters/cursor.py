"""Cursor agent CLI adapter."""

from __future__ import annotations

from typing import Any

from agent_relay.orchestrator.adapters.base import tool_action_event
from agent_relay.orchestrator.adapters.claude import ClaudeStreamAdapter
from agent_relay.orchestrator.models import ProgressEvent

_TOOL_CALL_SUFFIX = "ToolCall"


class CursorStreamAdapter(ClaudeStreamAdapter):
    """Parse ``cursor-agent --output-format stream-json`` lines.

    The schema follows Claude's (``system/init``, ``assistant``, ``result``),
    with tool activity reported separately as ``tool_call`` lines whose
    ``tool_call`` object is keyed by the call kind, e.g. ``readToolCall``.
    """

    agent_label = "Cursor"

    def describe(self, payload: dict[str, Any]) -> ProgressEvent | None:
        if payload.get("type") == "tool_call":
            if payload.get("subtype") != "started":
                return None
            return tool_action_event(_tool_call_name(payload.get("tool_call")))
        return super().describe(payload)


def _tool_call_name(tool_call: object) -> str:
    if not isinstance(tool_call, dict) or not tool_call:
        return "unknown"
    key = next(iter(tool_call))
    if key == "function" and isinstance(tool_call["function"], dict):
        return str(tool_call["function"].get("name") or "unknown")
    return key.removesuffix(_TOOL_CALL_SUFFIX) or key
