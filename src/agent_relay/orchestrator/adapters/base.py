"""Shared adapter contract, invocation config and parsing helpers."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from agent_relay.orchestrator.models import (
    ExecutionRequest,
    ProgressEvent,
    ProgressKind,
    StdinMode,
    ToolId,
)

PLAIN_TEXT_LIMIT = 100
ASSISTANT_TEXT_LIMIT = 80
STATUS_TEXT_LIMIT = 120

ICON_INFO = "ℹ️"
ICON_THINKING = "💭"
ICON_SUCCESS = "✅"
ICON_WARNING = "⚠️"
ICON_ERROR = "❌"

# Order matters: the first keyword found in the lowercased tool name wins.
_ACTION_KEYWORDS: tuple[tuple[tuple[str, ...], str, str], ...] = (
    (("grep", "search", "find", "glob", "list"), "🔍", "Searching files..."),
    (("read", "view", "open"), "📖", "Reading file..."),
    (("edit", "patch", "replace", "update", "modify", "apply"), "✏️", "Editing file..."),
    (("write", "create", "save", "file_change"), "📝", "Writing file..."),
    (("bash", "shell", "exec", "run", "command", "terminal"), "💻", "Running command..."),
)
# Short tool names that are too ambiguous for substring matching.
_EXACT_ALIASES = {"ls": "list", "cat": "read", "rg": "grep", "sh": "shell"}


@dataclass(slots=True, frozen=True)
class ParsedLine:
    """Adapter output for one raw line."""

    event: ProgressEvent | None = None
    session_id: str | None = None


class ProtocolAdapter(Protocol):
    """Translate one backend's raw output lines into progress events."""

    def parse_line(self, line: str) -> ParsedLine:
        """Parse one complete output line."""


@dataclass(slots=True, frozen=True)
class AdapterConfig:
    """Invocation template and parser factory for one backend CLI."""

    tool: ToolId
    executable: str
    adapter_factory: Callable[[], ProtocolAdapter]
    base_args: tuple[str, ...] = ()
    prompt_args: tuple[str, ...] = ("{prompt}",)
    resume_args: tuple[str, ...] = ()
    allow_args: tuple[str, ...] = ()
    capability_separator: str = ","
    default_capabilities: tuple[str, ...] = ()
    stdin_mode: StdinMode = StdinMode.DEVNULL
    credential_env: str | None = None
    display_name: str = ""

    def build_args(self, request: ExecutionRequest) -> list[str]:
        """Render the argument list (without the executable) for a request."""

        args = list(self.base_args)
        if request.resume_session_id and self.resume_args:
            args.extend(
                _render(part, session_id=request.resume_session_id) for part in self.resume_args
            )
        capabilities = request.allowed_capabilities or self.default_capabilities
        if capabilities and self.allow_args:
            joined = self.capability_separator.join(capabilities)
            args.extend(_render(part, capabilities=joined) for part in self.allow_args)
        args.extend(_render(part, prompt=request.prompt) for part in self.prompt_args)
        return args

    def new_adapter(self) -> ProtocolAdapter:
        """Return a fresh parser scoped to one invocation."""

        return self.adapter_factory()

    @property
    def name(self) -> str:
        return self.display_name or self.tool.value


def _render(template: str, **values: str) -> str:
    # Only whole-token placeholders are substituted so prompts containing
    # braces are passed through untouched.
    for key, value in values.items():
        placeholder = "{" + key + "}"
        if template == placeholder:
            return value
        if placeholder in template:
            template = template.replace(placeholder, value)
    return template


class SessionCapture:
    """Remember the first session id seen during one invocation."""

    __slots__ = ("_captured",)

    def __init__(self) -> None:
        self._captured: str | None = None

    def offer(self, value: object) -> str | None:
        """Return the id if it is new for this invocation, else ``None``."""

        if self._captured is not None:
            return None
        if not isinstance(value, str) or not value.strip():
            return None
        self._captured = value.strip()
        return self._captured

    @property
    def captured(self) -> str | None:
        return self._captured


def load_json_object(line: str) -> dict[str, Any] | None:
    """Return the line as a JSON object, or ``None`` for anything else."""

    try:
        parsed = json.loads(line)
    except (json.JSONDecodeError, ValueError):
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def truncate(text: str, limit: int) -> str:
    """Collapse whitespace and cut text to ``limit`` chars plus an ellipsis."""

    compact = " ".join(text.split())
    if len(compact) <= limit:
        return compact
    return compact[:limit] + "..."


def plain_text_event(line: str) -> ProgressEvent | None:
    """Low-priority status for lines that are not JSON objects."""

    stripped = line.strip()
    if not stripped:
        return None
    return ProgressEvent(
        kind=ProgressKind.INFO,
        message=stripped[:PLAIN_TEXT_LIMIT],
        icon="",
    )


def tool_action_event(tool_name: object) -> ProgressEvent:
    """Map a backend tool/command name to a friendly action phrase."""

    name = str(tool_name or "").strip()
    lowered = _EXACT_ALIASES.get(name.lower(), name.lower())
    for keywords, icon, phrase in _ACTION_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return ProgressEvent(kind=ProgressKind.TOOL_ACTION, message=phrase, icon=icon)
    label = name or "tool"
    return ProgressEvent(
        kind=ProgressKind.TOOL_ACTION,
        message=f"Using {truncate(label, 40)}...",
        icon="🔧",
    )


def thinking_event(text: object, *, limit: int = ASSISTANT_TEXT_LIMIT) -> ProgressEvent | None:
    if not isinstance(text, str) or not text.strip():
        return None
    return ProgressEvent(
        kind=ProgressKind.PARTIAL_OUTPUT,
        message=truncate(text, limit),
        icon=ICON_THINKING,
    )


def info_event(text: str, *, limit: int = STATUS_TEXT_LIMIT) -> ProgressEvent:
    return ProgressEvent(kind=ProgressKind.INFO, message=truncate(text, limit), icon=ICON_INFO)


def error_event(payload: dict[str, Any]) -> ProgressEvent | None:
    """Return an error event when the payload carries an error indicator."""

    event_type = str(payload.get("type") or "")
    has_error_type = (
        event_type == "error" or event_type.endswith(".error") or event_type == "turn.failed"
    )
    # A present but empty "error" (null, "", {}) does not mark a failure.
    if not payload.get("error") and not has_error_type:
        return None
    message = _error_message(payload.get("error")) or _error_message(payload.get("message"))
    return ProgressEvent(
        kind=ProgressKind.ERROR,
        message=truncate(message or "Agent reported an error", STATUS_TEXT_LIMIT),
        icon=ICON_ERROR,
    )


def _error_message(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    if isinstance(value, dict):
        for key in ("message", "error", "text", "detail"):
            nested = value.get(key)
            if isinstance(nested, str) and nested.strip():
                return nested
    return None


def result_event(*, success: bool, label: str, duration_ms: object = None) -> ProgressEvent:
    """Final-result status line shared by backends that report one."""

    duration = ""
    if isinstance(duration_ms, int | float) and not isinstance(duration_ms, bool):
        duration = f" ({duration_ms / 1000:.1f}s)"
    if success:
        return ProgressEvent(
            kind=ProgressKind.RESULT,
            message=f"Task completed{duration}",
            icon=ICON_SUCCESS,
        )
    return ProgressEvent(
        kind=ProgressKind.RESULT,
        message=f"{label}{duration}",
        icon=ICON_WARNING,
    )
