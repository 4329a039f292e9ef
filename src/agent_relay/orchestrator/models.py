"""Domain models for headless agent execution."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

DEFAULT_TIMEOUT_SECONDS = 300


class ToolId(str, Enum):
    """Supported AI coding tools."""

    CLAUDE_CODE = "claude-code"
    CURSOR = "cursor"
    CODEX = "codex"
    GEMINI = "gemini"
    WINDSURF = "windsurf"
    GITHUB_COPILOT = "github-copilot"

    @classmethod
    def parse(cls, value: str | ToolId) -> ToolId:
        """Resolve a tool id from user input."""

        if isinstance(value, ToolId):
            return value
        normalized = value.strip().lower()
        for tool in cls:
            if tool.value == normalized:
                return tool
        supported = ", ".join(tool.value for tool in cls)
        raise ValueError(f"Unsupported AI tool: {value!r}. Use one of: {supported}.")


class ProgressKind(str, Enum):
    """Normalized progress categories shared by all backends."""

    INFO = "info"
    TOOL_ACTION = "tool_action"
    PARTIAL_OUTPUT = "partial_output"
    RESULT = "result"
    ERROR = "error"


class StdinMode(str, Enum):
    """How the child process standard input is wired."""

    INHERIT = "inherit"
    DEVNULL = "devnull"


class ExecutionMode(str, Enum):
    """Which strategy produced an execution result."""

    HEADLESS = "headless"
    FALLBACK = "fallback"


class FailureKind(str, Enum):
    """Why an execution attempt did not succeed."""

    SPAWN_FAILURE = "spawn_failure"
    PROCESS_FAILURE = "process_failure"
    TIMEOUT = "timeout"
    CANCELED = "canceled"
    UNAVAILABLE = "unavailable"
    FALLBACK_FAILURE = "fallback_failure"


@dataclass(slots=True, frozen=True)
class ProgressEvent:
    """One human-readable progress update."""

    kind: ProgressKind
    message: str
    icon: str

    def render(self) -> str:
        """Return the status line shown to users."""

        return f"{self.icon} {self.message}" if self.icon else self.message


@dataclass(slots=True, frozen=True)
class ExecutionRequest:
    """Immutable input for one prompt execution."""

    prompt: str
    tool: ToolId
    working_dir: Path = field(default_factory=lambda: Path(os.getcwd()))
    resume_session_id: str | None = None
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    allowed_capabilities: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.prompt or not self.prompt.strip():
            raise ValueError("Execution prompt must not be empty.")
        if self.timeout_seconds <= 0:
            raise ValueError("Execution timeout must be > 0 seconds.")
        object.__setattr__(self, "tool", ToolId.parse(self.tool))
        object.__setattr__(self, "working_dir", Path(self.working_dir))
        object.__setattr__(self, "allowed_capabilities", tuple(self.allowed_capabilities))
        if self.resume_session_id is not None and not self.resume_session_id.strip():
            object.__setattr__(self, "resume_session_id", None)


@dataclass(slots=True, frozen=True)
class ExecutionResult:
    """Terminal outcome of one execution request.

    ``failure_kind`` describes the final step. On fallback results the
    ``headless_*`` fields describe why headless execution was skipped or
    failed, with ``headless_reason_code`` set when the failure was classified.
    """

    success: bool
    error: str | None = None
    session_id: str | None = None
    exit_code: int | None = None
    mode: ExecutionMode = ExecutionMode.HEADLESS
    failure_kind: FailureKind | None = None
    headless_error: str | None = None
    headless_failure_kind: FailureKind | None = None
    headless_reason_code: str | None = None


@dataclass(slots=True, frozen=True)
class SessionState:
    """Latest session id captured for a conversation."""

    tool: ToolId | None
    session_id: str
    captured_at: datetime
