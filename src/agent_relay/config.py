"""Runtime configuration for headless agent execution."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from agent_relay.orchestrator.models import DEFAULT_TIMEOUT_SECONDS, ToolId


@dataclass(slots=True)
class HeadlessSettings:
    """Headless CLI execution settings."""

    enabled: bool = True
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    kill_grace_seconds: float = 2.0


@dataclass(slots=True)
class FallbackSettings:
    """Automation fallback settings."""

    command_template: str | None = None
    timeout_seconds: float = 60.0


@dataclass(slots=True)
class SessionSettings:
    """Session continuity settings."""

    max_age_seconds: float = 0.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    default_tool: ToolId = ToolId.CLAUDE_CODE
    headless: HeadlessSettings = field(default_factory=HeadlessSettings)
    fallback: FallbackSettings = field(default_factory=FallbackSettings)
    sessions: SessionSettings = field(default_factory=SessionSettings)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with defaults suitable for local use."""

        fallback_command = os.getenv("AGENT_RELAY_FALLBACK_COMMAND", "").strip()
        return cls(
            default_tool=ToolId.parse(os.getenv("AGENT_RELAY_DEFAULT_TOOL", ToolId.CLAUDE_CODE.value)),
            headless=HeadlessSettings(
                enabled=_env_bool("AGENT_RELAY_HEADLESS_ENABLED", True),
                timeout_seconds=_env_float("AGENT_RELAY_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
                kill_grace_seconds=_env_float("AGENT_RELAY_KILL_GRACE_SECONDS", 2.0),
            ),
            fallback=FallbackSettings(
                command_template=fallback_command or None,
                timeout_seconds=_env_float("AGENT_RELAY_FALLBACK_TIMEOUT_SECONDS", 60.0),
            ),
            sessions=SessionSettings(
                max_age_seconds=_env_float("AGENT_RELAY_SESSION_MAX_AGE_SECONDS", 0.0),
            ),
        )

    def validate(self) -> None:
        """Validate numeric bounds and the fallback command template."""

        if self.headless.timeout_seconds <= 0:
            raise ValueError("AGENT_RELAY_TIMEOUT_SECONDS must be > 0.")
        if self.headless.kill_grace_seconds <= 0:
            raise ValueError("AGENT_RELAY_KILL_GRACE_SECONDS must be > 0.")
        if self.fallback.timeout_seconds <= 0:
            raise ValueError("AGENT_RELAY_FALLBACK_TIMEOUT_SECONDS must be > 0.")
        if self.sessions.max_age_seconds < 0:
            raise ValueError("AGENT_RELAY_SESSION_MAX_AGE_SECONDS must be >= 0.")
        template = self.fallback.command_template
        if template is not None and "{prompt}" not in template and "{prompt_file}" not in template:
            raise ValueError(
                "AGENT_RELAY_FALLBACK_COMMAND must include {prompt} or {prompt_file}.",
            )


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as error:
        raise ValueError(f"Invalid numeric value for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
