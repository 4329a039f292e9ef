"""Backend protocol adapters and their invocation registry."""

from __future__ import annotations

from collections.abc import Iterator

from agent_relay.orchestrator.adapters.base import (
    AdapterConfig,
    ParsedLine,
    ProtocolAdapter,
)
from agent_relay.orchestrator.adapters.claude import ClaudeStreamAdapter
from agent_relay.orchestrator.adapters.codex import CodexJsonAdapter
from agent_relay.orchestrator.adapters.cursor import CursorStreamAdapter
from agent_relay.orchestrator.adapters.gemini import GeminiStreamAdapter
from agent_relay.orchestrator.models import StdinMode, ToolId

CLAUDE_CONFIG = AdapterConfig(
    tool=ToolId.CLAUDE_CODE,
    display_name="Claude Code",
    executable="claude",
    adapter_factory=ClaudeStreamAdapter,
    base_args=("--output-format", "stream-json", "--verbose"),
    resume_args=("--resume", "{session_id}"),
    allow_args=("--allowedTools", "{capabilities}"),
    default_capabilities=("Read", "Edit", "Write", "Bash", "Glob", "Grep"),
    prompt_args=("-p", "{prompt}"),
    # The Claude CLI refuses to start without a live stdin.
    stdin_mode=StdinMode.INHERIT,
)

CURSOR_CONFIG = AdapterConfig(
    tool=ToolId.CURSOR,
    display_name="Cursor",
    executable="cursor-agent",
    adapter_factory=CursorStreamAdapter,
    base_args=("--output-format", "stream-json"),
    resume_args=("--resume", "{session_id}"),
    prompt_args=("-p", "{prompt}"),
    credential_env="CURSOR_API_KEY",
)

CODEX_CONFIG = AdapterConfig(
    tool=ToolId.CODEX,
    display_name="Codex",
    executable="codex",
    adapter_factory=CodexJsonAdapter,
    base_args=("exec", "--json", "--skip-git-repo-check"),
    allow_args=("--sandbox", "{capabilities}"),
    default_capabilities=("workspace-write",),
    resume_args=("resume", "{session_id}"),
    prompt_args=("{prompt}",),
)

GEMINI_CONFIG = AdapterConfig(
    tool=ToolId.GEMINI,
    display_name="Gemini",
    executable="gemini",
    adapter_factory=GeminiStreamAdapter,
    base_args=("--output-format", "stream-json", "--approval-mode", "auto_edit"),
    resume_args=("--resume", "{session_id}"),
    allow_args=("--allowed-tools", "{capabilities}"),
    prompt_args=("--prompt", "{prompt}"),
)


class AdapterRegistry:
    """Adapter configs keyed by tool id.

    Tools without an entry have no headless integration and always go
    through the automation fallback.
    """

    def __init__(self, configs: tuple[AdapterConfig, ...] | list[AdapterConfig] = ()) -> None:
        self._configs: dict[ToolId, AdapterConfig] = {}
        for config in configs:
            self.register(config)

    def register(self, config: AdapterConfig) -> None:
        """Add or replace the adapter config for ``config.tool``."""

        self._configs[config.tool] = config

    def get(self, tool: ToolId | str) -> AdapterConfig | None:
        return self._configs.get(ToolId.parse(tool))

    def __contains__(self, tool: object) -> bool:
        return tool in self._configs

    def __iter__(self) -> Iterator[AdapterConfig]:
        return iter(self._configs.values())


def default_registry() -> AdapterRegistry:
    """Registry with the built-in headless backends."""

    return AdapterRegistry((CLAUDE_CONFIG, CURSOR_CONFIG, CODEX_CONFIG, GEMINI_CONFIG))


__all__ = [
    "CLAUDE_CONFIG",
    "CODEX_CONFIG",
    "CURSOR_CONFIG",
    "GEMINI_CONFIG",
    "AdapterConfig",
    "AdapterRegistry",
    "ClaudeStreamAdapter",
    "CodexJsonAdapter",
    "CursorStreamAdapter",
    "GeminiStreamAdapter",
    "ParsedLine",
    "ProtocolAdapter",
    "default_registry",
]
