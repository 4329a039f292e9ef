"""CLI controllers: turn parsed options into orchestrator calls and output lines."""

from __future__ import annotations

import contextlib
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from agent_relay.config import Settings
from agent_relay.orchestrator.adapters import AdapterRegistry, ProtocolAdapter, default_registry
from agent_relay.orchestrator.availability import AvailabilityProbe
from agent_relay.orchestrator.backend.supervisor import ProcessSupervisor
from agent_relay.orchestrator.dispatcher import OrchestratorCallbacks
from agent_relay.orchestrator.fallback import (
    AutomationFallback,
    CommandAutomationFallback,
    ManualHandoffFallback,
)
from agent_relay.orchestrator.line_buffer import StreamLineBuffer
from agent_relay.orchestrator.models import ExecutionRequest, ExecutionResult, ProgressEvent, ToolId
from agent_relay.orchestrator.orchestrator import ExecutionOrchestrator
from agent_relay.orchestrator.sessions import ConversationKey, SessionContinuityTracker


@dataclass(slots=True)
class RunCommand:
    """CLI input for one prompt execution."""

    prompt: str
    tool: str | None = None
    working_dir: Path | None = None
    resume_session_id: str | None = None
    timeout_seconds: float | None = None
    allowed_capabilities: tuple[str, ...] = ()
    project: str | None = None
    phase: str | None = None


@dataclass(slots=True)
class StatusCommand:
    """CLI input for the headless availability report."""

    tools: tuple[str, ...] = ()


@dataclass(slots=True)
class ParseCommand:
    """CLI input for replaying a captured agent output stream."""

    tool: str
    stream_path: Path


@dataclass(slots=True)
class CommandReport:
    """Lines to render in CLI plus the overall outcome."""

    lines: list[str] = field(default_factory=list)
    success: bool = True


def build_orchestrator(
    settings: Settings,
    *,
    registry: AdapterRegistry | None = None,
    tracker: SessionContinuityTracker | None = None,
) -> ExecutionOrchestrator:
    """Wire an orchestrator from settings."""

    registry = registry or default_registry()
    supervisor = ProcessSupervisor(kill_grace_seconds=settings.headless.kill_grace_seconds)
    fallback: AutomationFallback
    if settings.fallback.command_template:
        fallback = CommandAutomationFallback(
            settings.fallback.command_template,
            supervisor=supervisor,
            timeout_seconds=settings.fallback.timeout_seconds,
        )
    else:
        fallback = ManualHandoffFallback()
    return ExecutionOrchestrator(
        registry=registry,
        probe=AvailabilityProbe(registry),
        supervisor=supervisor,
        fallback=fallback,
        tracker=tracker
        or SessionContinuityTracker(max_age_seconds=settings.sessions.max_age_seconds or None),
        headless_enabled=settings.headless.enabled,
    )


class AgentRelayCliController:
    """Coordinates run, status and parse CLI operations."""

    def __init__(self, settings_factory: Callable[[], Settings] = Settings.from_env) -> None:
        self._settings_factory = settings_factory

    def _settings(self) -> Settings:
        settings = self._settings_factory()
        settings.validate()
        return settings

    def run(
        self,
        command: RunCommand,
        *,
        emit: Callable[[str], None],
    ) -> CommandReport:
        """Execute a prompt, streaming progress lines through ``emit``."""

        settings = self._settings()
        request = ExecutionRequest(
            prompt=command.prompt,
            tool=ToolId.parse(command.tool) if command.tool else settings.default_tool,
            working_dir=command.working_dir or Path.cwd(),
            resume_session_id=command.resume_session_id,
            timeout_seconds=command.timeout_seconds or settings.headless.timeout_seconds,
            allowed_capabilities=command.allowed_capabilities,
        )
        conversation_key = (
            ConversationKey(project=command.project, phase=command.phase or "default")
            if command.project
            else None
        )
        orchestrator = build_orchestrator(settings)
        callbacks = OrchestratorCallbacks(
            on_progress=lambda event: emit(event.render()),
            on_session_id=lambda session_id: emit(f"Session started: {session_id}"),
        )
        handle = orchestrator.submit(request, callbacks, conversation_key)
        try:
            result = handle.wait()
        except KeyboardInterrupt:
            # The agent runs in its own process group and never sees the terminal's SIGINT.
            handle.cancel()
            with contextlib.suppress(TimeoutError):
                handle.wait(timeout=settings.headless.kill_grace_seconds * 2 + 1)
            raise
        return CommandReport(lines=render_result_lines(result), success=result.success)

    def status(self, command: StatusCommand) -> CommandReport:
        """Report which tools can run headless and why the others cannot."""

        probe = AvailabilityProbe(default_registry())
        tools = [ToolId.parse(tool) for tool in command.tools] or list(ToolId)
        lines = ["Headless availability:"]
        available_count = 0
        for tool in tools:
            availability = probe.check(tool)
            if availability.available:
                available_count += 1
                lines.append(f"  {tool.value}: available ({availability.executable_path})")
            else:
                lines.append(f"  {tool.value}: fallback ({availability.reason})")
        lines.append(f"Available: {available_count}/{len(tools)}")
        return CommandReport(lines=lines, success=True)

    def parse(self, command: ParseCommand) -> CommandReport:
        """Replay a captured stream through the tool's adapter."""

        config = default_registry().get(command.tool)
        if config is None:
            return CommandReport(
                lines=[f"{ToolId.parse(command.tool).value} has no headless output format."],
                success=False,
            )
        events, session_id = replay_stream(
            config.new_adapter(),
            command.stream_path.read_bytes(),
        )
        lines = [event.render() for event in events]
        lines.append(f"Events: {len(events)}")
        lines.append(f"Session: {session_id or '-'}")
        return CommandReport(lines=lines, success=True)


def replay_stream(adapter: ProtocolAdapter, payload: bytes | str) -> tuple[list[ProgressEvent], str | None]:
    """Run a whole captured stream through ``adapter`` with duplicate suppression."""

    buffer = StreamLineBuffer()
    events: list[ProgressEvent] = []
    session_id: str | None = None
    last_message: str | None = None
    for line in [*buffer.feed(payload), *buffer.flush()]:
        parsed = adapter.parse_line(line)
        if parsed.session_id and session_id is None:
            session_id = parsed.session_id
        if parsed.event is None:
            continue
        message = parsed.event.render()
        if message == last_message:
            continue
        last_message = message
        events.append(parsed.event)
    return events, session_id


def render_result_lines(result: ExecutionResult) -> list[str]:
    """Human-readable summary of a terminal result."""

    status = "succeeded" if result.success else "failed"
    lines = [f"Execution {status}: mode={result.mode.value} exit_code={result.exit_code}"]
    if result.session_id:
        lines.append(f"Session: {result.session_id}")
    if result.headless_error:
        lines.append(f"Headless: {result.headless_error}")
    if result.headless_failure_kind is not None:
        reason = f" ({result.headless_reason_code})" if result.headless_reason_code else ""
        lines.append(f"Headless failure: {result.headless_failure_kind.value}{reason}")
    if result.error:
        kind = f" [{result.failure_kind.value}]" if result.failure_kind is not None else ""
        lines.append(f"Error{kind}: {result.error}")
    return lines
