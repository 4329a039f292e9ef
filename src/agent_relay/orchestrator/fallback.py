"""Automation fallback strategies used when headless execution is not possible."""

from __future__ import annotations

import logging
import os
import shlex
import tempfile
from pathlib import Path
from typing import Protocol

from agent_relay.orchestrator.backend.base import ProcessRunRequest
from agent_relay.orchestrator.backend.supervisor import ProcessSupervisor
from agent_relay.orchestrator.models import ExecutionMode, ExecutionResult, FailureKind

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_TIMEOUT_SECONDS = 60.0
MANUAL_HANDOFF_MESSAGE = "No automation fallback configured; prompt must be pasted manually"

_PLACEHOLDERS = ("prompt", "prompt_file", "working_dir")


class AutomationFallback(Protocol):
    """Opaque strategy that delivers a prompt to the tool some other way."""

    def attempt(self, prompt: str, working_dir: Path) -> ExecutionResult: ...


class ManualHandoffFallback:
    """Report that the prompt needs a human; never succeeds."""

    def attempt(self, prompt: str, working_dir: Path) -> ExecutionResult:
        logger.info("Manual handoff required for prompt (%d chars) in %s", len(prompt), working_dir)
        return ExecutionResult(
            success=False,
            error=MANUAL_HANDOFF_MESSAGE,
            mode=ExecutionMode.FALLBACK,
            failure_kind=FailureKind.FALLBACK_FAILURE,
        )


class CommandAutomationFallback:
    """Run a user-configured command that pastes the prompt into the tool.

    The template may reference ``{prompt}``, ``{prompt_file}`` and
    ``{working_dir}``; at least one of the prompt placeholders is required.
    """

    def __init__(
        self,
        command_template: str,
        *,
        supervisor: ProcessSupervisor | None = None,
        timeout_seconds: float = DEFAULT_FALLBACK_TIMEOUT_SECONDS,
        os_name: str | None = None,
    ) -> None:
        stripped = command_template.strip()
        if not stripped:
            raise ValueError("Fallback command template is empty.")
        if "{prompt}" not in stripped and "{prompt_file}" not in stripped:
            raise ValueError("Fallback command template must include {prompt} or {prompt_file}.")
        if timeout_seconds <= 0:
            raise ValueError("Fallback timeout must be > 0 seconds.")
        self.command_template = stripped
        self.timeout_seconds = timeout_seconds
        self._supervisor = supervisor or ProcessSupervisor()
        self._os_name = os_name or os.name

    def attempt(self, prompt: str, working_dir: Path) -> ExecutionResult:
        prompt_file: Path | None = None
        if "{prompt_file}" in self.command_template:
            prompt_file = _write_prompt_file(prompt)
        try:
            argv = build_command_args(
                command_template=self.command_template,
                values={
                    "prompt": prompt,
                    "prompt_file": str(prompt_file) if prompt_file is not None else "",
                    "working_dir": str(working_dir),
                },
                os_name=self._os_name,
            )
            logger.info("Running automation fallback: %s", argv[0])
            outcome = self._supervisor.run(
                ProcessRunRequest(
                    executable=argv[0],
                    args=argv[1:],
                    working_dir=working_dir,
                    timeout_seconds=self.timeout_seconds,
                    label="automation fallback",
                ),
            )
        finally:
            if prompt_file is not None:
                prompt_file.unlink(missing_ok=True)

        if outcome.success:
            return ExecutionResult(success=True, exit_code=outcome.exit_code, mode=ExecutionMode.FALLBACK)
        return ExecutionResult(
            success=False,
            error=outcome.describe("Automation fallback"),
            exit_code=outcome.exit_code,
            mode=ExecutionMode.FALLBACK,
            failure_kind=FailureKind.FALLBACK_FAILURE,
        )


def build_command_args(
    *,
    command_template: str,
    values: dict[str, str],
    os_name: str | None = None,
) -> list[str]:
    """Render a command template into an argv list.

    On POSIX, values are shell-quoted before the rendered string is split.
    On Windows the template is split first and each token is rendered as is;
    ``subprocess`` quotes the final argv with ``list2cmdline``.
    """

    current_os_name = os_name or os.name
    try:
        if current_os_name == "nt":
            argv = [
                _strip_windows_quotes(token).format(**values)
                for token in shlex.split(command_template, posix=False)
            ]
        else:
            rendered = command_template.format(
                **{name: shlex.quote(values.get(name, "")) for name in _PLACEHOLDERS},
            )
            argv = shlex.split(rendered)
    except (KeyError, IndexError) as error:
        raise ValueError(f"Unsupported command template placeholder: {error}") from error

    if not argv:
        raise ValueError("Fallback command template rendered empty command.")
    return argv


def _strip_windows_quotes(token: str) -> str:
    if len(token) >= 2 and token[0] == token[-1] == '"':  # noqa: PLR2004
        return token[1:-1]
    return token


def _write_prompt_file(prompt: str) -> Path:
    handle = tempfile.NamedTemporaryFile(  # noqa: SIM115
        mode="w",
        encoding="utf-8",
        prefix="agent-relay-prompt-",
        suffix=".txt",
        delete=False,
    )
    with handle:
        handle.write(prompt)
    return Path(handle.name)
