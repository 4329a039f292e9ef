from __future__ import annotations

from pathlib import Path

import allure
import pytest

from agent_relay.orchestrator.fallback import (
    MANUAL_HANDOFF_MESSAGE,
    CommandAutomationFallback,
    ManualHandoffFallback,
    build_command_args,
)
from agent_relay.orchestrator.models import ExecutionMode, FailureKind

pytestmark = [
    allure.epic("Headless Execution"),
    allure.feature("Automation Fallback"),
]


def test_manual_handoff_reports_failure(workspace: Path) -> None:
    result = ManualHandoffFallback().attempt("do it", workspace)

    assert not result.success
    assert result.mode == ExecutionMode.FALLBACK
    assert result.failure_kind == FailureKind.FALLBACK_FAILURE
    assert result.error == MANUAL_HANDOFF_MESSAGE


def test_posix_rendering_quotes_prompt() -> None:
    argv = build_command_args(
        command_template="paste-into --cwd {working_dir} {prompt}",
        values={"prompt": "it's a 'test' $HOME", "prompt_file": "", "working_dir": "/w s"},
        os_name="posix",
    )

    assert argv == ["paste-into", "--cwd", "/w s", "it's a 'test' $HOME"]


def test_windows_rendering_splits_template_first() -> None:
    argv = build_command_args(
        command_template='"C:\\Program Files\\paste.exe" --file {prompt_file}',
        values={"prompt": "", "prompt_file": "C:\\Temp\\p 1.txt", "working_dir": "C:\\w"},
        os_name="nt",
    )

    assert argv == ["C:\\Program Files\\paste.exe", "--file", "C:\\Temp\\p 1.txt"]


def test_unknown_placeholder_is_rejected() -> None:
    with pytest.raises(ValueError, match="Unsupported command template placeholder"):
        build_command_args(
            command_template="paste {model} {prompt}",
            values={"prompt": "x", "prompt_file": "", "working_dir": "."},
            os_name="posix",
        )


@pytest.mark.parametrize("template", ["", "   ", "paste-into --now"])
def test_template_must_reference_prompt(template: str) -> None:
    with pytest.raises(ValueError, match="Fallback command template"):
        CommandAutomationFallback(template)


def test_command_fallback_runs_with_prompt_file(fake_agents, workspace: Path) -> None:
    fake_agents.install("paste-into")

    result = CommandAutomationFallback(
        "paste-into --file {prompt_file} --cwd {working_dir}",
        timeout_seconds=10,
    ).attempt("Fix the bug", workspace)

    assert result.success
    assert result.mode == ExecutionMode.FALLBACK
    recorded = fake_agents.recorded()
    prompt_file = Path(recorded["argv"][1])
    assert recorded["argv"][0] == "--file"
    assert recorded["argv"][2:] == ["--cwd", str(workspace)]
    assert not prompt_file.exists()


def test_command_fallback_failure_is_reported(fake_agents, workspace: Path) -> None:
    fake_agents.install("paste-into")
    fake_agents.script(exit_code=1, stderr="window not found")

    result = CommandAutomationFallback("paste-into {prompt}").attempt("hi", workspace)

    assert not result.success
    assert result.failure_kind == FailureKind.FALLBACK_FAILURE
    assert result.exit_code == 1
    assert result.error == "Automation fallback CLI exited with code 1: window not found"
