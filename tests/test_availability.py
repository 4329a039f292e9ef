from __future__ import annotations

import allure

from agent_relay.orchestrator.adapters import default_registry
from agent_relay.orchestrator.availability import AvailabilityProbe
from agent_relay.orchestrator.models import ToolId

pytestmark = [
    allure.epic("Headless Execution"),
    allure.feature("Availability"),
]


def _which_from(installed: dict[str, str]):
    return installed.get


def test_installed_cli_without_credentials_is_available() -> None:
    probe = AvailabilityProbe(
        default_registry(),
        which=_which_from({"claude": "/opt/bin/claude"}),
        environ={},
    )

    availability = probe.check(ToolId.CLAUDE_CODE)

    assert availability.available
    assert availability.reason is None
    assert availability.executable_path == "/opt/bin/claude"
    assert probe.is_available("claude-code")


def test_missing_cli_is_unavailable() -> None:
    probe = AvailabilityProbe(default_registry(), which=_which_from({}), environ={})

    availability = probe.check("codex")

    assert not availability.available
    assert availability.reason == "codex CLI not installed"


def test_cursor_requires_api_key() -> None:
    which = _which_from({"cursor-agent": "/opt/bin/cursor-agent"})

    without_key = AvailabilityProbe(default_registry(), which=which, environ={"CURSOR_API_KEY": " "})
    with_key = AvailabilityProbe(default_registry(), which=which, environ={"CURSOR_API_KEY": "k"})

    assert not without_key.is_available(ToolId.CURSOR)
    assert without_key.check(ToolId.CURSOR).reason == "CURSOR_API_KEY environment variable not set"
    assert with_key.is_available(ToolId.CURSOR)


def test_tools_without_integration_never_run_headless() -> None:
    probe = AvailabilityProbe(
        default_registry(),
        which=_which_from({"windsurf": "/opt/bin/windsurf"}),
        environ={},
    )

    availability = probe.check(ToolId.WINDSURF)

    assert not availability.available
    assert availability.reason == "windsurf does not support headless mode"


def test_results_are_not_cached() -> None:
    installed: dict[str, str] = {}
    probe = AvailabilityProbe(default_registry(), which=installed.get, environ={})

    assert not probe.is_available(ToolId.GEMINI)
    installed["gemini"] = "/opt/bin/gemini"
    assert probe.is_available(ToolId.GEMINI)


def test_status_reports_every_tool() -> None:
    probe = AvailabilityProbe(
        default_registry(),
        which=_which_from({"gemini": "/opt/bin/gemini"}),
        environ={},
    )

    status = probe.status()

    assert set(status) == set(ToolId)
    assert status[ToolId.GEMINI].available
    assert not status[ToolId.GITHUB_COPILOT].available
