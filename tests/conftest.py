"""Shared test fixtures."""

from __future__ import annotations

import json
import os
import stat
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import pytest

from agent_relay.orchestrator.backend import scripted_agent

_ENV_PREFIX = "AGENT_RELAY_SCRIPTED_"


@dataclass(slots=True)
class FakeAgents:
    """Install scripted stand-ins for agent CLIs on ``PATH``."""

    bin_dir: Path
    work_dir: Path
    monkeypatch: pytest.MonkeyPatch

    def install(self, executable: str) -> Path:
        """Put a launcher named ``executable`` into the fake bin directory."""

        implementation = Path(scripted_agent.__file__)
        if os.name == "nt":
            launcher = self.bin_dir / f"{executable}.cmd"
            launcher.write_text(
                f'@echo off\r\n"{sys.executable}" "{implementation}" %*\r\n',
                "utf-8",
            )
            return launcher
        launcher = self.bin_dir / executable
        launcher.write_text(
            f'#!/usr/bin/env sh\nexec "{sys.executable}" "{implementation}" "$@"\n',
            "utf-8",
        )
        launcher.chmod(launcher.stat().st_mode | stat.S_IXUSR)
        return launcher

    def script(  # noqa: PLR0913
        self,
        lines: Sequence[str | dict] = (),
        *,
        exit_code: int = 0,
        stderr: str | None = None,
        sleep_seconds: float = 0,
        line_delay_seconds: float = 0,
    ) -> None:
        """Configure what every installed fake agent prints and how it exits."""

        output = self.work_dir / "scripted_output.txt"
        output.write_text(
            "".join(
                (json.dumps(line) if isinstance(line, dict) else line) + "\n" for line in lines
            ),
            "utf-8",
        )
        self.monkeypatch.setenv(f"{_ENV_PREFIX}OUTPUT", str(output))
        self.monkeypatch.setenv(f"{_ENV_PREFIX}EXIT_CODE", str(exit_code))
        self.monkeypatch.setenv(f"{_ENV_PREFIX}SLEEP", str(sleep_seconds))
        self.monkeypatch.setenv(f"{_ENV_PREFIX}LINE_DELAY", str(line_delay_seconds))
        if stderr is None:
            self.monkeypatch.delenv(f"{_ENV_PREFIX}STDERR", raising=False)
        else:
            self.monkeypatch.setenv(f"{_ENV_PREFIX}STDERR", stderr)

    @property
    def args_file(self) -> Path:
        return self.work_dir / "recorded_args.json"

    def recorded(self) -> dict:
        """Return the argv and cwd of the last fake agent invocation."""

        return json.loads(self.args_file.read_text("utf-8"))


@pytest.fixture()
def fake_agents(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FakeAgents:
    """Fake agent CLIs with ``PATH`` restricted to the fake bin directory."""

    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(parents=True, exist_ok=True)
    work_dir = tmp_path / "scripted"
    work_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    agents = FakeAgents(bin_dir=bin_dir, work_dir=work_dir, monkeypatch=monkeypatch)
    monkeypatch.setenv(f"{_ENV_PREFIX}ARGS_FILE", str(agents.args_file))
    agents.script([])
    return agents


@pytest.fixture()
def workspace(tmp_path: Path) -> Path:
    path = tmp_path / "workspace"
    path.mkdir(parents=True, exist_ok=True)
    return path
