"""Process supervision contracts."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from agent_relay.orchestrator.models import FailureKind, StdinMode

STDERR_DETAIL_LIMIT = 200


@dataclass(slots=True)
class ProcessRunRequest:
    """Inputs required to run one external process."""

    executable: str
    args: list[str]
    working_dir: Path
    timeout_seconds: float
    env: Mapping[str, str] | None = None
    stdin_mode: StdinMode = StdinMode.DEVNULL
    on_stdout: Callable[[bytes], None] | None = None
    on_stderr: Callable[[bytes], None] | None = None
    label: str = ""
    # Monotonic clock reading the process must finish by; when unset the
    # timeout is counted from spawn.
    deadline: float | None = None

    @property
    def name(self) -> str:
        return self.label or self.executable

    def remaining_seconds(self, now: float) -> float:
        if self.deadline is None:
            return self.timeout_seconds
        return max(self.deadline - now, 0.0)


@dataclass(slots=True)
class ProcessOutcome:
    """Terminal outcome of a supervised process."""

    exit_code: int | None
    timed_out: bool = False
    canceled: bool = False
    spawn_error: str | None = None
    stderr: str = ""
    timeout_seconds: float | None = None
    elapsed_seconds: float = 0.0
    pid: int | None = field(default=None, compare=False)

    @property
    def success(self) -> bool:
        return (
            self.spawn_error is None
            and not self.timed_out
            and not self.canceled
            and self.exit_code == 0
        )

    @property
    def failure_kind(self) -> FailureKind | None:
        if self.success:
            return None
        if self.spawn_error is not None:
            return FailureKind.SPAWN_FAILURE
        if self.timed_out:
            return FailureKind.TIMEOUT
        if self.canceled:
            return FailureKind.CANCELED
        return FailureKind.PROCESS_FAILURE

    def describe(self, name: str) -> str | None:
        """Short diagnostic for UI status lines, ``None`` on success."""

        kind = self.failure_kind
        if kind is None:
            return None
        if kind == FailureKind.SPAWN_FAILURE:
            return f"Failed to spawn {name} CLI: {self.spawn_error}"
        if kind == FailureKind.TIMEOUT:
            return f"{name} headless execution timed out after {self.timeout_seconds:g}s"
        if kind == FailureKind.CANCELED:
            return f"{name} headless execution canceled"
        detail = self.stderr.strip()[:STDERR_DETAIL_LIMIT]
        message = f"{name} CLI exited with code {self.exit_code}"
        return f"{message}: {detail}" if detail else message
