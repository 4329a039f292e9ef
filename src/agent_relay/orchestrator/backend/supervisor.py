"""Subprocess supervision with streamed output and a hard timeout."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from collections.abc import Callable
from typing import IO

from agent_relay.orchestrator.backend.base import ProcessOutcome, ProcessRunRequest
from agent_relay.orchestrator.models import StdinMode

logger = logging.getLogger(__name__)

_READ_CHUNK_SIZE = 65_536
_STDERR_KEEP_BYTES = 8_192
_POSIX = os.name == "posix"


class SupervisedProcess:
    """Handle to one running (or failed-to-start) child process."""

    def __init__(self, request: ProcessRunRequest, *, kill_grace_seconds: float) -> None:
        self.request = request
        self._kill_grace_seconds = kill_grace_seconds
        self._process: subprocess.Popen[bytes] | None = None
        self._spawn_error: str | None = None
        self._stop_reason: str | None = None
        self._lock = threading.Lock()
        self._readers: list[threading.Thread] = []
        self._stderr = bytearray()
        self._timer: threading.Timer | None = None
        self._started_at = time.monotonic()
        self._outcome: ProcessOutcome | None = None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    def launch(self) -> None:
        """Spawn the child; OS errors are kept for ``wait()`` instead of raised."""

        request = self.request
        try:
            self._process = subprocess.Popen(  # noqa: S603
                [request.executable, *request.args],
                cwd=str(request.working_dir),
                env=dict(request.env) if request.env is not None else None,
                stdin=None if request.stdin_mode == StdinMode.INHERIT else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=_POSIX,
            )
        except OSError as error:
            # FileNotFoundError, PermissionError and friends all land here.
            self._spawn_error = error.strerror or str(error)
            logger.debug("Failed to spawn %s: %s", request.name, error)
            return

        logger.debug("Spawned %s, pid=%s", request.name, self._process.pid)
        self._readers = [
            _start_reader(self._process.stdout, request.on_stdout, name="stdout"),
            _start_reader(self._process.stderr, self._collect_stderr, name="stderr"),
        ]
        remaining = request.remaining_seconds(time.monotonic())
        if remaining <= 0:
            logger.debug("%s deadline passed before spawn", request.name)
            self.terminate("timeout")
            return
        self._timer = threading.Timer(remaining, self.terminate, args=("timeout",))
        self._timer.daemon = True
        self._timer.start()

    def _collect_stderr(self, chunk: bytes) -> None:
        if len(self._stderr) < _STDERR_KEEP_BYTES:
            self._stderr.extend(chunk[: _STDERR_KEEP_BYTES - len(self._stderr)])
        if self.request.on_stderr is not None:
            self.request.on_stderr(chunk)

    def terminate(self, reason: str = "canceled") -> None:
        """Stop the process; the first reason recorded wins."""

        with self._lock:
            process = self._process
            if process is None or process.poll() is not None or self._stop_reason is not None:
                return
            self._stop_reason = reason
        logger.debug("Terminating %s (%s)", self.request.name, reason)
        _terminate_process(process, grace_seconds=self._kill_grace_seconds)

    def wait(self) -> ProcessOutcome:
        """Block until the process exits and its output is drained."""

        if self._outcome is not None:
            return self._outcome
        if self._process is None:
            self._outcome = ProcessOutcome(
                exit_code=None,
                spawn_error=self._spawn_error or "process was not started",
                timeout_seconds=self.request.timeout_seconds,
            )
            return self._outcome

        exit_code = self._process.wait()
        if self._timer is not None:
            self._timer.cancel()
        self._join_readers()
        if any(reader.is_alive() for reader in self._readers):
            # A descendant still holds the output pipes open.
            logger.warning("%s exited but its output is still open, killing leftovers", self.request.name)
            _kill_group(self._process)
            self._join_readers()
        with self._lock:
            reason = self._stop_reason
        self._outcome = ProcessOutcome(
            exit_code=exit_code,
            timed_out=reason == "timeout",
            canceled=reason == "canceled",
            stderr=self._stderr.decode("utf-8", errors="replace"),
            timeout_seconds=self.request.timeout_seconds,
            elapsed_seconds=time.monotonic() - self._started_at,
            pid=self._process.pid,
        )
        return self._outcome

    def _join_readers(self) -> None:
        for reader in self._readers:
            reader.join(timeout=max(self._kill_grace_seconds, 1.0))


class ProcessSupervisor:
    """Start child processes and stream their output to callbacks."""

    def __init__(self, *, kill_grace_seconds: float = 2.0) -> None:
        self.kill_grace_seconds = kill_grace_seconds

    def start(self, request: ProcessRunRequest) -> SupervisedProcess:
        """Spawn the process; spawn errors are reported by ``wait()``."""

        supervised = SupervisedProcess(request, kill_grace_seconds=self.kill_grace_seconds)
        supervised.launch()
        return supervised

    def run(self, request: ProcessRunRequest) -> ProcessOutcome:
        """Start the process and wait for its outcome."""

        return self.start(request).wait()


def _start_reader(
    stream: IO[bytes] | None,
    callback: Callable[[bytes], None] | None,
    *,
    name: str,
) -> threading.Thread:
    thread = threading.Thread(
        target=_pump,
        args=(stream, callback),
        name=f"agent-relay-{name}",
        daemon=True,
    )
    thread.start()
    return thread


def _pump(stream: IO[bytes] | None, callback: Callable[[bytes], None] | None) -> None:
    if stream is None:
        return
    fd = stream.fileno()
    try:
        while True:
            try:
                chunk = os.read(fd, _READ_CHUNK_SIZE)
            except OSError:
                break
            if not chunk:
                break
            if callback is None:
                continue
            try:
                callback(chunk)
            except Exception:  # noqa: BLE001
                # Keep draining: a stalled pipe would block the child.
                logger.exception("Output callback failed")
    finally:
        stream.close()


def _terminate_process(process: subprocess.Popen[bytes], *, grace_seconds: float) -> None:
    try:
        if _POSIX:
            os.killpg(process.pid, signal.SIGTERM)
        else:
            process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=grace_seconds)
    except subprocess.TimeoutExpired:
        try:
            if _POSIX:
                os.killpg(process.pid, signal.SIGKILL)
            else:
                process.kill()
        except OSError:
            return
        try:
            process.wait(timeout=grace_seconds)
        except subprocess.TimeoutExpired:
            logger.warning("Process %s did not exit after kill", process.pid)


def _kill_group(process: subprocess.Popen[bytes]) -> None:
    if not _POSIX:
        return
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except OSError as error:
        logger.debug("Process group %s already gone: %s", process.pid, error)
