"""Execution state machine: probe, headless attempt, fallback, terminal result."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Hashable
from dataclasses import replace
from itertools import count

from agent_relay.orchestrator.adapters import AdapterConfig, AdapterRegistry, default_registry
from agent_relay.orchestrator.adapters.base import ICON_ERROR, ICON_WARNING, ProtocolAdapter
from agent_relay.orchestrator.availability import AvailabilityProbe
from agent_relay.orchestrator.backend.base import ProcessOutcome, ProcessRunRequest
from agent_relay.orchestrator.backend.supervisor import ProcessSupervisor, SupervisedProcess
from agent_relay.orchestrator.dispatcher import EventDispatcher, OrchestratorCallbacks
from agent_relay.orchestrator.failure_classifier import classify_outcome
from agent_relay.orchestrator.fallback import AutomationFallback, ManualHandoffFallback
from agent_relay.orchestrator.line_buffer import StreamLineBuffer
from agent_relay.orchestrator.models import (
    ExecutionMode,
    ExecutionRequest,
    ExecutionResult,
    FailureKind,
    ProgressEvent,
    ProgressKind,
)
from agent_relay.orchestrator.sessions import SessionContinuityTracker

logger = logging.getLogger(__name__)

_invocation_ids = count(1)


class ExecutionHandle:
    """Caller-side view of one submitted execution."""

    def __init__(self, request: ExecutionRequest, invocation_id: int) -> None:
        self.request = request
        self.invocation_id = invocation_id
        # The headless timeout counts from submission, not from spawn.
        self.deadline = time.monotonic() + request.timeout_seconds
        self._done = threading.Event()
        self._result: ExecutionResult | None = None
        self._lock = threading.Lock()
        self._process: SupervisedProcess | None = None
        self._cancel_requested = False

    def wait(self, timeout: float | None = None) -> ExecutionResult:
        """Block until the terminal result has been produced and delivered.

        Raises ``TimeoutError`` when ``timeout`` elapses first.
        """

        if not self._done.wait(timeout):
            raise TimeoutError(f"Execution {self.invocation_id} still running after {timeout}s")
        assert self._result is not None  # noqa: S101
        return self._result

    def done(self) -> bool:
        return self._done.is_set()

    def cancel(self) -> None:
        """Stop the running agent process; the request ends as canceled."""

        with self._lock:
            self._cancel_requested = True
            process = self._process
        if process is not None:
            process.terminate("canceled")

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    @property
    def pid(self) -> int | None:
        """Process id of the headless agent, once one has been spawned."""

        with self._lock:
            process = self._process
        return process.pid if process is not None else None

    def _attach(self, process: SupervisedProcess) -> None:
        with self._lock:
            self._process = process
            canceled = self._cancel_requested
        if canceled:
            process.terminate("canceled")

    def _finish(self, result: ExecutionResult) -> None:
        self._result = result
        self._done.set()


class _StreamState:
    """Per-invocation progress forwarding with consecutive-duplicate suppression.

    Once ``finish()`` has run the stream is closed: output that arrives later
    from a lingering descendant is dropped, so nothing is parsed, published or
    written to the tracker after the terminal result.
    """

    def __init__(
        self,
        *,
        adapter: ProtocolAdapter,
        dispatcher: EventDispatcher,
        on_session_id: Callable[[str], None],
    ) -> None:
        self.adapter = adapter
        self.buffer = StreamLineBuffer()
        self.session_id: str | None = None
        self.events_emitted = 0
        self._dispatcher = dispatcher
        self._on_session_id = on_session_id
        self._last_message: str | None = None
        self._lock = threading.Lock()
        self._closed = False

    def feed(self, chunk: bytes) -> None:
        with self._lock:
            if self._closed:
                logger.debug("Dropping %d bytes of output received after finish", len(chunk))
                return
            for line in self.buffer.feed(chunk):
                self.handle_line(line)

    def finish(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for line in self.buffer.flush():
                self.handle_line(line)

    def handle_line(self, line: str) -> None:
        try:
            parsed = self.adapter.parse_line(line)
        except Exception:  # noqa: BLE001
            logger.exception("Adapter failed to parse line, skipping: %.100s", line)
            return
        if parsed.session_id and self.session_id is None:
            self.session_id = parsed.session_id
            self._on_session_id(parsed.session_id)
        if parsed.event is not None:
            self.emit(parsed.event)

    def emit(self, event: ProgressEvent) -> None:
        message = event.render()
        if message == self._last_message:
            return
        self._last_message = message
        self.events_emitted += 1
        self._dispatcher.publish_progress(event)


class ExecutionOrchestrator:
    """Run prompts headless when possible and fall back otherwise.

    Each ``submit`` gets its own worker thread, line buffer, adapter instance
    and callback queue, so concurrent executions share nothing but the
    session tracker.
    """

    def __init__(  # noqa: PLR0913
        self,
        registry: AdapterRegistry | None = None,
        probe: AvailabilityProbe | None = None,
        supervisor: ProcessSupervisor | None = None,
        fallback: AutomationFallback | None = None,
        tracker: SessionContinuityTracker | None = None,
        *,
        headless_enabled: bool = True,
    ) -> None:
        self.registry = registry or default_registry()
        self.probe = probe or AvailabilityProbe(self.registry)
        self.supervisor = supervisor or ProcessSupervisor()
        self.fallback = fallback or ManualHandoffFallback()
        self.tracker = tracker or SessionContinuityTracker()
        self.headless_enabled = headless_enabled

    def submit(
        self,
        request: ExecutionRequest,
        callbacks: OrchestratorCallbacks | None = None,
        conversation_key: Hashable | None = None,
    ) -> ExecutionHandle:
        """Start executing ``request`` in the background and return at once."""

        invocation_id = next(_invocation_ids)
        handle = ExecutionHandle(request, invocation_id)
        dispatcher = EventDispatcher(
            callbacks or OrchestratorCallbacks(),
            name=f"agent-relay-events-{invocation_id}",
        )
        worker = threading.Thread(
            target=self._run,
            args=(handle, dispatcher, conversation_key),
            name=f"agent-relay-exec-{invocation_id}",
            daemon=True,
        )
        worker.start()
        return handle

    def execute(
        self,
        request: ExecutionRequest,
        callbacks: OrchestratorCallbacks | None = None,
        conversation_key: Hashable | None = None,
    ) -> ExecutionResult:
        """Blocking form of ``submit``."""

        return self.submit(request, callbacks, conversation_key).wait()

    def _run(
        self,
        handle: ExecutionHandle,
        dispatcher: EventDispatcher,
        conversation_key: Hashable | None,
    ) -> None:
        try:
            result = self._execute(handle, dispatcher, conversation_key)
        except Exception as error:  # noqa: BLE001
            logger.exception("Execution %s failed unexpectedly", handle.invocation_id)
            result = ExecutionResult(
                success=False,
                error=f"Unexpected execution error: {error}",
                failure_kind=FailureKind.PROCESS_FAILURE,
            )
        dispatcher.publish_result(result)
        dispatcher.join()
        handle._finish(result)  # noqa: SLF001

    def _execute(
        self,
        handle: ExecutionHandle,
        dispatcher: EventDispatcher,
        conversation_key: Hashable | None,
    ) -> ExecutionResult:
        request = self._with_tracked_session(handle.request, conversation_key)
        tool = request.tool

        if not self.headless_enabled:
            logger.info("Headless execution disabled, using automation fallback for %s", tool.value)
            return self._run_fallback(
                request,
                dispatcher,
                headless_error="Headless execution disabled",
                failure_kind=FailureKind.UNAVAILABLE,
            )

        availability = self.probe.check(tool)
        config = self.registry.get(tool)
        if not availability.available or config is None:
            reason = availability.reason or f"{tool.value} does not support headless mode"
            logger.info("Headless unavailable for %s (%s), using automation fallback", tool.value, reason)
            return self._run_fallback(
                request,
                dispatcher,
                headless_error=reason,
                failure_kind=FailureKind.UNAVAILABLE,
            )

        if handle.cancel_requested:
            return _canceled_result(config.name)

        stream, outcome = self._attempt_headless(
            handle,
            request,
            config,
            dispatcher,
            executable=availability.executable_path or config.executable,
            conversation_key=conversation_key,
        )
        if outcome.success:
            logger.info(
                "%s headless execution completed in %.1fs (%d progress events)",
                config.name,
                outcome.elapsed_seconds,
                stream.events_emitted,
            )
            return ExecutionResult(
                success=True,
                session_id=stream.session_id,
                exit_code=outcome.exit_code,
            )

        error = outcome.describe(config.name) or f"{config.name} headless execution failed"
        if outcome.canceled:
            logger.info("%s headless execution canceled", config.name)
            return ExecutionResult(
                success=False,
                error=error,
                session_id=stream.session_id,
                exit_code=outcome.exit_code,
                failure_kind=FailureKind.CANCELED,
            )

        classification = classify_outcome(agent=tool.value, outcome=outcome)
        logger.warning(
            "%s headless execution failed [%s]: %s",
            config.name,
            classification.summary() if classification is not None else "unclassified",
            error,
        )
        stream.emit(ProgressEvent(kind=ProgressKind.ERROR, message=error, icon=ICON_ERROR))
        return self._run_fallback(
            request,
            dispatcher,
            headless_error=error,
            failure_kind=outcome.failure_kind,
            reason_code=classification.reason_code if classification is not None else None,
            session_id=stream.session_id,
        )

    def _with_tracked_session(
        self,
        request: ExecutionRequest,
        conversation_key: Hashable | None,
    ) -> ExecutionRequest:
        if conversation_key is None or request.resume_session_id:
            return request
        tracked = self.tracker.get(conversation_key)
        if tracked is None:
            return request
        logger.debug("Resuming session %s for %s", tracked, conversation_key)
        return replace(request, resume_session_id=tracked)

    def _attempt_headless(  # noqa: PLR0913
        self,
        handle: ExecutionHandle,
        request: ExecutionRequest,
        config: AdapterConfig,
        dispatcher: EventDispatcher,
        *,
        executable: str,
        conversation_key: Hashable | None,
    ) -> tuple[_StreamState, ProcessOutcome]:
        def _on_session_id(session_id: str) -> None:
            logger.debug("%s session id captured: %s", config.name, session_id)
            if conversation_key is not None:
                self.tracker.capture(conversation_key, session_id, request.tool)
            dispatcher.publish_session_id(session_id)

        stream = _StreamState(
            adapter=config.new_adapter(),
            dispatcher=dispatcher,
            on_session_id=_on_session_id,
        )
        args = config.build_args(request)
        logger.info(
            "Starting %s headless in %s (timeout %gs, resume=%s)",
            config.name,
            request.working_dir,
            request.timeout_seconds,
            request.resume_session_id or "-",
        )
        process = self.supervisor.start(
            ProcessRunRequest(
                executable=executable,
                args=args,
                working_dir=request.working_dir,
                timeout_seconds=request.timeout_seconds,
                stdin_mode=config.stdin_mode,
                deadline=handle.deadline,
                on_stdout=stream.feed,
                label=config.name,
            ),
        )
        handle._attach(process)  # noqa: SLF001
        outcome = process.wait()
        stream.finish()
        return stream, outcome

    def _run_fallback(
        self,
        request: ExecutionRequest,
        dispatcher: EventDispatcher,
        *,
        headless_error: str,
        failure_kind: FailureKind | None,
        session_id: str | None = None,
        reason_code: str | None = None,
    ) -> ExecutionResult:
        dispatcher.publish_progress(
            ProgressEvent(
                kind=ProgressKind.INFO,
                message=f"Using automation fallback: {headless_error}",
                icon=ICON_WARNING,
            ),
        )
        try:
            result = self.fallback.attempt(request.prompt, request.working_dir)
        except Exception as error:  # noqa: BLE001
            logger.exception("Automation fallback raised")
            result = ExecutionResult(
                success=False,
                error=f"Automation fallback failed: {error}",
                failure_kind=FailureKind.FALLBACK_FAILURE,
            )
        if not result.success:
            logger.warning(
                "Automation fallback failed after %s: %s",
                failure_kind.value if failure_kind is not None else "headless failure",
                result.error,
            )
        return replace(
            result,
            mode=ExecutionMode.FALLBACK,
            session_id=result.session_id or session_id,
            headless_error=headless_error,
            headless_failure_kind=failure_kind,
            headless_reason_code=reason_code,
            failure_kind=None if result.success else (result.failure_kind or FailureKind.FALLBACK_FAILURE),
        )


def _canceled_result(name: str) -> ExecutionResult:
    return ExecutionResult(
        success=False,
        error=f"{name} headless execution canceled",
        failure_kind=FailureKind.CANCELED,
    )
