from __future__ import annotations

import allure

from agent_relay.orchestrator.backend.base import ProcessOutcome
from agent_relay.orchestrator.failure_classifier import classify_backend_failure, classify_outcome
from agent_relay.orchestrator.models import FailureKind

pytestmark = [
    allure.epic("Headless Execution"),
    allure.feature("Failure Classification"),
]


def test_success_is_not_classified() -> None:
    assert classify_outcome(agent="claude-code", outcome=ProcessOutcome(exit_code=0)) is None


def test_timeout_and_spawn_failures_keep_their_kind() -> None:
    timeout = classify_outcome(
        agent="codex",
        outcome=ProcessOutcome(exit_code=-15, timed_out=True, timeout_seconds=5),
    )
    spawn = classify_outcome(
        agent="codex",
        outcome=ProcessOutcome(exit_code=None, spawn_error="No such file or directory"),
    )

    assert timeout is not None
    assert timeout.failure_kind == FailureKind.TIMEOUT
    assert timeout.reason_code == "codex_timeout"
    assert spawn is not None
    assert spawn.failure_kind == FailureKind.SPAWN_FAILURE
    assert spawn.summary() == "codex_spawn_failure"


def test_auth_is_preferred_over_rate_limit() -> None:
    classified = classify_backend_failure(
        agent="cursor",
        exit_code=1,
        stderr="401 Unauthorized; rate limit headers missing",
    )

    assert classified.failure_kind == FailureKind.PROCESS_FAILURE
    assert classified.matched_rule == "access_or_auth"
    assert classified.matched_pattern == "unauthorized"
    assert classified.reason_code == "cursor_access_or_auth"


def test_rate_limit_and_model_patterns() -> None:
    rate = classify_backend_failure(agent="gemini", exit_code=1, stderr="HTTP 429 Too Many Requests")
    model = classify_backend_failure(agent="claude-code", exit_code=1, stderr="Invalid model: foo")

    assert rate.matched_rule == "rate_limit"
    assert model.reason_code == "claude-code_model_not_available"
    assert model.summary() == "claude-code_model_not_available (matched 'invalid model')"


def test_unknown_failures_fall_back_to_exit_code_rules() -> None:
    plain = classify_backend_failure(agent="codex", exit_code=2, stderr="something odd")
    signal = classify_backend_failure(agent="codex", exit_code=-9, stderr="")

    assert plain.matched_rule == "non_zero_exit"
    assert plain.matched_pattern is None
    assert signal.matched_rule == "signal"
