"""Deterministic classification of failed headless attempts."""

from __future__ import annotations

from dataclasses import dataclass

from agent_relay.orchestrator.backend.base import ProcessOutcome
from agent_relay.orchestrator.models import FailureKind

_ACCESS_OR_AUTH_PATTERNS: tuple[str, ...] = (
    "unauthorized",
    "forbidden",
    "invalid api key",
    "api key not",
    "not logged in",
    "please log in",
    "authentication",
    "restricted token",
)
_BILLING_OR_QUOTA_PATTERNS: tuple[str, ...] = (
    "quota",
    "resource_exhausted",
    "insufficient",
    "billing",
    "credit balance",
    "usage limit",
)
_RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    "too many requests",
    "rate limit",
    "429",
    "overloaded",
    "try again later",
)
_MODEL_NOT_AVAILABLE_PATTERNS: tuple[str, ...] = (
    "model not found",
    "unknown model",
    "unsupported model",
    "invalid model",
    "model is not available",
)
_NETWORK_PATTERNS: tuple[str, ...] = (
    "connection reset",
    "connection refused",
    "network error",
    "could not resolve host",
    "temporarily unavailable",
)

_PATTERN_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("access_or_auth", _ACCESS_OR_AUTH_PATTERNS),
    ("billing_or_quota", _BILLING_OR_QUOTA_PATTERNS),
    ("rate_limit", _RATE_LIMIT_PATTERNS),
    ("model_not_available", _MODEL_NOT_AVAILABLE_PATTERNS),
    ("network", _NETWORK_PATTERNS),
)


@dataclass(slots=True, frozen=True)
class FailureClassification:
    """Normalized failure classification result."""

    failure_kind: FailureKind
    reason_code: str
    matched_rule: str
    matched_pattern: str | None = None

    def summary(self) -> str:
        if self.matched_pattern is None:
            return self.reason_code
        return f"{self.reason_code} (matched {self.matched_pattern!r})"


def classify_outcome(*, agent: str, outcome: ProcessOutcome) -> FailureClassification | None:
    """Classify a process outcome; ``None`` when it succeeded."""

    kind = outcome.failure_kind
    if kind is None:
        return None
    if kind == FailureKind.SPAWN_FAILURE:
        return FailureClassification(kind, f"{agent}_spawn_failure", "spawn_failure")
    if kind == FailureKind.TIMEOUT:
        return FailureClassification(kind, f"{agent}_timeout", "timeout")
    if kind == FailureKind.CANCELED:
        return FailureClassification(kind, f"{agent}_canceled", "canceled")
    return classify_backend_failure(agent=agent, exit_code=outcome.exit_code, stderr=outcome.stderr)


def classify_backend_failure(
    *,
    agent: str,
    exit_code: int | None,
    stderr: str,
) -> FailureClassification:
    """Classify a non-zero exit by scanning stderr for known patterns."""

    haystack = stderr.lower()
    for rule, patterns in _PATTERN_RULES:
        pattern = _first_match(haystack, patterns)
        if pattern is not None:
            return FailureClassification(
                failure_kind=FailureKind.PROCESS_FAILURE,
                reason_code=f"{agent}_{rule}",
                matched_rule=rule,
                matched_pattern=pattern,
            )

    # Negative exit codes mean the child died from a signal.
    rule = "signal" if exit_code is not None and exit_code < 0 else "non_zero_exit"
    return FailureClassification(
        failure_kind=FailureKind.PROCESS_FAILURE,
        reason_code=f"{agent}_{rule}",
        matched_rule=rule,
    )


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
