"""
Name: Rate Limiter Tests

Responsibilities:
  - Atomic fixed-window admission under concurrency
  - Window reset and remaining/reset_in_ms arithmetic
  - Failure policy when the store is unavailable
  - Operation-class policies and config overrides

Notes:
  - Unit tests (in-memory store, controlled clock)
"""

import threading
from unittest.mock import Mock

import pytest

from security_core.application.rate_limiting import RateLimiter, build_policies
from security_core.crosscutting.exceptions import (
    ConfigurationError,
    DatabaseError,
    ValidationError,
)
from security_core.domain.rate_limit import (
    DEFAULT_RATE_LIMIT_POLICIES,
    FailurePolicy,
    OperationClass,
)
from security_core.domain.repositories import RateLimitStore
from security_core.infrastructure.repositories import InMemoryRateLimitStore

pytestmark = pytest.mark.unit

CLOSED = FailurePolicy.FAIL_CLOSED


class _Clock:
    def __init__(self, now_ms: int = 1_000_000):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms


def test_concurrent_calls_admit_exactly_limit():
    limiter = RateLimiter(InMemoryRateLimitStore())
    barrier = threading.Barrier(20)
    results = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        result = limiter.check_and_increment(
            "login:10.0.0.1", 5, 60_000, failure_policy=CLOSED
        )
        with lock:
            results.append(result.allowed)

    threads = [threading.Thread(target=worker) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 5
    assert results.count(False) == 15


def test_remaining_decreases_and_denial_reports_reset():
    clock = _Clock()
    limiter = RateLimiter(InMemoryRateLimitStore(), clock=clock)

    first = limiter.check_and_increment("k", 3, 60_000, failure_policy=CLOSED)
    assert first.allowed is True
    assert first.remaining == 2
    assert first.reset_in_ms == 60_000

    clock.now_ms += 10_000
    limiter.check_and_increment("k", 3, 60_000, failure_policy=CLOSED)
    third = limiter.check_and_increment("k", 3, 60_000, failure_policy=CLOSED)
    assert third.allowed is True
    assert third.remaining == 0

    denied = limiter.check_and_increment("k", 3, 60_000, failure_policy=CLOSED)
    assert denied.allowed is False
    assert denied.remaining == 0
    assert denied.reset_in_ms == 50_000
    assert denied.retry_after_seconds == 50


def test_next_window_starts_a_fresh_count():
    clock = _Clock(now_ms=5_000)
    limiter = RateLimiter(InMemoryRateLimitStore(), clock=clock)

    for _ in range(5):
        limiter.check_and_increment("ip", 5, 60_000, failure_policy=CLOSED)
    assert not limiter.check_and_increment("ip", 5, 60_000, failure_policy=CLOSED).allowed

    clock.now_ms = 5_000 + 60_000 + 1
    fresh = limiter.check_and_increment("ip", 5, 60_000, failure_policy=CLOSED)

    assert fresh.allowed is True
    assert fresh.remaining == 4


def test_identifiers_are_independent():
    limiter = RateLimiter(InMemoryRateLimitStore())
    assert limiter.check_and_increment("a", 1, 1000, failure_policy=CLOSED).allowed
    assert not limiter.check_and_increment("a", 1, 1000, failure_policy=CLOSED).allowed
    assert limiter.check_and_increment("b", 1, 1000, failure_policy=CLOSED).allowed


@pytest.mark.parametrize(
    "identifier, limit, window_ms",
    [("", 5, 1000), ("   ", 5, 1000), ("x", 0, 1000), ("x", 5, -1), ("x", True, 1000)],
)
def test_invalid_arguments_raise_validation_error(identifier, limit, window_ms):
    limiter = RateLimiter(InMemoryRateLimitStore())
    with pytest.raises(ValidationError):
        limiter.check_and_increment(identifier, limit, window_ms, failure_policy=CLOSED)


def _broken_store() -> Mock:
    store = Mock(spec=RateLimitStore)
    store.increment.side_effect = DatabaseError("connection refused")
    return store


def test_store_failure_fail_closed_denies():
    limiter = RateLimiter(_broken_store())
    result = limiter.check_and_increment("k", 5, 60_000, failure_policy=CLOSED)

    assert result.allowed is False
    assert result.remaining == 0
    assert result.degraded is True


def test_store_failure_fail_open_admits():
    limiter = RateLimiter(_broken_store())
    result = limiter.check_and_increment(
        "k", 5, 60_000, failure_policy=FailurePolicy.FAIL_OPEN
    )

    assert result.allowed is True
    assert result.remaining == 5
    assert result.degraded is True


def test_check_operation_uses_class_policy_and_namespaced_identifier():
    store = InMemoryRateLimitStore()
    limiter = RateLimiter(store)
    login = DEFAULT_RATE_LIMIT_POLICIES[OperationClass.LOGIN]

    results = [limiter.check_operation("login", "10.0.0.9") for _ in range(login.limit + 1)]

    assert [r.allowed for r in results].count(True) == login.limit
    assert results[-1].allowed is False
    # Otra clase de operación no comparte contador con login.
    assert limiter.check_operation(OperationClass.MFA, "10.0.0.9").allowed


def test_reset_operation_clears_counter():
    limiter = RateLimiter(InMemoryRateLimitStore())
    for _ in range(5):
        limiter.check_operation(OperationClass.LOGIN, "user@example.com")
    assert not limiter.check_operation(OperationClass.LOGIN, "user@example.com").allowed

    limiter.reset_operation(OperationClass.LOGIN, "user@example.com")

    assert limiter.check_operation(OperationClass.LOGIN, "user@example.com").allowed


def test_unknown_operation_class_is_validation_error():
    limiter = RateLimiter(InMemoryRateLimitStore())
    with pytest.raises(ValidationError):
        limiter.check_operation("upload", "1.2.3.4")


def test_build_policies_applies_partial_override():
    policies = build_policies({"login": {"limit": 10}})

    assert policies[OperationClass.LOGIN].limit == 10
    assert (
        policies[OperationClass.LOGIN].window_ms
        == DEFAULT_RATE_LIMIT_POLICIES[OperationClass.LOGIN].window_ms
    )
    assert policies[OperationClass.MFA] == DEFAULT_RATE_LIMIT_POLICIES[OperationClass.MFA]


@pytest.mark.parametrize(
    "overrides",
    [
        {"upload": {"limit": 1}},
        {"login": {"limit": 0}},
        {"login": {"failure_policy": "maybe"}},
        {"login": 5},
    ],
)
def test_build_policies_rejects_bad_overrides(overrides):
    with pytest.raises(ConfigurationError):
        build_policies(overrides)


def test_telemetry_defaults_to_fail_open():
    assert (
        DEFAULT_RATE_LIMIT_POLICIES[OperationClass.TELEMETRY].failure_policy
        is FailurePolicy.FAIL_OPEN
    )
