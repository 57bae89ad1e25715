"""
Name: Redis Rate Limit Integration Tests

Responsibilities:
  - Lua admit-and-increment is atomic across concurrent callers
  - Window expiry through PEXPIRE and explicit reset
"""

import os
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from security_core.application import RateLimiter
from security_core.domain.rate_limit import FailurePolicy
from security_core.infrastructure.repositories import RedisRateLimitStore

if os.getenv("RUN_INTEGRATION") != "1":
    pytest.skip(
        "Set RUN_INTEGRATION=1 to run integration tests", allow_module_level=True
    )

pytestmark = pytest.mark.integration


def test_concurrent_increments_never_exceed_limit(redis_client):
    limiter = RateLimiter(RedisRateLimitStore(redis_client))

    def hit(_):
        return limiter.check_and_increment(
            "it-redeem", 10, 60_000, failure_policy=FailurePolicy.FAIL_CLOSED
        )

    with ThreadPoolExecutor(max_workers=10) as pool:
        results = list(pool.map(hit, range(40)))

    assert sum(r.allowed for r in results) == 10


def test_window_expires(redis_client):
    store = RedisRateLimitStore(redis_client)
    now = int(time.time() * 1000)

    assert store.increment("it-short", limit=1, window_ms=200, now_ms=now).admitted
    assert not store.increment("it-short", limit=1, window_ms=200, now_ms=now).admitted

    time.sleep(0.3)
    assert redis_client.exists("security:ratelimit:it-short") == 0


def test_reset(redis_client):
    store = RedisRateLimitStore(redis_client)
    now = int(time.time() * 1000)
    store.increment("it-reset", limit=1, window_ms=60_000, now_ms=now)

    store.reset("it-reset")
    assert store.increment("it-reset", limit=1, window_ms=60_000, now_ms=now).admitted
