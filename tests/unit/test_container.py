"""
Name: Composition Root Tests

Responsibilities:
  - Default (in-memory) wiring from Settings
  - Singletons are shared and reset_container() rebuilds them
  - Alert channels are read once from Settings
"""

import pytest

from security_core import container
from security_core.crosscutting import config
from security_core.infrastructure.repositories import (
    InMemoryAuditLogRepository,
    InMemoryRateLimitStore,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def fresh_container(monkeypatch):
    def configure(**env):
        for key, value in env.items():
            monkeypatch.setenv(key, value)
        config.get_settings.cache_clear()
        container.reset_container()

    yield configure

    for factory in (container.get_alert_dispatcher, container.get_background_runner):
        if factory.cache_info().currsize:
            factory().shutdown()
    config.get_settings.cache_clear()
    container.reset_container()


def test_default_wiring_is_in_memory(fresh_container):
    fresh_container()
    core = container.get_security_core()

    assert isinstance(container.get_rate_limit_store(), InMemoryRateLimitStore)
    assert isinstance(container.get_audit_repository(), InMemoryAuditLogRepository)
    assert core.audit_logger is container.get_audit_logger()
    assert core.alerts.configured_channels == []


def test_singletons_and_reset(fresh_container):
    fresh_container()
    first = container.get_security_core()
    assert container.get_security_core() is first

    container.reset_container()
    assert container.get_security_core() is not first


def test_alert_channels_from_settings(fresh_container):
    fresh_container(
        SLACK_SECURITY_WEBHOOK="https://hooks.slack.example.test/x",
        EMAIL_ALERT_ENDPOINT="https://mail.example.test/send",
    )

    assert container.get_alert_dispatcher().configured_channels == ["slack", "email"]


def test_rate_limit_overrides_from_settings(fresh_container):
    fresh_container(RATE_LIMIT_POLICIES='{"login": {"limit": 2}}')

    limiter = container.get_rate_limiter()
    assert limiter.policy_for("login").limit == 2


@pytest.mark.parametrize(
    "attempts, expected",
    [(1, 5.0), (2, 5.0 * 2 + 3.0), (3, 5.0 * 3 + 3.0 * 2)],
)
def test_alert_dispatch_budget_matches_channel_attempts(attempts, expected):
    settings = config.Settings(
        security_alert_timeout_seconds=5.0,
        retry_max_attempts=attempts,
        retry_max_delay_seconds=3.0,
    )

    assert container.alert_dispatch_budget(settings) == pytest.approx(expected)
