"""
Name: Pytest Configuration and Shared Fixtures

Responsibilities:
  - Configure test environment (no .env, APP_ENV=test)
  - Provide in-memory stores and fully wired services
  - Provide fake alert channels and principals

Collaborators:
  - pytest: Test framework
  - security_core.infrastructure.repositories.in_memory
  - security_core.application / security_core.identity

Notes:
  - Argon2 runs with tiny cost params here; one test checks the defaults
  - Fixtures are function-scoped: every test gets fresh stores
"""

import os

os.environ.setdefault("APP_ENV", "test")

from security_core.crosscutting import config as core_config  # noqa: E402

core_config.Settings.model_config["env_file"] = None

import threading  # noqa: E402

import pytest  # noqa: E402

from security_core.application import (  # noqa: E402
    AuditLogger,
    AuditRetentionJob,
    AuditSealer,
    PermissionResolver,
    RateLimiter,
    SecurityAlertDispatcher,
)
from security_core.domain.alerts import SecurityAlert  # noqa: E402
from security_core.domain.identity import SessionPrincipal  # noqa: E402
from security_core.domain.roles import Role  # noqa: E402
from security_core.facade import SecurityCore  # noqa: E402
from security_core.identity import CryptoVault, PepperedPasswordHasher  # noqa: E402
from security_core.infrastructure.repositories import (  # noqa: E402
    InMemoryAuditLogRepository,
    InMemoryPermissionOverrideRepository,
    InMemoryRateLimitStore,
    InMemoryUserDirectory,
)
from security_core.infrastructure.services.field_encryption import (  # noqa: E402
    AesGcmFieldEncryption,
)

TEST_ENCRYPTION_KEY = "k" * 24 + "-test-encryption-key"
TEST_PREVIOUS_KEY = "p" * 24 + "-old-encryption-key"
TEST_SIGNING_KEY = "audit-signing-key-for-tests"
TEST_PEPPER = "pepper-for-tests"


def pytest_configure(config) -> None:
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (require Postgres/Redis)"
    )


# ============================================================================
# Fakes
# ============================================================================


class FakeChannel:
    """AlertChannel en memoria: registra alertas o falla a pedido."""

    def __init__(self, name: str, *, fail: bool = False, delay_s: float = 0.0):
        self.name = name
        self.fail = fail
        self.delay_s = delay_s
        self.sent: list[SecurityAlert] = []
        self._lock = threading.Lock()

    def send(self, alert: SecurityAlert) -> None:
        if self.delay_s:
            threading.Event().wait(self.delay_s)
        if self.fail:
            raise ConnectionError(f"{self.name} unreachable")
        with self._lock:
            self.sent.append(alert)


def principal(user_id: str, role: Role | str) -> SessionPrincipal:
    return SessionPrincipal(user_id=user_id, role=Role.parse(role))


# ============================================================================
# Principals
# ============================================================================


@pytest.fixture
def make_principal():
    return principal


@pytest.fixture
def make_channel():
    return FakeChannel


@pytest.fixture
def superadmin() -> SessionPrincipal:
    return principal("super-1", Role.SUPERADMIN)


@pytest.fixture
def admin() -> SessionPrincipal:
    return principal("admin-1", Role.ADMIN)


@pytest.fixture
def moderator() -> SessionPrincipal:
    return principal("mod-1", Role.MODERATOR)


@pytest.fixture
def regular_user() -> SessionPrincipal:
    return principal("user-1", Role.USER)


# ============================================================================
# Stores
# ============================================================================


@pytest.fixture
def users() -> InMemoryUserDirectory:
    return InMemoryUserDirectory(
        {
            "super-1": Role.SUPERADMIN,
            "super-2": Role.SUPERADMIN,
            "admin-1": Role.ADMIN,
            "admin-2": Role.ADMIN,
            "mod-1": Role.MODERATOR,
            "user-1": Role.USER,
            "user-2": Role.USER,
        }
    )


@pytest.fixture
def audit_repo() -> InMemoryAuditLogRepository:
    return InMemoryAuditLogRepository()


@pytest.fixture
def override_repo() -> InMemoryPermissionOverrideRepository:
    return InMemoryPermissionOverrideRepository()


@pytest.fixture
def rate_store() -> InMemoryRateLimitStore:
    return InMemoryRateLimitStore()


# ============================================================================
# Services
# ============================================================================


@pytest.fixture
def sealer() -> AuditSealer:
    return AuditSealer(TEST_SIGNING_KEY)


@pytest.fixture
def audit_logger(audit_repo, sealer) -> AuditLogger:
    # R: sin runner => record_deferred escribe en el mismo hilo (determinístico).
    return AuditLogger(audit_repo, sealer)


@pytest.fixture
def resolver(override_repo, users, audit_logger) -> PermissionResolver:
    return PermissionResolver(override_repo, users, audit_logger)


@pytest.fixture
def retention(audit_repo, resolver, audit_logger) -> AuditRetentionJob:
    return AuditRetentionJob(audit_repo, resolver, audit_logger, default_days=90)


@pytest.fixture
def fast_hasher() -> PepperedPasswordHasher:
    return PepperedPasswordHasher(
        TEST_PEPPER, time_cost=1, memory_cost=8, parallelism=1
    )


@pytest.fixture
def field_encryption() -> AesGcmFieldEncryption:
    return AesGcmFieldEncryption(TEST_ENCRYPTION_KEY)


@pytest.fixture
def vault(fast_hasher, field_encryption) -> CryptoVault:
    return CryptoVault(fast_hasher, field_encryption)


@pytest.fixture
def rate_limiter(rate_store) -> RateLimiter:
    return RateLimiter(rate_store)


@pytest.fixture
def alert_channels() -> list[FakeChannel]:
    return [FakeChannel("discord"), FakeChannel("slack")]


@pytest.fixture
def dispatcher(alert_channels):
    d = SecurityAlertDispatcher(alert_channels, timeout_s=2.0, environment="test")
    yield d
    d.shutdown()


@pytest.fixture
def core(rate_limiter, resolver, audit_logger, retention, vault, dispatcher) -> SecurityCore:
    return SecurityCore(
        rate_limiter=rate_limiter,
        permissions=resolver,
        audit_logger=audit_logger,
        retention=retention,
        vault=vault,
        alerts=dispatcher,
    )
