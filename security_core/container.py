"""
===============================================================================
TARJETA CRC — security_core/container.py (Composition Root / DI manual)
===============================================================================

Responsabilidades:
  - Componer stores, servicios y la fachada SecurityCore según Settings.
  - Elegir backends: memory / postgres (storage) y memory / postgres / redis
    (rate limit).
  - Mantener singletons con lru_cache (un store compartido por proceso).

Colaboradores:
  - crosscutting.config.get_settings
  - infrastructure.repositories.* (implementaciones)
  - application.* (servicios)
  - facade.SecurityCore

Notas:
  - Este archivo NO contiene lógica de negocio.
  - Este archivo NO depende de FastAPI (sólo expone factories).
  - reset_container() limpia los singletons (tests / recarga de config).
===============================================================================
"""

from __future__ import annotations

from functools import lru_cache

from redis import Redis

from .application import (
    AuditLogger,
    AuditRetentionJob,
    AuditSealer,
    BackgroundRunner,
    PermissionResolver,
    RateLimiter,
    SecurityAlertDispatcher,
    build_policies,
)
from .crosscutting.config import Settings, get_settings
from .domain.repositories import (
    AuditLogRepository,
    PermissionOverrideRepository,
    RateLimitStore,
    UserDirectory,
)
from .facade import SecurityCore
from .identity import CryptoVault
from .infrastructure.repositories import (
    InMemoryAuditLogRepository,
    InMemoryPermissionOverrideRepository,
    InMemoryRateLimitStore,
    InMemoryUserDirectory,
    PostgresAuditLogRepository,
    PostgresPermissionOverrideRepository,
    PostgresRateLimitStore,
    PostgresUserDirectory,
    RedisRateLimitStore,
)
from .infrastructure.services import build_channels


def _uses_postgres_storage() -> bool:
    return get_settings().storage_backend == "postgres"


# =============================================================================
# Infra compartida
# =============================================================================


@lru_cache(maxsize=1)
def get_background_runner() -> BackgroundRunner:
    return BackgroundRunner(max_workers=get_settings().background_max_workers)


@lru_cache(maxsize=1)
def get_rate_limit_store() -> RateLimitStore:
    """Store de contadores: memory (dev/test), postgres o redis."""
    settings = get_settings()
    if settings.rate_limit_backend == "redis":
        return RedisRateLimitStore(Redis.from_url(settings.redis_url))
    if settings.rate_limit_backend == "postgres":
        return PostgresRateLimitStore()
    return InMemoryRateLimitStore()


@lru_cache(maxsize=1)
def get_permission_override_repository() -> PermissionOverrideRepository:
    if _uses_postgres_storage():
        return PostgresPermissionOverrideRepository()
    return InMemoryPermissionOverrideRepository()


@lru_cache(maxsize=1)
def get_user_directory() -> UserDirectory:
    if _uses_postgres_storage():
        return PostgresUserDirectory()
    return InMemoryUserDirectory()


@lru_cache(maxsize=1)
def get_audit_repository() -> AuditLogRepository:
    if _uses_postgres_storage():
        return PostgresAuditLogRepository()
    return InMemoryAuditLogRepository()


# =============================================================================
# Servicios
# =============================================================================


@lru_cache(maxsize=1)
def get_rate_limiter() -> RateLimiter:
    settings = get_settings()
    return RateLimiter(
        get_rate_limit_store(),
        build_policies(settings.get_rate_limit_policy_overrides()),
    )


@lru_cache(maxsize=1)
def get_audit_sealer() -> AuditSealer:
    settings = get_settings()
    return AuditSealer(
        settings.audit_signing_key.get_secret_value(),
        require_key=settings.is_production(),
    )


@lru_cache(maxsize=1)
def get_audit_logger() -> AuditLogger:
    settings = get_settings()
    return AuditLogger(
        get_audit_repository(),
        get_audit_sealer(),
        runner=get_background_runner(),
        max_metadata_bytes=settings.audit_metadata_max_bytes,
        max_page_size=settings.audit_query_max_limit,
    )


@lru_cache(maxsize=1)
def get_permission_resolver() -> PermissionResolver:
    return PermissionResolver(
        get_permission_override_repository(),
        get_user_directory(),
        get_audit_logger(),
    )


@lru_cache(maxsize=1)
def get_audit_retention_job() -> AuditRetentionJob:
    return AuditRetentionJob(
        get_audit_repository(),
        get_permission_resolver(),
        get_audit_logger(),
        default_days=get_settings().audit_retention_days,
    )


@lru_cache(maxsize=1)
def get_crypto_vault() -> CryptoVault:
    return CryptoVault.from_settings(get_settings())


def alert_dispatch_budget(settings: Settings) -> float:
    """Espera máxima de un dispatch: todos los intentos de un canal y sus backoffs."""
    attempts = settings.retry_max_attempts
    return (
        settings.security_alert_timeout_seconds * attempts
        + settings.retry_max_delay_seconds * (attempts - 1)
    )


@lru_cache(maxsize=1)
def get_alert_dispatcher() -> SecurityAlertDispatcher:
    """Canales leídos UNA vez de Settings; los vacíos se omiten."""
    settings = get_settings()
    channels = build_channels(
        settings.get_alert_destinations(),
        security_email=settings.security_email,
        timeout_s=settings.security_alert_timeout_seconds,
        retry_max_attempts=settings.retry_max_attempts,
        retry_base_delay_s=settings.retry_base_delay_seconds,
        retry_max_delay_s=settings.retry_max_delay_seconds,
    )
    return SecurityAlertDispatcher(
        channels,
        runner=get_background_runner(),
        timeout_s=alert_dispatch_budget(settings),
        environment=settings.app_env,
    )


# =============================================================================
# Fachada
# =============================================================================


@lru_cache(maxsize=1)
def get_security_core() -> SecurityCore:
    return SecurityCore(
        rate_limiter=get_rate_limiter(),
        permissions=get_permission_resolver(),
        audit_logger=get_audit_logger(),
        retention=get_audit_retention_job(),
        vault=get_crypto_vault(),
        alerts=get_alert_dispatcher(),
    )


_FACTORIES = (
    get_background_runner,
    get_rate_limit_store,
    get_permission_override_repository,
    get_user_directory,
    get_audit_repository,
    get_rate_limiter,
    get_audit_sealer,
    get_audit_logger,
    get_permission_resolver,
    get_audit_retention_job,
    get_crypto_vault,
    get_alert_dispatcher,
    get_security_core,
)


def reset_container() -> None:
    """Limpia todos los singletons (no cierra recursos)."""
    for factory in _FACTORIES:
        factory.cache_clear()
