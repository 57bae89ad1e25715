"""
===============================================================================
TARJETA CRC — security_core/facade.py
===============================================================================

Class: SecurityCore

Responsabilidades:
  - Punto de entrada único para la aplicación anfitriona (y la capa HTTP).
  - Mapear 1:1 las operaciones del core sobre los cinco componentes:
      RateLimiter, PermissionResolver, AuditLogger (+ retención),
      CryptoVault, SecurityAlertDispatcher.

Colaboradores:
  - application.* / identity.CryptoVault
  - container.get_security_core (composición por defecto)

Notas:
  - Sin lógica propia: delega. La semántica vive en cada componente.
===============================================================================
"""

from __future__ import annotations

from .application import (
    AuditLogger,
    AuditRetentionJob,
    PermissionCache,
    PermissionResolver,
    RateLimiter,
    SecurityAlertDispatcher,
)
from .domain.alerts import DispatchResult, SecurityAlert, SelfTestReport
from .domain.audit import (
    AuditLogEntry,
    AuditPage,
    AuditQuery,
    ChainVerification,
    NewAuditEntry,
    PurgeResult,
)
from .domain.identity import NetworkOrigin, SessionPrincipal
from .domain.permissions import (
    AuthorizationDecision,
    EffectivePermission,
    PermissionOverride,
)
from .domain.rate_limit import FailurePolicy, OperationClass, RateLimitResult
from .domain.roles import Role
from .identity import CryptoVault
from .infrastructure.services.field_encryption import EncryptedField


class SecurityCore:
    def __init__(
        self,
        *,
        rate_limiter: RateLimiter,
        permissions: PermissionResolver,
        audit_logger: AuditLogger,
        retention: AuditRetentionJob,
        vault: CryptoVault,
        alerts: SecurityAlertDispatcher,
    ) -> None:
        self.rate_limiter = rate_limiter
        self.permissions = permissions
        self.audit_logger = audit_logger
        self.retention = retention
        self.vault = vault
        self.alerts = alerts

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------
    def check_rate_limit(
        self,
        identifier: str,
        limit: int,
        window_ms: int,
        *,
        failure_policy: FailurePolicy = FailurePolicy.FAIL_CLOSED,
    ) -> RateLimitResult:
        return self.rate_limiter.check_and_increment(
            identifier, limit, window_ms, failure_policy=failure_policy
        )

    def check_operation_rate_limit(
        self, operation: OperationClass | str, subject: str
    ) -> RateLimitResult:
        return self.rate_limiter.check_operation(operation, subject)

    def reset_rate_limit(self, identifier: str) -> None:
        self.rate_limiter.reset(identifier)

    # ------------------------------------------------------------------
    # Permisos
    # ------------------------------------------------------------------
    def has_permission(
        self,
        user_id: str,
        role: Role | str,
        code: str,
        *,
        cache: PermissionCache | None = None,
    ) -> bool:
        return self.permissions.resolve(user_id, role, code, cache=cache)

    def authorize(
        self,
        principal: SessionPrincipal,
        code: str,
        *,
        cache: PermissionCache | None = None,
    ) -> AuthorizationDecision:
        return self.permissions.decide(
            principal.user_id, principal.role, code, cache=cache
        )

    def grant_permission(
        self,
        actor: SessionPrincipal,
        target_user_id: str,
        code: str,
        *,
        origin: NetworkOrigin | None = None,
    ) -> PermissionOverride:
        return self.permissions.grant(actor, target_user_id, code, origin=origin)

    def revoke_permission(
        self,
        actor: SessionPrincipal,
        target_user_id: str,
        code: str,
        *,
        origin: NetworkOrigin | None = None,
    ) -> PermissionOverride:
        return self.permissions.revoke(actor, target_user_id, code, origin=origin)

    def reset_permission(
        self,
        actor: SessionPrincipal,
        target_user_id: str,
        code: str,
        *,
        origin: NetworkOrigin | None = None,
    ) -> bool:
        return self.permissions.reset(actor, target_user_id, code, origin=origin)

    def get_effective_permissions(
        self, user_id: str, role: Role | str
    ) -> dict[str, EffectivePermission]:
        return self.permissions.get_effective_permissions(user_id, role)

    # ------------------------------------------------------------------
    # Auditoría
    # ------------------------------------------------------------------
    def create_audit_log(
        self,
        entry: NewAuditEntry,
        principal: SessionPrincipal | None = None,
        *,
        trusted: bool = False,
    ) -> AuditLogEntry | None:
        return self.audit_logger.record(entry, principal, trusted=trusted)

    def create_audit_log_deferred(
        self,
        entry: NewAuditEntry,
        principal: SessionPrincipal | None = None,
        *,
        trusted: bool = False,
    ) -> None:
        self.audit_logger.record_deferred(entry, principal, trusted=trusted)

    def query_audit_log(
        self,
        filters: AuditQuery | None = None,
        *,
        page: int = 1,
        limit: int = 50,
    ) -> AuditPage:
        return self.audit_logger.query(filters, page=page, limit=limit)

    def mark_audit_read(self, entry_ids: list[int]) -> int:
        return self.audit_logger.mark_read(entry_ids)

    def verify_audit_chain(self) -> ChainVerification:
        return self.audit_logger.verify_chain()

    def purge_audit_log(
        self,
        actor: SessionPrincipal,
        older_than_days: int | None = None,
        *,
        only_read: bool = True,
    ) -> PurgeResult:
        return self.retention.run(actor, older_than_days, only_read=only_read)

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------
    def hash_password(self, password: str) -> str:
        return self.vault.hash_password(password)

    def verify_password(self, password: str, stored_hash: str) -> bool:
        return self.vault.verify_password(password, stored_hash)

    def verify_and_upgrade_password(
        self, password: str, stored_hash: str
    ) -> tuple[bool, str | None]:
        return self.vault.verify_and_upgrade(password, stored_hash)

    def needs_rehash(self, stored_hash: str) -> bool:
        return self.vault.needs_rehash(stored_hash)

    # ------------------------------------------------------------------
    # PII
    # ------------------------------------------------------------------
    def encrypt_field(self, plaintext: str, *, context: str | None = None) -> str:
        return self.vault.encrypt(plaintext, context=context)

    def decrypt_field(self, record: str, *, context: str | None = None) -> str:
        return self.vault.decrypt(record, context=context)

    def rotate_field(self, record: str, *, context: str | None = None) -> str:
        return self.vault.rotate(record, context=context)

    def hash_for_lookup(self, value: str) -> str:
        return self.vault.hash_for_lookup(value)

    def encrypt_searchable_field(
        self, value: str, *, context: str | None = None
    ) -> EncryptedField:
        return self.vault.encrypt_searchable(value, context=context)

    # ------------------------------------------------------------------
    # Alertas
    # ------------------------------------------------------------------
    def send_security_alert(self, alert: SecurityAlert) -> DispatchResult:
        return self.alerts.dispatch(alert)

    def send_security_alert_in_background(self, alert: SecurityAlert) -> None:
        self.alerts.dispatch_in_background(alert)

    def test_security_alert_channels(self) -> SelfTestReport:
        return self.alerts.self_test()
