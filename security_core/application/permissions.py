"""
===============================================================================
SERVICE: Permission Resolver (RBAC + per-user overrides)
===============================================================================

Qué es:
    ÚNICA función autorizante del sistema. Ningún caller compara roles ni
    strings de permisos por su cuenta: todos pasan por decide().

Reglas de resolución (en orden):
    1) role SUPERADMIN           -> Allowed(role), incondicional (sin lookup)
    2) code desconocido          -> Denied(unknown_permission)
    3) override del usuario      -> GRANTED: Allowed(override) / REVOKED: Denied(revoked)
    4) role >= default_min_role  -> Allowed(role), si no Denied(insufficient_role)

Reglas de mutación (grant / revoke / reset), en orden:
    1) target inexistente                       -> NotFoundError
    2) target SUPERADMIN                        -> ForbiddenError(superadmin_immutable)
    3) revoke/reset del propio permiso de
       gestión de permisos                      -> ForbiddenError(self_lockout)
    4) actor no ADMIN/SUPERADMIN, o ADMIN sobre
       ADMIN/SUPERADMIN                         -> ForbiddenError(role_hierarchy)
    5) code desconocido                         -> ValidationError

-------------------------------------------------------------------------------
CRC CARD
-------------------------------------------------------------------------------
Component: PermissionResolver
Responsibilities:
  - decide / resolve / has / require
  - get_effective_permissions (consistente con resolve)
  - grant / revoke / reset con exactamente UNA entrada de auditoría por cambio
Collaborators:
  - domain.repositories (PermissionOverrideRepository, UserDirectory)
  - domain.permissions (PermissionCatalog, Allowed, Denied)
  - application.audit_logger.AuditLogger
  - PermissionCache (memo explícito por request)
===============================================================================
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from ..crosscutting.exceptions import (
    ForbiddenError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from ..crosscutting.logger import logger
from ..domain.audit import AuditAction, AuditCategory, NewAuditEntry
from ..domain.identity import ANONYMOUS_ORIGIN, NetworkOrigin, SessionPrincipal
from ..domain.permissions import (
    DEFAULT_CATALOG,
    MANAGE_PERMISSIONS,
    Allowed,
    AuthorizationDecision,
    Denied,
    DenialReason,
    EffectivePermission,
    OverrideState,
    PermissionCatalog,
    PermissionDefinition,
    PermissionOverride,
    PermissionSource,
)
from ..domain.repositories import PermissionOverrideRepository, UserDirectory
from ..domain.roles import PERMISSION_MANAGER_ROLES, Role
from .audit_logger import AuditLogger

_GRANT = "grant"
_REVOKE = "revoke"
_RESET = "reset"

_AUDIT_ACTIONS = {
    _GRANT: AuditAction.PERMISSION_GRANTED,
    _REVOKE: AuditAction.PERMISSION_REVOKED,
    _RESET: AuditAction.PERMISSION_RESET,
}


class PermissionCache:
    """
    Memo de overrides para UN request.

    Se crea por request y se descarta al terminar; nunca es global.
    grant/revoke/reset invalidan al usuario afectado.
    """

    def __init__(self) -> None:
        self._overrides: dict[str, dict[str, PermissionOverride]] = {}

    def get(self, user_id: str) -> dict[str, PermissionOverride] | None:
        return self._overrides.get(user_id)

    def put(self, user_id: str, overrides: dict[str, PermissionOverride]) -> None:
        self._overrides[user_id] = overrides

    def invalidate(self, user_id: str | None = None) -> None:
        if user_id is None:
            self._overrides.clear()
        else:
            self._overrides.pop(user_id, None)


class PermissionResolver:
    def __init__(
        self,
        overrides: PermissionOverrideRepository,
        users: UserDirectory,
        audit_logger: AuditLogger,
        *,
        catalog: PermissionCatalog = DEFAULT_CATALOG,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._overrides = overrides
        self._users = users
        self._audit = audit_logger
        self._catalog = catalog
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def catalog(self) -> PermissionCatalog:
        return self._catalog

    # ------------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------------
    def _overrides_for(
        self, user_id: str, cache: PermissionCache | None
    ) -> dict[str, PermissionOverride]:
        if cache is not None:
            cached = cache.get(user_id)
            if cached is not None:
                return cached
        loaded = {o.permission_code: o for o in self._overrides.list_for_user(user_id)}
        if cache is not None:
            cache.put(user_id, loaded)
        return loaded

    def decide(
        self,
        user_id: str,
        role: Role | str,
        code: str,
        *,
        cache: PermissionCache | None = None,
    ) -> AuthorizationDecision:
        role = Role.parse(role)
        if role is Role.SUPERADMIN:
            return Allowed(code=code, source=PermissionSource.ROLE)

        definition = self._catalog.get(code)
        if definition is None:
            return Denied(code=code, reason=DenialReason.UNKNOWN_PERMISSION)

        override = self._overrides_for(user_id, cache).get(code)
        if override is not None:
            if override.granted:
                return Allowed(code=code, source=PermissionSource.OVERRIDE)
            return Denied(code=code, reason=DenialReason.REVOKED)

        if definition.granted_by_default(role):
            return Allowed(code=code, source=PermissionSource.ROLE)
        return Denied(code=code, reason=DenialReason.INSUFFICIENT_ROLE)

    def resolve(
        self,
        user_id: str,
        role: Role | str,
        code: str,
        *,
        cache: PermissionCache | None = None,
    ) -> bool:
        return bool(self.decide(user_id, role, code, cache=cache))

    def has(
        self,
        principal: SessionPrincipal,
        code: str,
        *,
        cache: PermissionCache | None = None,
    ) -> bool:
        return self.resolve(principal.user_id, principal.role, code, cache=cache)

    def require(
        self,
        principal: SessionPrincipal,
        code: str,
        *,
        cache: PermissionCache | None = None,
    ) -> Allowed:
        """Allowed o ForbiddenError con el motivo de la denegación."""
        decision = self.decide(principal.user_id, principal.role, code, cache=cache)
        if isinstance(decision, Denied):
            logger.warning(
                "Permission denied",
                extra={
                    "user_id": principal.user_id,
                    "permission": code,
                    "reason": decision.reason.value,
                },
            )
            raise ForbiddenError(
                f"Missing permission: {code}", reason=decision.reason.value
            )
        return decision

    def get_effective_permissions(
        self,
        user_id: str,
        role: Role | str,
        *,
        cache: PermissionCache | None = None,
    ) -> dict[str, EffectivePermission]:
        # R: un solo cache local garantiza que todos los codes vean los mismos overrides.
        local = cache or PermissionCache()
        effective: dict[str, EffectivePermission] = {}
        for definition in self._catalog:
            decision = self.decide(user_id, role, definition.code, cache=local)
            source = (
                decision.source
                if isinstance(decision, Allowed)
                else (
                    PermissionSource.OVERRIDE
                    if decision.reason is DenialReason.REVOKED
                    else PermissionSource.ROLE
                )
            )
            effective[definition.code] = EffectivePermission(
                code=definition.code, granted=bool(decision), source=source
            )
        return effective

    def role_of(self, user_id: str) -> Role | None:
        return self._users.get_role(user_id)

    def list_overrides(self, user_id: str) -> list[PermissionOverride]:
        return self._overrides.list_for_user(user_id)

    def catalog_by_category(self) -> dict[str, list[PermissionDefinition]]:
        return self._catalog.by_category()

    # ------------------------------------------------------------------
    # Mutación
    # ------------------------------------------------------------------
    def _guard(
        self, actor: SessionPrincipal, target_user_id: str, code: str, action: str
    ) -> Role:
        target_role = self._users.get_role(target_user_id)
        if target_role is None:
            raise NotFoundError(f"User not found: {target_user_id}")

        if target_role is Role.SUPERADMIN:
            raise ForbiddenError(
                "SUPERADMIN permissions cannot be modified",
                reason="superadmin_immutable",
            )

        if (
            actor.user_id == target_user_id
            and code == MANAGE_PERMISSIONS
            and action in (_REVOKE, _RESET)
        ):
            raise ForbiddenError(
                "Cannot remove your own permission management access",
                reason="self_lockout",
            )

        actor_role = Role.parse(actor.role)
        if actor_role not in PERMISSION_MANAGER_ROLES or (
            actor_role is Role.ADMIN and target_role.at_least(Role.ADMIN)
        ):
            raise ForbiddenError(
                "Not allowed to modify permissions of this user",
                reason="role_hierarchy",
            )

        if code not in self._catalog:
            raise ValidationError(f"Unknown permission code: {code}")

        return target_role

    def _audit_change(
        self,
        actor: SessionPrincipal,
        target_user_id: str,
        target_role: Role,
        code: str,
        action: str,
        previous: PermissionOverride | None,
        origin: NetworkOrigin,
    ) -> None:
        self._audit.record(
            NewAuditEntry(
                action=_AUDIT_ACTIONS[action].value,
                category=AuditCategory.SECURITY.value,
                target_id=target_user_id,
                target_type="user",
                metadata={
                    "permissionCode": code,
                    "targetRole": target_role.value,
                    "previousState": previous.state.value if previous else None,
                },
                ip_address=origin.ip_address,
                user_agent=origin.user_agent,
            ),
            actor,
            required=True,
        )

    def _audit_or_rollback(
        self,
        actor: SessionPrincipal,
        target_user_id: str,
        target_role: Role,
        code: str,
        action: str,
        previous: PermissionOverride | None,
        origin: NetworkOrigin,
    ) -> None:
        # R: un cambio de permisos sin su entrada de auditoría no se confirma.
        try:
            self._audit_change(
                actor, target_user_id, target_role, code, action, previous, origin
            )
        except StorageError:
            if previous is None:
                self._overrides.delete(target_user_id, code)
            else:
                self._overrides.upsert(previous)
            logger.error(
                "Permission change rolled back: audit write failed",
                extra={
                    "actor_id": actor.user_id,
                    "target_user_id": target_user_id,
                    "permission": code,
                    "action": action,
                },
            )
            raise

    def _set_override(
        self,
        actor: SessionPrincipal,
        target_user_id: str,
        code: str,
        action: str,
        origin: NetworkOrigin | None,
        cache: PermissionCache | None,
    ) -> PermissionOverride:
        target_role = self._guard(actor, target_user_id, code, action)
        previous = self._overrides.get(target_user_id, code)
        saved = self._overrides.upsert(
            PermissionOverride(
                user_id=target_user_id,
                permission_code=code,
                state=OverrideState.GRANTED if action == _GRANT else OverrideState.REVOKED,
                changed_by=actor.user_id,
                changed_at=self._clock(),
            )
        )
        if cache is not None:
            cache.invalidate(target_user_id)
        self._audit_or_rollback(
            actor, target_user_id, target_role, code, action, previous,
            origin or ANONYMOUS_ORIGIN,
        )
        return saved

    def grant(
        self,
        actor: SessionPrincipal,
        target_user_id: str,
        code: str,
        *,
        origin: NetworkOrigin | None = None,
        cache: PermissionCache | None = None,
    ) -> PermissionOverride:
        return self._set_override(actor, target_user_id, code, _GRANT, origin, cache)

    def revoke(
        self,
        actor: SessionPrincipal,
        target_user_id: str,
        code: str,
        *,
        origin: NetworkOrigin | None = None,
        cache: PermissionCache | None = None,
    ) -> PermissionOverride:
        return self._set_override(actor, target_user_id, code, _REVOKE, origin, cache)

    def reset(
        self,
        actor: SessionPrincipal,
        target_user_id: str,
        code: str,
        *,
        origin: NetworkOrigin | None = None,
        cache: PermissionCache | None = None,
    ) -> bool:
        """Vuelve al default del rol. True si existía un override."""
        target_role = self._guard(actor, target_user_id, code, _RESET)
        previous = self._overrides.get(target_user_id, code)
        existed = self._overrides.delete(target_user_id, code)
        if cache is not None:
            cache.invalidate(target_user_id)
        self._audit_or_rollback(
            actor, target_user_id, target_role, code, _RESET, previous,
            origin or ANONYMOUS_ORIGIN,
        )
        return existed

    def apply(
        self,
        actor: SessionPrincipal,
        target_user_id: str,
        code: str,
        action: str,
        *,
        origin: NetworkOrigin | None = None,
        cache: PermissionCache | None = None,
    ) -> None:
        """Despacha grant|revoke|reset por nombre (capa HTTP)."""
        handlers = {_GRANT: self.grant, _REVOKE: self.revoke, _RESET: self.reset}
        handler = handlers.get(action)
        if handler is None:
            raise ValidationError("action must be one of: grant, revoke, reset")
        handler(actor, target_user_id, code, origin=origin, cache=cache)
