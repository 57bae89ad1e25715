"""
===============================================================================
TARJETA CRC — routers/admin.py
===============================================================================

Name:
    Admin Router

Responsibilities:
    - Auditoría: consulta paginada, marcar leído, verificación de cadena, purga.
    - Permisos por usuario: ver efectivos, grant / revoke / reset.
    - Alertas: estado de canales y self-test.
    - Escalada de privilegios (role_hierarchy) dispara alerta y re-lanza 403.

Collaborators:
    - facade.SecurityCore
    - dependencies (require_permission, require_session, cache por request)
    - schemas.audit / schemas.admin
===============================================================================
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from .....application.permissions import PermissionCache
from .....crosscutting.error_responses import not_found, validation_error
from .....crosscutting.exceptions import ForbiddenError
from .....domain.audit import AuditAction, AuditCategory, AuditQuery, NewAuditEntry
from .....domain.identity import NetworkOrigin, SessionPrincipal
from .....domain.permissions import MANAGE_PERMISSIONS, TEST_SECURITY_ALERTS, VIEW_AUDIT
from .....facade import SecurityCore
from ..dependencies import (
    get_core,
    get_network_origin,
    get_permission_cache,
    require_permission,
    require_session,
)
from ..schemas.admin import (
    AlertChannelsRes,
    AlertChannelStatusRes,
    AlertSelfTestRes,
    EffectivePermissionRes,
    PermissionChangeReq,
    PermissionDefinitionRes,
    PermissionOverrideRes,
    UserPermissionsRes,
)
from ..schemas.audit import (
    AuditPageRes,
    ChainVerificationRes,
    MarkReadReq,
    MarkReadRes,
    PurgeReq,
    PurgeRes,
)

router = APIRouter()

ALERT_CHANNEL_NAMES = ("discord", "slack", "teams", "custom", "email")


# =============================================================================
# Auditoría
# =============================================================================


@router.get("/admin/audit", response_model=AuditPageRes, tags=["admin"])
def list_audit_entries(
    category: str | None = Query(None),
    action: str | None = Query(None, max_length=100),
    user_id: str | None = Query(None),
    start_at: datetime | None = Query(None),
    end_at: datetime | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    _principal: SessionPrincipal = Depends(require_permission(VIEW_AUDIT)),
    core: SecurityCore = Depends(get_core),
):
    parsed_category = None
    if category:
        try:
            parsed_category = AuditCategory(category.lower())
        except ValueError:
            raise validation_error(f"Categoría desconocida: {category}") from None

    filters = AuditQuery(
        category=parsed_category,
        action_contains=action,
        user_id=user_id,
        start_at=start_at,
        end_at=end_at,
    )
    return AuditPageRes.from_page(core.query_audit_log(filters, page=page, limit=limit))


@router.post("/admin/audit/read", response_model=MarkReadRes, tags=["admin"])
def mark_audit_entries_read(
    body: MarkReadReq,
    _principal: SessionPrincipal = Depends(require_permission(VIEW_AUDIT)),
    core: SecurityCore = Depends(get_core),
):
    return MarkReadRes(updated=core.mark_audit_read(body.ids))


@router.get("/admin/audit/verify", response_model=ChainVerificationRes, tags=["admin"])
def verify_audit_chain(
    _principal: SessionPrincipal = Depends(require_permission(VIEW_AUDIT)),
    core: SecurityCore = Depends(get_core),
):
    return ChainVerificationRes.from_result(core.verify_audit_chain())


@router.post("/admin/audit/purge", response_model=PurgeRes, tags=["admin"])
def purge_audit_entries(
    body: PurgeReq,
    principal: SessionPrincipal = Depends(require_session),
    core: SecurityCore = Depends(get_core),
):
    # R: el permiso audit.purge lo exige el propio job de retención.
    result = core.purge_audit_log(
        principal, body.older_than_days, only_read=body.only_read
    )
    return PurgeRes.from_result(result)


# =============================================================================
# Permisos por usuario
# =============================================================================


def _user_permissions(
    core: SecurityCore, user_id: str, cache: PermissionCache
) -> UserPermissionsRes:
    role = core.permissions.role_of(user_id)
    if role is None:
        raise not_found("Usuario", user_id)

    effective = core.permissions.get_effective_permissions(user_id, role, cache=cache)
    return UserPermissionsRes(
        user_id=user_id,
        role=role.value,
        permissions=[EffectivePermissionRes.from_effective(p) for p in effective.values()],
        overrides=[
            PermissionOverrideRes.from_override(o)
            for o in core.permissions.list_overrides(user_id)
        ],
        catalog={
            category: [PermissionDefinitionRes.from_definition(d) for d in definitions]
            for category, definitions in core.permissions.catalog_by_category().items()
        },
    )


@router.get(
    "/admin/users/{user_id}/permissions",
    response_model=UserPermissionsRes,
    tags=["admin"],
)
def get_user_permissions(
    user_id: str,
    principal: SessionPrincipal = Depends(require_session),
    core: SecurityCore = Depends(get_core),
    cache: PermissionCache = Depends(get_permission_cache),
):
    if principal.user_id != user_id:
        core.permissions.require(principal, MANAGE_PERMISSIONS, cache=cache)
    return _user_permissions(core, user_id, cache)


@router.patch(
    "/admin/users/{user_id}/permissions",
    response_model=UserPermissionsRes,
    tags=["admin"],
)
def change_user_permission(
    user_id: str,
    body: PermissionChangeReq,
    principal: SessionPrincipal = Depends(require_session),
    origin: NetworkOrigin = Depends(get_network_origin),
    core: SecurityCore = Depends(get_core),
    cache: PermissionCache = Depends(get_permission_cache),
):
    # R: sin permiso previo; las reglas de rol del resolver deciden (ADMIN -> MOD/USER).
    try:
        core.permissions.apply(
            principal,
            user_id,
            body.permission_code,
            body.action,
            origin=origin,
            cache=cache,
        )
    except ForbiddenError as exc:
        if exc.reason == "role_hierarchy":
            core.alerts.alert_permission_escalation(
                principal.user_id,
                f"{body.action} {body.permission_code} on user {user_id}",
                ip=origin.ip_address,
                user_role=principal.role.value,
            )
        raise

    return _user_permissions(core, user_id, cache)


# =============================================================================
# Alertas de seguridad
# =============================================================================


@router.get("/admin/security-alerts", response_model=AlertChannelsRes, tags=["admin"])
def get_alert_channels(
    _principal: SessionPrincipal = Depends(require_permission(TEST_SECURITY_ALERTS)),
    core: SecurityCore = Depends(get_core),
):
    configured = set(core.alerts.configured_channels)
    return AlertChannelsRes(
        channels=[
            AlertChannelStatusRes(name=name, configured=name in configured)
            for name in ALERT_CHANNEL_NAMES
        ],
        any_configured=bool(configured),
    )


@router.post(
    "/admin/security-alerts/test", response_model=AlertSelfTestRes, tags=["admin"]
)
def test_alert_channels(
    principal: SessionPrincipal = Depends(require_permission(TEST_SECURITY_ALERTS)),
    origin: NetworkOrigin = Depends(get_network_origin),
    core: SecurityCore = Depends(get_core),
):
    if not core.alerts.configured_channels:
        raise validation_error("No hay canales de alerta configurados")

    report = core.test_security_alert_channels()
    core.create_audit_log(
        NewAuditEntry(
            action=AuditAction.ALERT_TEST.value,
            category=AuditCategory.SECURITY.value,
            metadata={
                "configured": report.configured,
                "working": report.working,
                "failed": report.failed,
            },
            ip_address=origin.ip_address,
            user_agent=origin.user_agent,
        ),
        principal,
    )
    return AlertSelfTestRes.from_report(report)
