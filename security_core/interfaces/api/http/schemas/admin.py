"""
===============================================================================
TARJETA CRC — schemas/admin.py
===============================================================================

Módulo:
    Schemas HTTP para administración de permisos y alertas

Responsabilidades:
    - DTOs de permisos efectivos / overrides por usuario.
    - Body del PATCH de permisos (grant | revoke | reset).
    - Estado de canales y reporte de self-test de alertas.

Colaboradores:
    - domain.permissions
    - domain.alerts.SelfTestReport
===============================================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .....domain.alerts import SelfTestReport
from .....domain.permissions import (
    EffectivePermission,
    PermissionDefinition,
    PermissionOverride,
)


class PermissionDefinitionRes(BaseModel):
    code: str
    name: str
    description: str
    category: str
    default_min_role: str

    @classmethod
    def from_definition(cls, d: PermissionDefinition) -> "PermissionDefinitionRes":
        return cls(
            code=d.code,
            name=d.name,
            description=d.description,
            category=d.category,
            default_min_role=d.default_min_role.value,
        )


class EffectivePermissionRes(BaseModel):
    code: str
    granted: bool
    source: str

    @classmethod
    def from_effective(cls, p: EffectivePermission) -> "EffectivePermissionRes":
        return cls(code=p.code, granted=p.granted, source=p.source.value)


class PermissionOverrideRes(BaseModel):
    permission_code: str
    state: str
    changed_by: str
    changed_at: datetime

    @classmethod
    def from_override(cls, o: PermissionOverride) -> "PermissionOverrideRes":
        return cls(
            permission_code=o.permission_code,
            state=o.state.value,
            changed_by=o.changed_by,
            changed_at=o.changed_at,
        )


class UserPermissionsRes(BaseModel):
    user_id: str
    role: str
    permissions: list[EffectivePermissionRes]
    overrides: list[PermissionOverrideRes] = Field(default_factory=list)
    catalog: dict[str, list[PermissionDefinitionRes]] = Field(default_factory=dict)


class PermissionChangeReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    permission_code: str = Field(
        ..., alias="permissionCode", min_length=1, max_length=100
    )
    action: Literal["grant", "revoke", "reset"]


class AlertChannelStatusRes(BaseModel):
    name: str
    configured: bool


class AlertChannelsRes(BaseModel):
    channels: list[AlertChannelStatusRes]
    any_configured: bool


class AlertSelfTestRes(BaseModel):
    configured: list[str]
    working: list[str]
    failed: list[str]
    healthy: bool

    @classmethod
    def from_report(cls, report: SelfTestReport) -> "AlertSelfTestRes":
        return cls(
            configured=report.configured,
            working=report.working,
            failed=report.failed,
            healthy=report.healthy,
        )
