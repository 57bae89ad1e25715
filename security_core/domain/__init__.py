"""
===============================================================================
TARJETA CRC — domain/__init__.py
===============================================================================

Responsabilidades:
    - Re-exportar entidades, value objects y puertos del dominio.

Reglas:
    - No importar infraestructura aquí.
===============================================================================
"""

from .alerts import (
    AlertSeverity,
    DeliveryStatus,
    DispatchResult,
    SecurityAlert,
    SelfTestReport,
)
from .audit import (
    AuditAction,
    AuditCategory,
    AuditLogEntry,
    AuditPage,
    AuditQuery,
    ChainVerification,
    NewAuditEntry,
    PurgeResult,
)
from .identity import NetworkOrigin, SessionPrincipal
from .permissions import (
    DEFAULT_CATALOG,
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
from .rate_limit import (
    FailurePolicy,
    OperationClass,
    RateLimitCounter,
    RateLimitPolicy,
    RateLimitResult,
)
from .repositories import (
    AuditLogRepository,
    PermissionOverrideRepository,
    RateLimitStore,
    UserDirectory,
)
from .roles import Role

__all__ = [
    "AlertSeverity",
    "Allowed",
    "AuditAction",
    "AuditCategory",
    "AuditLogEntry",
    "AuditLogRepository",
    "AuditPage",
    "AuditQuery",
    "AuthorizationDecision",
    "ChainVerification",
    "DEFAULT_CATALOG",
    "DeliveryStatus",
    "Denied",
    "DenialReason",
    "DispatchResult",
    "EffectivePermission",
    "FailurePolicy",
    "NetworkOrigin",
    "NewAuditEntry",
    "OperationClass",
    "OverrideState",
    "PermissionCatalog",
    "PermissionDefinition",
    "PermissionOverride",
    "PermissionOverrideRepository",
    "PermissionSource",
    "PurgeResult",
    "RateLimitCounter",
    "RateLimitPolicy",
    "RateLimitResult",
    "RateLimitStore",
    "Role",
    "SecurityAlert",
    "SelfTestReport",
    "SessionPrincipal",
    "UserDirectory",
]
