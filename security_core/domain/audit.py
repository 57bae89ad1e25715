"""
===============================================================================
TARJETA CRC — domain/audit.py
===============================================================================

Responsabilidades:
  - Catálogos cerrados de categorías y acciones auditables.
  - Allow-list de (category, action) registrables sin sesión.
  - Entidades: NewAuditEntry (input), AuditLogEntry (persistida, sellada).
  - Value objects de consulta, paginado y verificación de cadena.

Colaboradores:
  - application.audit_logger.AuditLogger
  - application.audit_chain.AuditSealer
  - infrastructure.repositories.*.audit_log

Reglas:
  - Append-only: no existe operación de update de action/category/metadata.
  - read_at es un acuse de lectura (retención), no forma parte del sello.
===============================================================================
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping


class AuditCategory(str, Enum):
    AUTH = "auth"
    USERS = "users"
    SECURITY = "security"
    TOOLS = "tools"
    QUOTATIONS = "quotations"
    SYSTEM = "system"
    ADMIN = "admin"


class AuditAction(str, Enum):
    # Auth
    LOGIN_SUCCESS = "login.success"
    LOGIN_FAILED = "login.failed"
    LOGOUT = "logout"
    ACCOUNT_LOCKED = "account.locked"
    ACCOUNT_UNLOCKED = "account.unlocked"
    MFA_FAILED = "mfa.failed"
    # Users
    USER_CREATED = "user.created"
    USER_UPDATED = "user.updated"
    USER_DELETED = "user.deleted"
    USER_ROLE_CHANGED = "user.role.changed"
    USER_SUSPENDED = "user.suspended"
    USER_ACTIVATED = "user.activated"
    PASSWORD_CHANGED = "password.changed"
    # Security
    PERMISSION_GRANTED = "permission.granted"
    PERMISSION_REVOKED = "permission.revoked"
    PERMISSION_RESET = "permission.reset"
    SESSION_CONCURRENT = "session.concurrent"
    SESSION_REVOKED = "session.revoked"
    ACCESS_DENIED = "access.denied"
    RATE_LIMIT_EXCEEDED = "rate_limit.exceeded"
    ALERT_TEST = "security.alerts.tested"
    # Tools
    TOOL_CREATED = "tool.created"
    TOOL_UPDATED = "tool.updated"
    TOOL_DELETED = "tool.deleted"
    TOOL_VISIBILITY_CHANGED = "tool.visibility.changed"
    # Quotations
    QUOTATION_CREATED = "quotation.created"
    QUOTATION_UPDATED = "quotation.updated"
    QUOTATION_DELETED = "quotation.deleted"
    # System
    AUDIT_PURGED = "audit.purged"
    KEY_ROTATED = "system.key.rotated"


AUDIT_ACTIONS: frozenset[str] = frozenset(a.value for a in AuditAction)
AUDIT_CATEGORIES: frozenset[str] = frozenset(c.value for c in AuditCategory)

# Lo único que un caller anónimo puede registrar: telemetría de login fallido.
PUBLIC_AUDIT_EVENTS: frozenset[tuple[AuditCategory, AuditAction]] = frozenset(
    {(AuditCategory.AUTH, AuditAction.LOGIN_FAILED)}
)

# previous_hash de la primera entrada de la cadena.
GENESIS_HASH = "GENESIS_HASH_" + hashlib.sha256(b"GENESIS").hexdigest()


@dataclass(frozen=True, slots=True)
class NewAuditEntry:
    """
    Evento a registrar, tal como lo arma el caller.

    action/category llegan como str (o enum) y se validan en AuditLogger.record.
    """

    action: str
    category: str
    user_id: str | None = None
    target_id: str | None = None
    target_type: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True, slots=True)
class AuditLogEntry:
    id: int
    action: str
    category: str
    user_id: str | None
    target_id: str | None
    target_type: str | None
    metadata: Mapping[str, Any]
    ip_address: str | None
    user_agent: str | None
    created_at: datetime
    previous_hash: str
    current_hash: str
    signature: str
    read_at: datetime | None = None

    @property
    def is_read(self) -> bool:
        return self.read_at is not None


@dataclass(frozen=True, slots=True)
class AuditQuery:
    category: AuditCategory | None = None
    action_contains: str | None = None
    user_id: str | None = None
    start_at: datetime | None = None
    end_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class AuditPage:
    entries: list[AuditLogEntry]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.total else 0


@dataclass(frozen=True, slots=True)
class ChainVerification:
    valid: bool
    total_checked: int
    corrupted_id: int | None = None
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class PurgeResult:
    deleted: int
    cutoff: datetime
    only_read: bool
