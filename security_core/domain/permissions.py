"""
===============================================================================
TARJETA CRC — domain/permissions.py
===============================================================================

Responsabilidades:
  - Catálogo estático de permisos (code -> default_min_role).
  - Tipos de overrides por usuario (GRANTED / REVOKED).
  - Resultado de autorización como sum type: Allowed | Denied(reason).

Colaboradores:
  - domain.roles.Role
  - application.permissions.PermissionResolver
  - interfaces.api.http.routers.admin (vista por categoría)

Reglas:
  - Un permiso se otorga por defecto sii role.at_least(default_min_role).
  - El catálogo es inmutable en runtime; sólo puede ajustarse el
    default_min_role al construirlo (PermissionCatalog.with_overrides).
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Iterable, Mapping, Union

from .roles import Role

# Códigos con semántica propia dentro del core.
MANAGE_PERMISSIONS = "users.permissions.edit"
VIEW_USERS = "users.view"
VIEW_AUDIT = "audit.view"
PURGE_AUDIT = "audit.purge"
TEST_SECURITY_ALERTS = "security.alerts.test"


@dataclass(frozen=True, slots=True)
class PermissionDefinition:
    code: str
    default_min_role: Role
    name: str = ""
    description: str = ""
    category: str = ""

    def granted_by_default(self, role: Role) -> bool:
        return role.at_least(self.default_min_role)


def _p(code: str, min_role: Role, name: str, description: str) -> PermissionDefinition:
    return PermissionDefinition(
        code=code,
        default_min_role=min_role,
        name=name,
        description=description,
        category=code.split(".", 1)[0],
    )


U, M, A, S = Role.USER, Role.MODERATOR, Role.ADMIN, Role.SUPERADMIN

DEFAULT_PERMISSIONS: tuple[PermissionDefinition, ...] = (
    # Dashboard / analytics
    _p("dashboard.view", U, "View dashboard", "Access the admin panel"),
    _p("analytics.view", M, "View analytics", "Site statistics and metrics"),
    _p("analytics.export", A, "Export analytics", "Download analytics reports"),
    # Tools
    _p("tools.view", M, "View tools", "List system tools"),
    _p("tools.create", A, "Create tools", "Add new tools"),
    _p("tools.edit", A, "Edit tools", "Modify existing tools"),
    _p("tools.visibility.edit", S, "Change tool visibility", "Publish or hide tools"),
    _p("tools.delete", S, "Delete tools", "Remove tools permanently"),
    # Quotations
    _p("quotations.view", M, "View quotations", "List quotations"),
    _p("quotations.create", M, "Create quotations", "Create new quotations"),
    _p("quotations.edit", M, "Edit quotations", "Modify quotations"),
    _p("quotations.delete", A, "Delete quotations", "Remove quotations"),
    _p("quotations.status.edit", A, "Change quotation status", "Move quotations through their workflow"),
    _p("quotations.spy", S, "Inspect all quotations", "See quotations owned by any user"),
    # Users
    _p("users.view", A, "View users", "List users and their permissions"),
    _p("users.create", A, "Create users", "Register new users"),
    _p("users.edit", A, "Edit users", "Modify user profiles"),
    _p("users.role.edit", S, "Change roles", "Assign roles to users"),
    _p(MANAGE_PERMISSIONS, S, "Edit permissions", "Grant, revoke or reset user permissions"),
    _p("users.delete", S, "Delete users", "Remove users permanently"),
    _p("users.suspend", A, "Suspend users", "Suspend or reactivate accounts"),
    # CV editor
    _p("cv.own.view", U, "View own CV", "Edit the caller's own CV"),
    _p("cv.others.view", S, "View other CVs", "Inspect CVs of other users"),
    # Notifications
    _p("notifications.view", M, "View notifications", "Read system notifications"),
    _p("notifications.create", A, "Create notifications", "Send notifications to users"),
    # Audit
    _p(VIEW_AUDIT, S, "View audit log", "Query the security audit trail"),
    _p(PURGE_AUDIT, S, "Purge audit log", "Run the audit retention sweep"),
    # Finance
    _p("finance.view", A, "View finance", "Access the finance module"),
    _p("finance.dashboard", A, "Finance dashboard", "See the finance overview"),
    _p("finance.transactions.view", A, "View transactions", "List transactions"),
    _p("finance.transactions.create", A, "Create transactions", "Record transactions"),
    _p("finance.transactions.edit", A, "Edit transactions", "Modify transactions"),
    _p("finance.transactions.delete", A, "Delete transactions", "Remove transactions"),
    _p("finance.accounts.view", A, "View accounts", "List finance accounts"),
    _p("finance.accounts.manage", A, "Manage accounts", "Create and edit finance accounts"),
    _p("finance.budgets.view", A, "View budgets", "List budgets"),
    _p("finance.budgets.manage", A, "Manage budgets", "Create and edit budgets"),
    _p("finance.goals.view", A, "View goals", "List savings goals"),
    _p("finance.goals.manage", A, "Manage goals", "Create and edit savings goals"),
    _p("finance.ocr.use", A, "Use receipt OCR", "Scan receipts"),
    _p("finance.import", A, "Import finance data", "Bulk import transactions"),
    _p("finance.export", A, "Export finance data", "Download finance data"),
    _p("finance.analysis.view", A, "View analysis", "See spending analysis"),
    _p("finance.categories.manage", A, "Manage categories", "Edit finance categories"),
    _p("finance.recurring.view", A, "View recurring payments", "List recurring payments"),
    _p("finance.recurring.manage", A, "Manage recurring payments", "Edit recurring payments"),
    _p("finance.reports.view", A, "View reports", "See finance reports"),
    _p("finance.manage", A, "Manage finance", "Full finance administration"),
    # Security
    _p("security.view", A, "View security", "Access the security dashboard"),
    _p("security.incidents.view", A, "View incidents", "List security incidents"),
    _p("security.incidents.resolve", A, "Resolve incidents", "Close security incidents"),
    _p("security.incidents.delete", S, "Delete incidents", "Remove security incidents"),
    _p("security.sessions.view", U, "View own sessions", "List the caller's active sessions"),
    _p("security.sessions.manage", A, "Manage sessions", "Revoke sessions of other users"),
    _p("security.sessions.admin", S, "Administer sessions", "Global session administration"),
    _p(TEST_SECURITY_ALERTS, A, "Test security alerts", "Send a synthetic alert to every channel"),
    # Contact
    _p("contact.manage", S, "Manage contact messages", "Read and answer contact form messages"),
)

del U, M, A, S


class PermissionCatalog:
    """
    Catálogo indexado por code.

    Se construye una vez al arranque; get() devuelve None para códigos
    desconocidos (el resolver los trata como denegados).
    """

    def __init__(self, definitions: Iterable[PermissionDefinition]):
        self._by_code: dict[str, PermissionDefinition] = {}
        for definition in definitions:
            if definition.code in self._by_code:
                raise ValueError(f"Duplicate permission code: {definition.code}")
            self._by_code[definition.code] = definition

    def get(self, code: str) -> PermissionDefinition | None:
        return self._by_code.get(code)

    def __contains__(self, code: object) -> bool:
        return code in self._by_code

    def __iter__(self):
        return iter(self._by_code.values())

    def __len__(self) -> int:
        return len(self._by_code)

    def codes(self) -> list[str]:
        return list(self._by_code)

    def by_category(self) -> dict[str, list[PermissionDefinition]]:
        grouped: dict[str, list[PermissionDefinition]] = {}
        for definition in self._by_code.values():
            grouped.setdefault(definition.category, []).append(definition)
        return grouped

    def with_overrides(self, min_roles: Mapping[str, str]) -> "PermissionCatalog":
        """Copia con default_min_role ajustado (config). Códigos nuevos no se aceptan."""
        definitions = []
        for definition in self._by_code.values():
            if definition.code in min_roles:
                definition = replace(
                    definition, default_min_role=Role.parse(min_roles[definition.code])
                )
            definitions.append(definition)
        unknown = set(min_roles) - set(self._by_code)
        if unknown:
            raise ValueError(f"Unknown permission codes: {sorted(unknown)}")
        return PermissionCatalog(definitions)


DEFAULT_CATALOG = PermissionCatalog(DEFAULT_PERMISSIONS)


# -----------------------------------------------------------------------------
# Overrides
# -----------------------------------------------------------------------------
class OverrideState(str, Enum):
    GRANTED = "GRANTED"
    REVOKED = "REVOKED"


@dataclass(frozen=True, slots=True)
class PermissionOverride:
    user_id: str
    permission_code: str
    state: OverrideState
    changed_by: str
    changed_at: datetime

    @property
    def granted(self) -> bool:
        return self.state is OverrideState.GRANTED


class PermissionSource(str, Enum):
    ROLE = "role"
    OVERRIDE = "override"


@dataclass(frozen=True, slots=True)
class EffectivePermission:
    code: str
    granted: bool
    source: PermissionSource


# -----------------------------------------------------------------------------
# Decisión de autorización (sum type)
# -----------------------------------------------------------------------------
class DenialReason(str, Enum):
    UNKNOWN_PERMISSION = "unknown_permission"
    REVOKED = "revoked_by_override"
    INSUFFICIENT_ROLE = "insufficient_role"


@dataclass(frozen=True, slots=True)
class Allowed:
    code: str
    source: PermissionSource

    allowed = True

    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Denied:
    code: str
    reason: DenialReason

    allowed = False

    def __bool__(self) -> bool:
        return False


AuthorizationDecision = Union[Allowed, Denied]
