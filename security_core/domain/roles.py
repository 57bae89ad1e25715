"""
===============================================================================
TARJETA CRC — domain/roles.py
===============================================================================

Responsabilidades:
  - Definir la jerarquía total de roles USER < MODERATOR < ADMIN < SUPERADMIN.
  - Exponer comparaciones explícitas (at_least / outranks) para que ningún
    caller compare strings de rol a mano.

Colaboradores:
  - domain.permissions (default_min_role)
  - application.permissions.PermissionResolver
===============================================================================
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    USER = "USER"
    MODERATOR = "MODERATOR"
    ADMIN = "ADMIN"
    SUPERADMIN = "SUPERADMIN"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def at_least(self, other: "Role") -> bool:
        """True si este rol hereda todo lo de `other`."""
        return self.rank >= other.rank

    def outranks(self, other: "Role") -> bool:
        return self.rank > other.rank

    @classmethod
    def parse(cls, value: str | "Role") -> "Role":
        """Acepta "admin", "ADMIN" o Role.ADMIN. ValueError si no existe."""
        if isinstance(value, Role):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown role: {value!r}") from None


_RANKS: dict[Role, int] = {
    Role.USER: 0,
    Role.MODERATOR: 1,
    Role.ADMIN: 2,
    Role.SUPERADMIN: 3,
}

# Roles que pueden administrar permisos de otros usuarios.
PERMISSION_MANAGER_ROLES: frozenset[Role] = frozenset({Role.ADMIN, Role.SUPERADMIN})
