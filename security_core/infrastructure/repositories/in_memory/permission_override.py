# =============================================================================
# FILE: infrastructure/repositories/in_memory/permission_override.py
# =============================================================================
"""
In-memory permission override repository.

NOT FOR PRODUCTION USE - data is lost on restart.
"""

from __future__ import annotations

import threading

from ....domain.permissions import PermissionOverride


class InMemoryPermissionOverrideRepository:
    """(user_id, permission_code) -> PermissionOverride, protegido por Lock."""

    def __init__(self) -> None:
        self._overrides: dict[tuple[str, str], PermissionOverride] = {}
        self._lock = threading.Lock()

    def list_for_user(self, user_id: str) -> list[PermissionOverride]:
        with self._lock:
            return sorted(
                (o for (uid, _), o in self._overrides.items() if uid == user_id),
                key=lambda o: o.permission_code,
            )

    def get(self, user_id: str, permission_code: str) -> PermissionOverride | None:
        with self._lock:
            return self._overrides.get((user_id, permission_code))

    def upsert(self, override: PermissionOverride) -> PermissionOverride:
        with self._lock:
            self._overrides[(override.user_id, override.permission_code)] = override
            return override

    def delete(self, user_id: str, permission_code: str) -> bool:
        with self._lock:
            return self._overrides.pop((user_id, permission_code), None) is not None
