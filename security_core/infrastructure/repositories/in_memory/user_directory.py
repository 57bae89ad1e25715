"""
In-memory user directory (tests / development).

La aplicación host es dueña de los usuarios; acá sólo guardamos el rol.
"""

from __future__ import annotations

import threading
from typing import Mapping

from ....domain.roles import Role


class InMemoryUserDirectory:
    def __init__(self, roles: Mapping[str, Role | str] | None = None) -> None:
        self._roles: dict[str, Role] = {
            uid: Role.parse(role) for uid, role in (roles or {}).items()
        }
        self._lock = threading.Lock()

    def get_role(self, user_id: str) -> Role | None:
        with self._lock:
            return self._roles.get(user_id)

    def set_role(self, user_id: str, role: Role | str) -> None:
        with self._lock:
            self._roles[user_id] = Role.parse(role)
