"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/user_directory.py
============================================================
Class: PostgresUserDirectory

Responsibilities:
  - Leer el rol de un usuario desde la tabla users del host.

Collaborators:
  - psycopg_pool.ConnectionPool
  - domain.roles.Role
============================================================
"""

from __future__ import annotations

from psycopg_pool import ConnectionPool

from ....crosscutting.exceptions import DatabaseError
from ....crosscutting.logger import logger
from ....domain.roles import Role


class PostgresUserDirectory:
    _SQL_GET_ROLE = "SELECT role FROM users WHERE id = %s"

    def __init__(self, pool: ConnectionPool | None = None):
        self._pool = pool

    def _get_pool(self) -> ConnectionPool:
        if self._pool is not None:
            return self._pool

        from ...db.pool import get_pool

        return get_pool()

    def get_role(self, user_id: str) -> Role | None:
        try:
            with self._get_pool().connection() as conn:
                row = conn.execute(self._SQL_GET_ROLE, (user_id,)).fetchone()
        except Exception as exc:
            logger.exception(
                "PostgresUserDirectory: get_role failed",
                extra={"user_id": user_id, "error": str(exc)},
            )
            raise DatabaseError(f"Failed to read user role: {exc}") from exc
        return Role.parse(row[0]) if row else None
