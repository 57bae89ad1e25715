"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/permission_override.py
============================================================
Class: PostgresPermissionOverrideRepository

Responsibilities:
  - Persistir overrides en permission_overrides (PK user_id + permission_code).
  - Upsert idempotente (ON CONFLICT ... DO UPDATE ... RETURNING).
  - Reset = DELETE de la fila (vuelve al default del rol).

Collaborators:
  - psycopg_pool.ConnectionPool
  - domain.permissions.PermissionOverride
  - crosscutting.exceptions.DatabaseError
============================================================
"""

from __future__ import annotations

from typing import Iterable, Optional

from psycopg_pool import ConnectionPool

from ....crosscutting.exceptions import DatabaseError
from ....crosscutting.logger import logger
from ....domain.permissions import OverrideState, PermissionOverride

_COLUMNS = "user_id, permission_code, state, changed_by, changed_at"


class PostgresPermissionOverrideRepository:
    _SQL_LIST = f"""
        SELECT {_COLUMNS}
        FROM permission_overrides
        WHERE user_id = %s
        ORDER BY permission_code
    """

    _SQL_GET = f"""
        SELECT {_COLUMNS}
        FROM permission_overrides
        WHERE user_id = %s AND permission_code = %s
    """

    _SQL_UPSERT = f"""
        INSERT INTO permission_overrides ({_COLUMNS})
        VALUES (%s, %s, %s, %s, %s)
        ON CONFLICT (user_id, permission_code)
        DO UPDATE SET
            state = EXCLUDED.state,
            changed_by = EXCLUDED.changed_by,
            changed_at = EXCLUDED.changed_at
        RETURNING {_COLUMNS}
    """

    _SQL_DELETE = """
        DELETE FROM permission_overrides
        WHERE user_id = %s AND permission_code = %s
    """

    def __init__(self, pool: ConnectionPool | None = None):
        self._pool = pool

    def _get_pool(self) -> ConnectionPool:
        if self._pool is not None:
            return self._pool

        from ...db.pool import get_pool

        return get_pool()

    def _execute(
        self,
        *,
        query: str,
        params: Iterable[object],
        error_message: str,
        extra: dict[str, object],
        fetch: str,
    ):
        try:
            with self._get_pool().connection() as conn:
                cursor = conn.execute(query, tuple(params))
                if fetch == "all":
                    return cursor.fetchall()
                if fetch == "one":
                    return cursor.fetchone()
                return cursor.rowcount
        except Exception as exc:
            logger.exception(error_message, extra={**extra, "error": str(exc)})
            raise DatabaseError(f"{error_message}: {exc}") from exc

    @staticmethod
    def _row_to_override(row: tuple) -> PermissionOverride:
        return PermissionOverride(
            user_id=row[0],
            permission_code=row[1],
            state=OverrideState(row[2]),
            changed_by=row[3],
            changed_at=row[4],
        )

    def list_for_user(self, user_id: str) -> list[PermissionOverride]:
        rows = self._execute(
            query=self._SQL_LIST,
            params=(user_id,),
            error_message="PostgresPermissionOverrideRepository: list failed",
            extra={"user_id": user_id},
            fetch="all",
        )
        return [self._row_to_override(r) for r in rows]

    def get(self, user_id: str, permission_code: str) -> Optional[PermissionOverride]:
        row = self._execute(
            query=self._SQL_GET,
            params=(user_id, permission_code),
            error_message="PostgresPermissionOverrideRepository: get failed",
            extra={"user_id": user_id, "permission_code": permission_code},
            fetch="one",
        )
        return self._row_to_override(row) if row else None

    def upsert(self, override: PermissionOverride) -> PermissionOverride:
        row = self._execute(
            query=self._SQL_UPSERT,
            params=(
                override.user_id,
                override.permission_code,
                override.state.value,
                override.changed_by,
                override.changed_at,
            ),
            error_message="PostgresPermissionOverrideRepository: upsert failed",
            extra={
                "user_id": override.user_id,
                "permission_code": override.permission_code,
                "state": override.state.value,
            },
            fetch="one",
        )
        return self._row_to_override(row)

    def delete(self, user_id: str, permission_code: str) -> bool:
        rowcount = self._execute(
            query=self._SQL_DELETE,
            params=(user_id, permission_code),
            error_message="PostgresPermissionOverrideRepository: delete failed",
            extra={"user_id": user_id, "permission_code": permission_code},
            fetch="none",
        )
        return rowcount > 0
