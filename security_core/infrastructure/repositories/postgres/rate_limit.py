"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/rate_limit.py
============================================================
Class: PostgresRateLimitStore

Responsibilities:
  - Contadores de ventana fija en la tabla rate_limits.
  - Admitir-e-incrementar en UN solo statement (INSERT .. ON CONFLICT DO
    UPDATE .. WHERE): Postgres bloquea la fila en conflicto y reevalúa el
    WHERE sobre la versión más reciente, así que dos requests concurrentes
    nunca ven el mismo count.

Collaborators:
  - psycopg_pool.ConnectionPool
  - crosscutting.exceptions.DatabaseError
  - domain.rate_limit.RateLimitCounter

Constraints / Notes:
  - Si el UPDATE no aplica (límite alcanzado) RETURNING no devuelve fila:
    se lee el estado actual sólo para informar remaining/reset.
============================================================
"""

from __future__ import annotations

from psycopg_pool import ConnectionPool

from ....crosscutting.exceptions import DatabaseError
from ....crosscutting.logger import logger
from ....domain.rate_limit import RateLimitCounter


class PostgresRateLimitStore:
    _SQL_ADMIT = """
        INSERT INTO rate_limits AS r (identifier, window_start_ms, window_ms, count)
        VALUES (%(identifier)s, %(now_ms)s, %(window_ms)s, 1)
        ON CONFLICT (identifier) DO UPDATE SET
            window_start_ms = CASE
                WHEN %(now_ms)s - r.window_start_ms >= %(window_ms)s THEN %(now_ms)s
                ELSE r.window_start_ms
            END,
            window_ms = %(window_ms)s,
            count = CASE
                WHEN %(now_ms)s - r.window_start_ms >= %(window_ms)s THEN 1
                ELSE r.count + 1
            END
        WHERE %(now_ms)s - r.window_start_ms >= %(window_ms)s
           OR r.count < %(limit)s
        RETURNING window_start_ms, count
    """

    _SQL_CURRENT = """
        SELECT window_start_ms, count FROM rate_limits WHERE identifier = %s
    """

    _SQL_RESET = "DELETE FROM rate_limits WHERE identifier = %s"

    def __init__(self, pool: ConnectionPool | None = None):
        self._pool = pool

    def _get_pool(self) -> ConnectionPool:
        if self._pool is not None:
            return self._pool

        from ...db.pool import get_pool

        return get_pool()

    def increment(
        self, identifier: str, *, limit: int, window_ms: int, now_ms: int
    ) -> RateLimitCounter:
        params = {
            "identifier": identifier,
            "now_ms": int(now_ms),
            "window_ms": int(window_ms),
            "limit": int(limit),
        }
        try:
            with self._get_pool().connection() as conn:
                row = conn.execute(self._SQL_ADMIT, params).fetchone()
                if row is not None:
                    return RateLimitCounter(
                        admitted=True, count=int(row[1]), window_start_ms=int(row[0])
                    )
                current = conn.execute(self._SQL_CURRENT, (identifier,)).fetchone()
        except Exception as exc:
            logger.exception(
                "PostgresRateLimitStore: increment failed",
                extra={"identifier": identifier, "error": str(exc)},
            )
            raise DatabaseError(f"Rate limit increment failed: {exc}") from exc

        # R: la fila existe (hubo conflicto); si justo la borró un reset, informar lleno.
        window_start_ms, count = current if current else (now_ms, limit)
        return RateLimitCounter(
            admitted=False, count=int(count), window_start_ms=int(window_start_ms)
        )

    def reset(self, identifier: str) -> None:
        try:
            with self._get_pool().connection() as conn:
                conn.execute(self._SQL_RESET, (identifier,))
        except Exception as exc:
            logger.exception(
                "PostgresRateLimitStore: reset failed",
                extra={"identifier": identifier, "error": str(exc)},
            )
            raise DatabaseError(f"Rate limit reset failed: {exc}") from exc
