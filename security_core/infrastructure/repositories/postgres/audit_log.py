"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/audit_log.py
============================================================
Class: PostgresAuditLogRepository

Responsibilities:
  - Persistir entradas selladas en audit_logs (append-only).
  - Serializar la cadena de hashes con pg_advisory_xact_lock: leer el último
    current_hash e insertar ocurren en la misma transacción.
  - Listar con filtros (category, action contiene, user_id, rango de fechas)
    y orden estable (created_at DESC, id DESC).
  - Retención: DELETE masivo por antigüedad (+ opcionalmente sólo leídas).

Collaborators:
  - psycopg_pool.ConnectionPool
  - psycopg.types.json.Json
  - domain.audit (AuditLogEntry, AuditQuery, NewAuditEntry, GENESIS_HASH)
  - crosscutting.exceptions.DatabaseError

Constraints / Notes:
  - No existe UPDATE de contenido: el único UPDATE es read_at (acuse).
  - Queries SIEMPRE parametrizadas.
============================================================
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Iterator, Sequence

from psycopg.types.json import Json
from psycopg_pool import ConnectionPool

from ....crosscutting.exceptions import DatabaseError, SecurityCoreError
from ....crosscutting.logger import logger
from ....domain.audit import GENESIS_HASH, AuditLogEntry, AuditQuery, NewAuditEntry
from ....domain.repositories import AuditSealFn

# Clave arbitraria pero fija para el advisory lock de la cadena.
_CHAIN_LOCK_KEY = 0x5EC_A0D17

_SELECT_COLUMNS = """
    id, action, category, user_id, target_id, target_type, metadata,
    ip_address, user_agent, created_at, previous_hash, current_hash,
    signature, read_at
"""

_ITER_BATCH = 500


class PostgresAuditLogRepository:
    """Repositorio PostgreSQL para audit_logs."""

    _SQL_LOCK_CHAIN = "SELECT pg_advisory_xact_lock(%s)"

    _SQL_LAST_HASH = "SELECT current_hash FROM audit_logs ORDER BY id DESC LIMIT 1"

    _SQL_INSERT = """
        INSERT INTO audit_logs (
            action, category, user_id, target_id, target_type, metadata,
            ip_address, user_agent, created_at, previous_hash, current_hash,
            signature
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING id
    """

    _SQL_CHAIN_BATCH = f"""
        SELECT {_SELECT_COLUMNS}
        FROM audit_logs
        WHERE id > %s
        ORDER BY id ASC
        LIMIT %s
    """

    _SQL_MARK_READ = """
        UPDATE audit_logs SET read_at = %s
        WHERE id = ANY(%s) AND read_at IS NULL
    """

    def __init__(self, pool: ConnectionPool | None = None):
        self._pool = pool

    def _get_pool(self) -> ConnectionPool:
        if self._pool is not None:
            return self._pool

        from ...db.pool import get_pool

        return get_pool()

    def _fetchall(
        self,
        *,
        query: str,
        params: Iterable[object],
        error_message: str,
        extra: dict[str, object],
    ) -> list[tuple]:
        try:
            with self._get_pool().connection() as conn:
                return conn.execute(query, tuple(params)).fetchall()
        except Exception as exc:
            logger.exception(error_message, extra={**extra, "error": str(exc)})
            raise DatabaseError(f"{error_message}: {exc}") from exc

    def _execute_rowcount(
        self,
        *,
        query: str,
        params: Iterable[object],
        error_message: str,
        extra: dict[str, object],
    ) -> int:
        try:
            with self._get_pool().connection() as conn:
                return conn.execute(query, tuple(params)).rowcount
        except Exception as exc:
            logger.exception(error_message, extra={**extra, "error": str(exc)})
            raise DatabaseError(f"{error_message}: {exc}") from exc

    @staticmethod
    def _row_to_entry(row: tuple) -> AuditLogEntry:
        return AuditLogEntry(
            id=int(row[0]),
            action=row[1],
            category=row[2],
            user_id=row[3],
            target_id=row[4],
            target_type=row[5],
            metadata=row[6] or {},
            ip_address=row[7],
            user_agent=row[8],
            created_at=row[9],
            previous_hash=row[10],
            current_hash=row[11],
            signature=row[12],
            read_at=row[13],
        )

    # ------------------------------------------------------------
    # Escritura (append-only)
    # ------------------------------------------------------------
    def append(self, entry: NewAuditEntry, seal: AuditSealFn) -> AuditLogEntry:
        # R: microsegundos, igual que TIMESTAMPTZ; el sello debe coincidir al releer.
        created_at = datetime.now(timezone.utc)
        try:
            with self._get_pool().connection() as conn:
                with conn.transaction():
                    conn.execute(self._SQL_LOCK_CHAIN, (_CHAIN_LOCK_KEY,))
                    last = conn.execute(self._SQL_LAST_HASH).fetchone()
                    previous_hash = last[0] if last else GENESIS_HASH
                    current_hash, signature = seal(entry, created_at, previous_hash)
                    row = conn.execute(
                        self._SQL_INSERT,
                        (
                            entry.action,
                            entry.category,
                            entry.user_id,
                            entry.target_id,
                            entry.target_type,
                            Json(dict(entry.metadata)),
                            entry.ip_address,
                            entry.user_agent,
                            created_at,
                            previous_hash,
                            current_hash,
                            signature,
                        ),
                    ).fetchone()
        except SecurityCoreError:
            raise
        except Exception as exc:
            logger.exception(
                "PostgresAuditLogRepository: append failed",
                extra={
                    "action": entry.action,
                    "category": entry.category,
                    "error": str(exc),
                },
            )
            raise DatabaseError(f"Failed to append audit entry: {exc}") from exc

        return AuditLogEntry(
            id=int(row[0]),
            action=entry.action,
            category=entry.category,
            user_id=entry.user_id,
            target_id=entry.target_id,
            target_type=entry.target_type,
            metadata=dict(entry.metadata),
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            created_at=created_at,
            previous_hash=previous_hash,
            current_hash=current_hash,
            signature=signature,
        )

    # ------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------
    @staticmethod
    def _where(query: AuditQuery) -> tuple[str, list[object]]:
        conditions: list[str] = []
        params: list[object] = []

        if query.category is not None:
            conditions.append("category = %s")
            params.append(query.category.value)
        if query.action_contains:
            conditions.append("strpos(action, %s) > 0")
            params.append(query.action_contains)
        if query.user_id is not None:
            conditions.append("user_id = %s")
            params.append(query.user_id)
        if query.start_at is not None:
            conditions.append("created_at >= %s")
            params.append(query.start_at)
        if query.end_at is not None:
            conditions.append("created_at <= %s")
            params.append(query.end_at)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        return where, params

    def search(
        self, query: AuditQuery, *, offset: int, limit: int
    ) -> tuple[list[AuditLogEntry], int]:
        where, params = self._where(query)
        extra = {"filters": str(query), "offset": offset, "limit": limit}

        count_rows = self._fetchall(
            query=f"SELECT COUNT(*) FROM audit_logs {where}",
            params=params,
            error_message="PostgresAuditLogRepository: count failed",
            extra=extra,
        )
        rows = self._fetchall(
            query=f"""
                SELECT {_SELECT_COLUMNS}
                FROM audit_logs
                {where}
                ORDER BY created_at DESC, id DESC
                LIMIT %s OFFSET %s
            """,
            params=[*params, limit, offset],
            error_message="PostgresAuditLogRepository: search failed",
            extra=extra,
        )
        return [self._row_to_entry(r) for r in rows], int(count_rows[0][0])

    def iter_chain(self) -> Iterator[AuditLogEntry]:
        last_id = 0
        while True:
            rows = self._fetchall(
                query=self._SQL_CHAIN_BATCH,
                params=(last_id, _ITER_BATCH),
                error_message="PostgresAuditLogRepository: chain scan failed",
                extra={"after_id": last_id},
            )
            if not rows:
                return
            for row in rows:
                yield self._row_to_entry(row)
            last_id = int(rows[-1][0])

    # ------------------------------------------------------------
    # Acuse de lectura / retención
    # ------------------------------------------------------------
    def mark_read(self, entry_ids: Sequence[int], read_at: datetime) -> int:
        if not entry_ids:
            return 0
        return self._execute_rowcount(
            query=self._SQL_MARK_READ,
            params=(read_at, list(entry_ids)),
            error_message="PostgresAuditLogRepository: mark_read failed",
            extra={"count": len(entry_ids)},
        )

    def purge(self, *, older_than: datetime, only_read: bool) -> int:
        sql = "DELETE FROM audit_logs WHERE created_at < %s"
        if only_read:
            sql += " AND read_at IS NOT NULL"
        return self._execute_rowcount(
            query=sql,
            params=(older_than,),
            error_message="PostgresAuditLogRepository: purge failed",
            extra={"older_than": older_than.isoformat(), "only_read": only_read},
        )
