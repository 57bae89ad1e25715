"""
===============================================================================
CRC CARD — infrastructure/db/schema.py
===============================================================================

Componente:
  Bootstrap idempotente de tablas del core (no es un framework de migraciones).

Responsabilidades:
  - Crear rate_limits, permission_overrides y audit_logs si no existen.
  - Crear una tabla users mínima (id, role) si el host no la provee.

Colaboradores:
  - infrastructure.db.pool.get_pool
  - api main (lifespan) cuando STORAGE_BACKEND/RATE_LIMIT_BACKEND=postgres
===============================================================================
"""

from __future__ import annotations

from psycopg_pool import ConnectionPool

from ...crosscutting.exceptions import DatabaseError
from ...crosscutting.logger import logger

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        role TEXT NOT NULL DEFAULT 'USER'
            CHECK (role IN ('USER', 'MODERATOR', 'ADMIN', 'SUPERADMIN'))
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rate_limits (
        identifier TEXT PRIMARY KEY,
        window_start_ms BIGINT NOT NULL,
        window_ms BIGINT NOT NULL,
        count INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS permission_overrides (
        user_id TEXT NOT NULL,
        permission_code TEXT NOT NULL,
        state TEXT NOT NULL CHECK (state IN ('GRANTED', 'REVOKED')),
        changed_by TEXT NOT NULL,
        changed_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        PRIMARY KEY (user_id, permission_code)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS audit_logs (
        id BIGSERIAL PRIMARY KEY,
        action TEXT NOT NULL,
        category TEXT NOT NULL,
        user_id TEXT NULL,
        target_id TEXT NULL,
        target_type TEXT NULL,
        metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
        ip_address TEXT NULL,
        user_agent TEXT NULL,
        created_at TIMESTAMPTZ NOT NULL,
        read_at TIMESTAMPTZ NULL,
        previous_hash TEXT NOT NULL,
        current_hash TEXT NOT NULL,
        signature TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS audit_logs_created_at_idx ON audit_logs (created_at)",
    "CREATE INDEX IF NOT EXISTS audit_logs_category_idx ON audit_logs (category)",
    "CREATE INDEX IF NOT EXISTS audit_logs_user_id_idx ON audit_logs (user_id)",
)


def ensure_schema(pool: ConnectionPool) -> None:
    """Ejecuta el DDL en una transacción. Seguro de repetir."""
    try:
        with pool.connection() as conn:
            with conn.transaction():
                for statement in SCHEMA_STATEMENTS:
                    conn.execute(statement)
    except Exception as exc:
        logger.exception("schema bootstrap failed", extra={"error": str(exc)})
        raise DatabaseError(f"Schema bootstrap failed: {exc}") from exc
    logger.info("schema bootstrap ok", extra={"statements": len(SCHEMA_STATEMENTS)})
