"""
===============================================================================
TARJETA CRC — infrastructure/repositories/__init__.py
===============================================================================

Responsabilidades:
  - Re-exportar adapters de persistencia (in-memory, Postgres, Redis).
===============================================================================
"""

from .in_memory import (
    InMemoryAuditLogRepository,
    InMemoryPermissionOverrideRepository,
    InMemoryRateLimitStore,
    InMemoryUserDirectory,
)
from .postgres import (
    PostgresAuditLogRepository,
    PostgresPermissionOverrideRepository,
    PostgresRateLimitStore,
    PostgresUserDirectory,
)
from .redis import RedisRateLimitStore

__all__ = [
    "InMemoryAuditLogRepository",
    "InMemoryPermissionOverrideRepository",
    "InMemoryRateLimitStore",
    "InMemoryUserDirectory",
    "PostgresAuditLogRepository",
    "PostgresPermissionOverrideRepository",
    "PostgresRateLimitStore",
    "PostgresUserDirectory",
    "RedisRateLimitStore",
]
