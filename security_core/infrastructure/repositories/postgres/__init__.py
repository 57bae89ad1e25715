"""PostgreSQL adapters (psycopg 3 + psycopg_pool)."""

from .audit_log import PostgresAuditLogRepository
from .permission_override import PostgresPermissionOverrideRepository
from .rate_limit import PostgresRateLimitStore
from .user_directory import PostgresUserDirectory

__all__ = [
    "PostgresAuditLogRepository",
    "PostgresPermissionOverrideRepository",
    "PostgresRateLimitStore",
    "PostgresUserDirectory",
]
