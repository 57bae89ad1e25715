"""In-memory adapters (tests / development)."""

from .audit_log import InMemoryAuditLogRepository
from .permission_override import InMemoryPermissionOverrideRepository
from .rate_limit import InMemoryRateLimitStore
from .user_directory import InMemoryUserDirectory

__all__ = [
    "InMemoryAuditLogRepository",
    "InMemoryPermissionOverrideRepository",
    "InMemoryRateLimitStore",
    "InMemoryUserDirectory",
]
