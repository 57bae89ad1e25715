"""
CRC — domain/repositories.py

Name
- Security Core Storage Interfaces (Protocols)

Responsibilities
- Define persistence contracts (ports) for rate-limit counters, permission
  overrides, user roles and the audit log.
- Keep application services independent from Postgres / Redis / memory.

Collaborators
- domain.rate_limit, domain.permissions, domain.audit
- infrastructure.repositories: in_memory, postgres, redis implementations

Constraints
- Pure interfaces only: no SQL, no infrastructure imports.
- RateLimitStore.increment MUST be a single atomic operation per identifier.
- AuditLogRepository exposes NO update method; purge is by age/read-status only.
- Implementations raise crosscutting.exceptions.StorageError (or DatabaseError)
  on backend failures.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterator, Protocol, Sequence

from .audit import AuditLogEntry, AuditQuery, NewAuditEntry
from .permissions import PermissionOverride
from .rate_limit import RateLimitCounter
from .roles import Role

# seal(entry, created_at, previous_hash) -> (current_hash, signature)
AuditSealFn = Callable[[NewAuditEntry, datetime, str], tuple[str, str]]


class RateLimitStore(Protocol):
    """R: Fixed-window counters keyed by identifier."""

    def increment(
        self, identifier: str, *, limit: int, window_ms: int, now_ms: int
    ) -> RateLimitCounter:
        """
        R: Atomically admit-and-count.

        - No entry or expired window -> start a new window at now_ms, count=1.
        - count < limit -> count+1, admitted.
        - otherwise -> not admitted, count unchanged.
        """
        ...

    def reset(self, identifier: str) -> None:
        """R: Drop the counter for identifier."""
        ...


class PermissionOverrideRepository(Protocol):
    """R: At most one override per (user_id, permission_code)."""

    def list_for_user(self, user_id: str) -> list[PermissionOverride]:
        ...

    def get(self, user_id: str, permission_code: str) -> PermissionOverride | None:
        ...

    def upsert(self, override: PermissionOverride) -> PermissionOverride:
        ...

    def delete(self, user_id: str, permission_code: str) -> bool:
        """R: Returns True if an override existed."""
        ...


class UserDirectory(Protocol):
    """R: Read-only view of user roles, owned by the host application."""

    def get_role(self, user_id: str) -> Role | None:
        ...


class AuditLogRepository(Protocol):
    """R: Append-only audit log storage."""

    def append(self, entry: NewAuditEntry, seal: AuditSealFn) -> AuditLogEntry:
        """
        R: Persist entry chained to the latest one.

        The read of the previous hash and the insert happen under the same
        serialization point so the chain never forks.
        """
        ...

    def search(
        self, query: AuditQuery, *, offset: int, limit: int
    ) -> tuple[list[AuditLogEntry], int]:
        """R: Newest first. Returns (page, total matching)."""
        ...

    def iter_chain(self) -> Iterator[AuditLogEntry]:
        """R: All entries, oldest first (for verification)."""
        ...

    def mark_read(self, entry_ids: Sequence[int], read_at: datetime) -> int:
        ...

    def purge(self, *, older_than: datetime, only_read: bool) -> int:
        """R: Bulk delete by age (+ optional read status). Returns deleted count."""
        ...
