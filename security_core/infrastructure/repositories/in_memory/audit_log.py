# =============================================================================
# FILE: infrastructure/repositories/in_memory/audit_log.py
# =============================================================================
"""
In-memory append-only audit log (tests / development).

NOT FOR PRODUCTION USE - data is lost on restart.

Notas:
  - El Lock es el punto de serialización de la cadena de hashes: leer el
    último current_hash e insertar ocurren dentro de la misma sección crítica.
  - Devuelve copias de metadata: mutar lo que retorna search() no altera el log.
"""

from __future__ import annotations

import copy
import itertools
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Iterator, Sequence

from ....domain.audit import GENESIS_HASH, AuditLogEntry, AuditQuery, NewAuditEntry
from ....domain.repositories import AuditSealFn


def _detached(entry: AuditLogEntry) -> AuditLogEntry:
    return replace(entry, metadata=copy.deepcopy(dict(entry.metadata)))


class InMemoryAuditLogRepository:
    """AuditLogRepository en memoria, ordenado por id ascendente."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._entries: list[AuditLogEntry] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def append(self, entry: NewAuditEntry, seal: AuditSealFn) -> AuditLogEntry:
        with self._lock:
            previous_hash = (
                self._entries[-1].current_hash if self._entries else GENESIS_HASH
            )
            created_at = self._clock()
            current_hash, signature = seal(entry, created_at, previous_hash)
            stored = AuditLogEntry(
                id=next(self._ids),
                action=entry.action,
                category=entry.category,
                user_id=entry.user_id,
                target_id=entry.target_id,
                target_type=entry.target_type,
                metadata=copy.deepcopy(dict(entry.metadata)),
                ip_address=entry.ip_address,
                user_agent=entry.user_agent,
                created_at=created_at,
                previous_hash=previous_hash,
                current_hash=current_hash,
                signature=signature,
            )
            self._entries.append(stored)
            return _detached(stored)

    def search(
        self, query: AuditQuery, *, offset: int, limit: int
    ) -> tuple[list[AuditLogEntry], int]:
        with self._lock:
            matches = [e for e in self._entries if self._matches(e, query)]
        matches.sort(key=lambda e: (e.created_at, e.id), reverse=True)
        page = matches[offset : offset + limit]
        return [_detached(e) for e in page], len(matches)

    def iter_chain(self) -> Iterator[AuditLogEntry]:
        with self._lock:
            snapshot = list(self._entries)
        return (_detached(e) for e in snapshot)

    def mark_read(self, entry_ids: Sequence[int], read_at: datetime) -> int:
        wanted = set(entry_ids)
        updated = 0
        with self._lock:
            for index, entry in enumerate(self._entries):
                if entry.id in wanted and entry.read_at is None:
                    self._entries[index] = replace(entry, read_at=read_at)
                    updated += 1
        return updated

    def purge(self, *, older_than: datetime, only_read: bool) -> int:
        with self._lock:
            kept = [
                e
                for e in self._entries
                if not (e.created_at < older_than and (e.is_read or not only_read))
            ]
            deleted = len(self._entries) - len(kept)
            self._entries = kept
            return deleted

    @staticmethod
    def _matches(entry: AuditLogEntry, query: AuditQuery) -> bool:
        if query.category is not None and entry.category != query.category.value:
            return False
        if query.action_contains and query.action_contains not in entry.action:
            return False
        if query.user_id is not None and entry.user_id != query.user_id:
            return False
        if query.start_at is not None and entry.created_at < query.start_at:
            return False
        if query.end_at is not None and entry.created_at > query.end_at:
            return False
        return True
