"""
===============================================================================
TARJETA CRC — application/audit_chain.py
===============================================================================

Componente:
  AuditSealer (cadena de hashes + firma HMAC)

Responsabilidades:
  - current_hash = sha256(JSON canónico de la entrada + previous_hash).
  - signature = HMAC-SHA256(AUDIT_SIGNING_KEY, current_hash).
  - verify_chain: recorrer el log (más antiguo primero) y detectar la primera
    entrada alterada, firmada con otra clave, o desenganchada de la anterior.

Colaboradores:
  - domain.audit (NewAuditEntry, AuditLogEntry, ChainVerification)
  - hashlib / hmac

Reglas:
  - read_at NO forma parte del sello (es un acuse, no contenido).
  - Tras una purga por retención la primera entrada sobreviviente es el ancla:
    su previous_hash no se compara contra GENESIS_HASH.
  - Sin clave de firma: signature="" fuera de producción; en producción
    ConfigurationError en el primer uso.
===============================================================================
"""

from __future__ import annotations

import hashlib
import hmac
import json
from datetime import datetime, timezone
from typing import Any, Iterable

from ..crosscutting.exceptions import ConfigurationError
from ..crosscutting.logger import logger
from ..domain.audit import AuditLogEntry, ChainVerification, NewAuditEntry


def _iso_utc(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _same(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), (b or "").encode("utf-8"))


def canonical_payload(
    *,
    action: str,
    category: str,
    user_id: str | None,
    target_id: str | None,
    target_type: str | None,
    metadata: Any,
    ip_address: str | None,
    user_agent: str | None,
    created_at: datetime,
    previous_hash: str,
) -> bytes:
    payload = {
        "action": action,
        "category": category,
        "user_id": user_id,
        "target_id": target_id,
        "target_type": target_type,
        "metadata": dict(metadata or {}),
        "ip_address": ip_address,
        "user_agent": user_agent,
        "created_at": _iso_utc(created_at),
        "previous_hash": previous_hash,
    }
    return json.dumps(
        payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    ).encode("utf-8")


class AuditSealer:
    def __init__(self, signing_key: str | None, *, require_key: bool = False):
        self._key = (signing_key or "").encode("utf-8")
        self._require_key = require_key

    def _signing_key(self) -> bytes:
        if not self._key and self._require_key:
            raise ConfigurationError("AUDIT_SIGNING_KEY is required in production")
        return self._key

    def ensure_ready(self) -> None:
        """ConfigurationError si la clave es obligatoria y falta."""
        self._signing_key()

    def compute_hash(self, entry: NewAuditEntry, created_at: datetime, previous_hash: str) -> str:
        return hashlib.sha256(
            canonical_payload(
                action=entry.action,
                category=entry.category,
                user_id=entry.user_id,
                target_id=entry.target_id,
                target_type=entry.target_type,
                metadata=entry.metadata,
                ip_address=entry.ip_address,
                user_agent=entry.user_agent,
                created_at=created_at,
                previous_hash=previous_hash,
            )
        ).hexdigest()

    def sign(self, current_hash: str) -> str:
        key = self._signing_key()
        if not key:
            return ""
        return hmac.new(key, current_hash.encode("utf-8"), hashlib.sha256).hexdigest()

    def seal(
        self, entry: NewAuditEntry, created_at: datetime, previous_hash: str
    ) -> tuple[str, str]:
        """AuditSealFn: (current_hash, signature)."""
        current_hash = self.compute_hash(entry, created_at, previous_hash)
        return current_hash, self.sign(current_hash)

    def _recompute(self, stored: AuditLogEntry) -> str:
        entry = NewAuditEntry(
            action=stored.action,
            category=stored.category,
            user_id=stored.user_id,
            target_id=stored.target_id,
            target_type=stored.target_type,
            metadata=stored.metadata,
            ip_address=stored.ip_address,
            user_agent=stored.user_agent,
        )
        return self.compute_hash(entry, stored.created_at, stored.previous_hash)

    def verify_chain(self, entries: Iterable[AuditLogEntry]) -> ChainVerification:
        """entries en orden de id ascendente."""
        checked = 0
        expected_previous: str | None = None

        for stored in entries:
            checked += 1
            reason = None

            if expected_previous is not None and stored.previous_hash != expected_previous:
                reason = "broken_link"
            elif not _same(self._recompute(stored), stored.current_hash):
                reason = "hash_mismatch"
            elif not _same(self.sign(stored.current_hash), stored.signature):
                reason = "signature_mismatch"

            if reason is not None:
                logger.error(
                    "Audit chain verification failed",
                    extra={"entry_id": stored.id, "reason": reason, "checked": checked},
                )
                return ChainVerification(
                    valid=False, total_checked=checked, corrupted_id=stored.id, reason=reason
                )
            expected_previous = stored.current_hash

        return ChainVerification(valid=True, total_checked=checked)
