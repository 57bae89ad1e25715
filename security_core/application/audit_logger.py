"""
===============================================================================
SERVICE: Audit Logger (append-only security trail)
===============================================================================

Qué es:
    Registro durable y append-only de eventos de seguridad para reconstrucción
    forense. Valida contra catálogos cerrados, acota metadata, sella cada
    entrada en la cadena de hashes y ofrece consulta paginada.

-------------------------------------------------------------------------------
CRC CARD
-------------------------------------------------------------------------------
Component: AuditLogger
Responsibilities:
  - record: validar action/category/metadata y persistir (síncrono)
  - record_deferred: validar síncrono, persistir en BackgroundRunner
  - Allow-list para callers sin sesión: sólo (auth, login.failed)
  - query: filtros + paginado (limit <= max_page_size)
  - mark_read (acuse para retención) y verify_chain
Collaborators:
  - domain.repositories.AuditLogRepository
  - application.audit_chain.AuditSealer
  - application.background.BackgroundRunner
Constraints:
  - Input inválido PROPAGA (ValidationError / ForbiddenError).
  - Falla del store se loguea y NO se propaga (record devuelve None).
  - No existe operación para editar una entrada.
===============================================================================
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Sequence

from ..crosscutting.exceptions import ForbiddenError, StorageError, ValidationError
from ..crosscutting.logger import logger
from ..domain.audit import (
    AUDIT_ACTIONS,
    AUDIT_CATEGORIES,
    PUBLIC_AUDIT_EVENTS,
    AuditCategory,
    AuditLogEntry,
    AuditPage,
    AuditQuery,
    ChainVerification,
    NewAuditEntry,
)
from ..domain.identity import SessionPrincipal
from ..domain.repositories import AuditLogRepository
from .audit_chain import AuditSealer
from .background import BackgroundRunner

DEFAULT_MAX_METADATA_BYTES = 2000
DEFAULT_MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50

# Categorías que deben quedar escritas antes de responder al request.
SYNC_ONLY_CATEGORIES: frozenset[str] = frozenset(
    {AuditCategory.SECURITY.value, AuditCategory.SYSTEM.value, AuditCategory.ADMIN.value}
)

_PUBLIC_PAIRS: frozenset[tuple[str, str]] = frozenset(
    (category.value, action.value) for category, action in PUBLIC_AUDIT_EVENTS
)


def _value(item: Any) -> str:
    return str(getattr(item, "value", item))


class AuditLogger:
    def __init__(
        self,
        repository: AuditLogRepository,
        sealer: AuditSealer,
        *,
        runner: BackgroundRunner | None = None,
        max_metadata_bytes: int = DEFAULT_MAX_METADATA_BYTES,
        max_page_size: int = DEFAULT_MAX_PAGE_SIZE,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._sealer = sealer
        self._runner = runner
        self._max_metadata_bytes = max_metadata_bytes
        self._max_page_size = max_page_size
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Validación
    # ------------------------------------------------------------------
    def _normalize_metadata(self, metadata: Any) -> dict[str, Any]:
        if metadata is None:
            return {}
        if not isinstance(metadata, Mapping):
            raise ValidationError("metadata must be an object")
        try:
            serialized = json.dumps(
                dict(metadata), separators=(",", ":"), ensure_ascii=False
            )
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"metadata must be JSON-serializable: {exc}") from exc

        size = len(serialized.encode("utf-8"))
        if size > self._max_metadata_bytes:
            raise ValidationError(
                f"metadata is {size} bytes, max is {self._max_metadata_bytes}"
            )
        # R: round-trip JSON = misma forma que devuelve el store al releer.
        return json.loads(serialized)

    def validate(
        self,
        entry: NewAuditEntry,
        principal: SessionPrincipal | None = None,
        *,
        trusted: bool = False,
    ) -> NewAuditEntry:
        """Entrada normalizada lista para persistir, o ValidationError/ForbiddenError."""
        action = _value(entry.action)
        category = _value(entry.category)

        if action not in AUDIT_ACTIONS:
            raise ValidationError(f"Unknown audit action: {action}")
        if category not in AUDIT_CATEGORIES:
            raise ValidationError(f"Unknown audit category: {category}")

        metadata = self._normalize_metadata(entry.metadata)
        user_id = entry.user_id

        if principal is not None:
            user_id = principal.user_id
        elif not trusted:
            if (category, action) not in _PUBLIC_PAIRS:
                logger.warning(
                    "Anonymous audit event rejected",
                    extra={"action": action, "category": category},
                )
                raise ForbiddenError(
                    "Unauthenticated callers cannot record this event",
                    reason="anonymous_event_not_allowed",
                )
            # Sin sesión no hay a quién atribuir el evento.
            user_id = None

        return NewAuditEntry(
            action=action,
            category=category,
            user_id=user_id,
            target_id=entry.target_id,
            target_type=entry.target_type,
            metadata=metadata,
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
        )

    # ------------------------------------------------------------------
    # Escritura
    # ------------------------------------------------------------------
    def _append(
        self, entry: NewAuditEntry, *, required: bool = False
    ) -> AuditLogEntry | None:
        try:
            stored = self._repository.append(entry, self._sealer.seal)
        except StorageError as exc:
            logger.error(
                "Audit write failed",
                extra={
                    "action": entry.action,
                    "category": entry.category,
                    "error_id": exc.error_id,
                },
            )
            if required:
                raise
            return None
        logger.info(
            "Audit event recorded",
            extra={"audit_id": stored.id, "action": stored.action, "category": stored.category},
        )
        return stored

    def record(
        self,
        entry: NewAuditEntry,
        principal: SessionPrincipal | None = None,
        *,
        trusted: bool = False,
        required: bool = False,
    ) -> AuditLogEntry | None:
        """
        Registra el evento antes de retornar.

        principal=None y trusted=False: caller sin sesión (allow-list).
        trusted=True: código de servidor (jobs, flujo de login).
        required=True: un fallo del store se propaga (StorageError) en vez
        de devolver None; el caller deshace su cambio.
        """
        normalized = self.validate(entry, principal, trusted=trusted)
        self._sealer.ensure_ready()
        return self._append(normalized, required=required)

    def record_deferred(
        self,
        entry: NewAuditEntry,
        principal: SessionPrincipal | None = None,
        *,
        trusted: bool = False,
    ) -> None:
        """Telemetría: valida ya, escribe en background (best-effort)."""
        normalized = self.validate(entry, principal, trusted=trusted)
        if normalized.category in SYNC_ONLY_CATEGORIES:
            raise ValidationError(
                f"Category {normalized.category} must be recorded synchronously"
            )
        self._sealer.ensure_ready()
        if self._runner is None:
            self._append(normalized)
            return
        self._runner.submit(self._append, normalized, task_name="audit.record_deferred")

    # ------------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------------
    def query(
        self,
        filters: AuditQuery | None = None,
        *,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> AuditPage:
        filters = filters or AuditQuery()
        if (
            filters.start_at is not None
            and filters.end_at is not None
            and filters.start_at > filters.end_at
        ):
            raise ValidationError("start_at must be before end_at")

        page = max(1, int(page))
        limit = max(1, min(int(limit), self._max_page_size))
        entries, total = self._repository.search(
            filters, offset=(page - 1) * limit, limit=limit
        )
        return AuditPage(entries=entries, total=total, page=page, limit=limit)

    def mark_read(self, entry_ids: Sequence[int]) -> int:
        ids = []
        for entry_id in entry_ids:
            if isinstance(entry_id, bool) or not isinstance(entry_id, int) or entry_id <= 0:
                raise ValidationError(f"Invalid audit entry id: {entry_id!r}")
            ids.append(entry_id)
        if not ids:
            return 0
        return self._repository.mark_read(ids, self._clock())

    def verify_chain(self) -> ChainVerification:
        return self._sealer.verify_chain(self._repository.iter_chain())
