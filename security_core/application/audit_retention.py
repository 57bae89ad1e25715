"""
===============================================================================
TARJETA CRC — application/audit_retention.py
===============================================================================

Componente:
  AuditRetentionJob (única vía de borrado del audit log)

Responsabilidades:
  - Borrar en bloque entradas más viejas que N días, opcionalmente sólo las
    ya leídas (read_at no nulo).
  - Exigir el permiso audit.purge al actor.
  - Dejar constancia: registra audit.purged (categoría system) tras borrar.

Colaboradores:
  - domain.repositories.AuditLogRepository.purge
  - application.permissions.PermissionResolver
  - application.audit_logger.AuditLogger

Reglas:
  - Nunca borra por contenido (action/metadata); sólo por edad + estado de lectura.
===============================================================================
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

from ..crosscutting.exceptions import ValidationError
from ..crosscutting.logger import logger
from ..domain.audit import AuditAction, AuditCategory, NewAuditEntry, PurgeResult
from ..domain.identity import SessionPrincipal
from ..domain.permissions import PURGE_AUDIT
from ..domain.repositories import AuditLogRepository
from .audit_logger import AuditLogger
from .permissions import PermissionResolver


class AuditRetentionJob:
    def __init__(
        self,
        repository: AuditLogRepository,
        permissions: PermissionResolver,
        audit_logger: AuditLogger,
        *,
        default_days: int = 90,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._permissions = permissions
        self._audit = audit_logger
        self._default_days = default_days
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def run(
        self,
        actor: SessionPrincipal,
        older_than_days: int | None = None,
        *,
        only_read: bool = True,
    ) -> PurgeResult:
        self._permissions.require(actor, PURGE_AUDIT)

        days = self._default_days if older_than_days is None else older_than_days
        if isinstance(days, bool) or not isinstance(days, int) or days < 1:
            raise ValidationError("older_than_days must be an integer >= 1")

        cutoff = self._clock() - timedelta(days=days)
        deleted = self._repository.purge(older_than=cutoff, only_read=only_read)

        logger.warning(
            "Audit retention sweep executed",
            extra={
                "actor_id": actor.user_id,
                "deleted": deleted,
                "cutoff": cutoff.isoformat(),
                "only_read": only_read,
            },
        )
        self._audit.record(
            NewAuditEntry(
                action=AuditAction.AUDIT_PURGED.value,
                category=AuditCategory.SYSTEM.value,
                metadata={
                    "deleted": deleted,
                    "olderThanDays": days,
                    "onlyRead": only_read,
                    "cutoff": cutoff.isoformat(),
                },
            ),
            actor,
        )
        return PurgeResult(deleted=deleted, cutoff=cutoff, only_read=only_read)
