"""
===============================================================================
TARJETA CRC — routers/audit.py
===============================================================================

Name:
    Audit Ingest Router

Responsibilities:
    - POST /audit/events: ingesta de eventos enviados por clientes.
    - Rate limit por IP (clase telemetry) antes de validar.
    - Categorías security/system/admin: escritura síncrona; el resto diferido.

Collaborators:
    - facade.SecurityCore (rate_limiter, audit_logger)
    - dependencies (principal opcional, origen de red)
    - schemas.audit
===============================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from .....application.audit_logger import SYNC_ONLY_CATEGORIES
from .....crosscutting.error_responses import rate_limited
from .....crosscutting.logger import logger
from .....domain.identity import NetworkOrigin, SessionPrincipal
from .....domain.rate_limit import OperationClass
from .....facade import SecurityCore
from ..dependencies import get_core, get_network_origin, get_optional_principal
from ..schemas.audit import AuditEventAcceptedRes, AuditEventReq

router = APIRouter()


@router.post(
    "/audit/events",
    response_model=AuditEventAcceptedRes,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["audit"],
)
def ingest_audit_event(
    body: AuditEventReq,
    origin: NetworkOrigin = Depends(get_network_origin),
    principal: SessionPrincipal | None = Depends(get_optional_principal),
    core: SecurityCore = Depends(get_core),
):
    subject = origin.ip_address or "unknown"
    limit = core.check_operation_rate_limit(OperationClass.TELEMETRY, subject)
    if not limit.allowed:
        logger.warning(
            "Audit ingest rate limited",
            extra={"client_ip": subject, "retry_after": limit.retry_after_seconds},
        )
        raise rate_limited(limit.retry_after_seconds)

    entry = body.to_entry(
        ip_address=origin.ip_address, user_agent=origin.user_agent
    )
    if body.category in SYNC_ONLY_CATEGORIES:
        saved = core.create_audit_log(entry, principal)
        return AuditEventAcceptedRes(
            deferred=False, id=saved.id if saved is not None else None
        )

    # R: valida en el request; sólo la escritura va al runner.
    core.create_audit_log_deferred(entry, principal)
    return AuditEventAcceptedRes(deferred=True)
