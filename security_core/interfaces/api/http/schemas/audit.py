"""
===============================================================================
TARJETA CRC — schemas/audit.py
===============================================================================

Módulo:
    Schemas HTTP para ingesta y consulta de auditoría

Responsabilidades:
    - Validar el evento entrante (POST /audit/events).
    - Serializar entradas de la cadena y resultados de verificación / purga.

Colaboradores:
    - domain.audit (AuditLogEntry, AuditPage, ChainVerification, PurgeResult)
===============================================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .....domain.audit import (
    AuditLogEntry,
    AuditPage,
    ChainVerification,
    NewAuditEntry,
    PurgeResult,
)


class AuditEventReq(BaseModel):
    """Evento enviado por clientes (el user_id sale de la sesión, nunca del body)."""

    model_config = ConfigDict(populate_by_name=True)

    action: str = Field(..., min_length=1, max_length=100)
    category: str = Field(..., min_length=1, max_length=50)
    target_id: str | None = Field(default=None, alias="targetId", max_length=255)
    target_type: str | None = Field(default=None, alias="targetType", max_length=50)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_entry(self, *, ip_address: str | None, user_agent: str | None) -> NewAuditEntry:
        return NewAuditEntry(
            action=self.action,
            category=self.category,
            target_id=self.target_id,
            target_type=self.target_type,
            metadata=self.metadata,
            ip_address=ip_address,
            user_agent=user_agent,
        )


class AuditEventAcceptedRes(BaseModel):
    accepted: bool = True
    deferred: bool
    id: int | None = None


class AuditEntryRes(BaseModel):
    id: int
    action: str
    category: str
    user_id: str | None = None
    target_id: str | None = None
    target_type: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime
    read_at: datetime | None = None
    current_hash: str
    previous_hash: str

    @classmethod
    def from_entry(cls, entry: AuditLogEntry) -> "AuditEntryRes":
        return cls(
            id=entry.id,
            action=entry.action,
            category=entry.category,
            user_id=entry.user_id,
            target_id=entry.target_id,
            target_type=entry.target_type,
            metadata=dict(entry.metadata),
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            created_at=entry.created_at,
            read_at=entry.read_at,
            current_hash=entry.current_hash,
            previous_hash=entry.previous_hash,
        )


class AuditPageRes(BaseModel):
    """Listado paginado (page/limit, 1-based)."""

    entries: list[AuditEntryRes]
    total: int
    page: int
    limit: int
    total_pages: int

    @classmethod
    def from_page(cls, page: AuditPage) -> "AuditPageRes":
        return cls(
            entries=[AuditEntryRes.from_entry(e) for e in page.entries],
            total=page.total,
            page=page.page,
            limit=page.limit,
            total_pages=page.total_pages,
        )


class MarkReadReq(BaseModel):
    ids: list[int] = Field(..., min_length=1, max_length=500)


class MarkReadRes(BaseModel):
    updated: int


class ChainVerificationRes(BaseModel):
    valid: bool
    total_checked: int
    corrupted_id: int | None = None
    reason: str | None = None

    @classmethod
    def from_result(cls, result: ChainVerification) -> "ChainVerificationRes":
        return cls(
            valid=result.valid,
            total_checked=result.total_checked,
            corrupted_id=result.corrupted_id,
            reason=result.reason,
        )


class PurgeReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    older_than_days: int | None = Field(default=None, alias="olderThanDays", ge=1)
    only_read: bool = Field(default=True, alias="onlyRead")


class PurgeRes(BaseModel):
    deleted: int
    cutoff: datetime
    only_read: bool

    @classmethod
    def from_result(cls, result: PurgeResult) -> "PurgeRes":
        return cls(
            deleted=result.deleted, cutoff=result.cutoff, only_read=result.only_read
        )
