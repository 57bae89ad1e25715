"""
===============================================================================
TARJETA CRC — router.py (Router raíz / Composición)
===============================================================================

Responsabilidades:
  - Definir el APIRouter raíz que se incluye en FastAPI (prefix="/v1").
  - Centralizar responses RFC7807 para OpenAPI.
  - Componer routers por contexto (audit / admin).

Colaboradores:
  - crosscutting.error_responses.OPENAPI_ERROR_RESPONSES
  - routers.*
===============================================================================
"""

from __future__ import annotations

from fastapi import APIRouter

from ....crosscutting.error_responses import OPENAPI_ERROR_RESPONSES
from .routers import admin_router, audit_router


def build_router() -> APIRouter:
    """Construye el router raíz v1 (sin efectos colaterales al importar)."""
    api_router = APIRouter(responses=OPENAPI_ERROR_RESPONSES)
    api_router.include_router(audit_router)
    api_router.include_router(admin_router)
    return api_router


router = build_router()

__all__ = ["router", "build_router"]
