"""
===============================================================================
TARJETA CRC — routers/__init__.py
===============================================================================

Responsibilities:
    - Re-exportar routers por contexto (audit, admin).

Notas:
    - Este archivo NO define endpoints.
===============================================================================
"""

from .admin import router as admin_router
from .audit import router as audit_router

__all__ = ["admin_router", "audit_router"]
