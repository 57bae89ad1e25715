"""
===============================================================================
TARJETA CRC — schemas/__init__.py
===============================================================================

Módulo:
    Paquete de Schemas HTTP (DTOs Pydantic)

Responsabilidades:
    - Agrupar contratos HTTP por contexto (audit / admin).
    - Mantener separados DTOs (schemas) de controladores (routers).

Reglas:
    - Schemas NO importan infraestructura.
    - Solo tipos y validación de input/output.
===============================================================================
"""

__all__ = []
