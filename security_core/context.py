"""
===============================================================================
TARJETA CRC — security_core/context.py (Contexto por request)
===============================================================================

Responsabilidades:
  - Mantener contexto "request-scoped" con ContextVars (async-safe).
  - Correlacionar logs de seguridad (request_id, actor, IP) sin pasar
    parámetros por todo el stack.
  - Proveer helpers mínimos: set_*(), get_context_dict(), clear_context().

Colaboradores:
  - crosscutting.middleware.RequestContextMiddleware: setea request_id/method/path.
  - interfaces.api.http.dependencies: setea actor_id / client_ip.
  - crosscutting.logger: enriquece logs leyendo get_context_dict().

Restricciones:
  - Solo strings (serialización segura en JSON).
  - Defaults vacíos ("") en lugar de None.
===============================================================================
"""

from __future__ import annotations

from contextvars import ContextVar
from typing import Final

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
http_method_var: ContextVar[str] = ContextVar("http_method", default="")
http_path_var: ContextVar[str] = ContextVar("http_path", default="")

# Quién actúa y desde dónde (para logs de auditoría/alertas).
actor_id_var: ContextVar[str] = ContextVar("actor_id", default="")
client_ip_var: ContextVar[str] = ContextVar("client_ip", default="")

_CTX_KEYS: Final[tuple[tuple[str, ContextVar[str]], ...]] = (
    ("request_id", request_id_var),
    ("method", http_method_var),
    ("path", http_path_var),
    ("actor_id", actor_id_var),
    ("client_ip", client_ip_var),
)


def set_request_context(
    *, request_id: str = "", method: str = "", path: str = ""
) -> None:
    """Setea el contexto HTTP mínimo. Strings vacíos = "no disponible"."""
    request_id_var.set(request_id or "")
    http_method_var.set(method or "")
    http_path_var.set(path or "")


def set_security_context(*, actor_id: str = "", client_ip: str = "") -> None:
    """Setea actor e IP de origen una vez resuelta la sesión."""
    actor_id_var.set(actor_id or "")
    client_ip_var.set(client_ip or "")


def get_context_dict() -> dict[str, str]:
    """Contexto actual como dict, omitiendo claves vacías."""
    return {key: val for key, var in _CTX_KEYS if (val := var.get())}


def clear_context() -> None:
    """
    Limpia el contexto al final del request.

    Evita "filtración de contexto" entre requests en workers reutilizados.
    """
    for _, var in _CTX_KEYS:
        var.set("")
