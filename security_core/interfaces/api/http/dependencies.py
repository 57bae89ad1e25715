"""
===============================================================================
TARJETA CRC — dependencies.py (Dependencias FastAPI del core)
===============================================================================

Responsabilidades:
  - Resolver la fachada SecurityCore (container).
  - Leer el SessionPrincipal que deja la capa de sesión externa en
    request.state.principal (el core NO autentica).
  - Construir NetworkOrigin desde el transporte (IP del peer, User-Agent).
  - PermissionCache por request y guardia require_permission(code).

Colaboradores:
  - container.get_security_core
  - application.permissions.PermissionCache
  - crosscutting.error_responses (401)
  - security_core.context (actor / IP para logs)
===============================================================================
"""

from __future__ import annotations

from typing import Callable

from fastapi import Depends, Request

from ....application.permissions import PermissionCache
from ....container import get_security_core
from ....context import set_security_context
from ....crosscutting.error_responses import unauthorized
from ....domain.identity import NetworkOrigin, SessionPrincipal
from ....facade import SecurityCore

_MAX_USER_AGENT_LEN = 512


def get_core() -> SecurityCore:
    return get_security_core()


def get_network_origin(request: Request) -> NetworkOrigin:
    """IP del peer directo (proxies confiables se resuelven antes, en el ASGI server)."""
    ip = request.client.host if request.client else None
    user_agent = (request.headers.get("user-agent") or "")[:_MAX_USER_AGENT_LEN] or None
    return NetworkOrigin(ip_address=ip, user_agent=user_agent)


def get_optional_principal(
    request: Request, origin: NetworkOrigin = Depends(get_network_origin)
) -> SessionPrincipal | None:
    principal = getattr(request.state, "principal", None)
    if not isinstance(principal, SessionPrincipal):
        principal = None
    set_security_context(
        actor_id=principal.user_id if principal else "",
        client_ip=origin.ip_address or "",
    )
    return principal


def require_session(
    principal: SessionPrincipal | None = Depends(get_optional_principal),
) -> SessionPrincipal:
    if principal is None:
        raise unauthorized()
    return principal


def get_permission_cache() -> PermissionCache:
    # R: FastAPI cachea la dependencia por request => un memo por request.
    return PermissionCache()


def require_permission(code: str) -> Callable[..., SessionPrincipal]:
    """Dependency factory: sesión + permiso `code` (ForbiddenError si falta)."""

    def dependency(
        principal: SessionPrincipal = Depends(require_session),
        core: SecurityCore = Depends(get_core),
        cache: PermissionCache = Depends(get_permission_cache),
    ) -> SessionPrincipal:
        core.permissions.require(principal, code, cache=cache)
        return principal

    return dependency
