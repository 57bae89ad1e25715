"""
===============================================================================
MÓDULO: Respuestas de error estándar (RFC 7807 / Problem Details)
===============================================================================

Objetivo
--------
Que todo error HTTP del core salga como application/problem+json con un
"code" estable, para que el caller distinga denegado / inválido / rate limited
/ error de infraestructura.

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componente:
  AppHTTPException + handlers

Responsabilidades:
  - Catálogo de códigos de error (ErrorCode)
  - Payload RFC7807 (ErrorDetail)
  - Factories de errores frecuentes
  - Handlers FastAPI

Colaboradores:
  - crosscutting/middleware.py (request_id)
  - interfaces/api/http/error_mapping.py (errores internos -> HTTP)
===============================================================================
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorCode(str, Enum):
    # 4xx
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMITED = "RATE_LIMITED"

    # 5xx
    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    DECRYPTION_ERROR = "DECRYPTION_ERROR"


class ErrorDetail(BaseModel):
    """
    Modelo RFC 7807 (Problem Details).

    Campos extra:
    - code: error code estable para clientes
    - errors: detalles opcionales (request_id, error_id, campos)
    """

    type: str = "about:blank"
    title: str
    status: int
    detail: str
    code: ErrorCode
    instance: str | None = None
    errors: list[dict[str, Any]] | None = None


PROBLEM_JSON_MEDIA_TYPE = "application/problem+json"

_OPENAPI_ERROR_CONTENT = {
    PROBLEM_JSON_MEDIA_TYPE: {"schema": {"$ref": "#/components/schemas/ErrorDetail"}}
}


def _problem(description: str) -> dict[str, Any]:
    return {
        "description": f"{description} (RFC7807)",
        "model": ErrorDetail,
        "content": _OPENAPI_ERROR_CONTENT,
    }


OPENAPI_ERROR_RESPONSES = {
    "401": _problem("Unauthorized"),
    "403": _problem("Forbidden"),
    "404": _problem("Not Found"),
    "422": _problem("Validation Error"),
    "429": _problem("Too Many Requests"),
    "500": _problem("Internal Server Error"),
    "503": _problem("Service Unavailable"),
}


class AppHTTPException(HTTPException):
    """HTTPException con ErrorCode estable y errors[] opcional."""

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        detail: str,
        errors: list[dict[str, Any]] | None = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.code = code
        self.errors = errors


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------
def validation_error(
    detail: str, errors: list[dict[str, Any]] | None = None
) -> AppHTTPException:
    return AppHTTPException(422, ErrorCode.VALIDATION_ERROR, detail, errors)


def not_found(resource: str, identifier: str) -> AppHTTPException:
    return AppHTTPException(
        404, ErrorCode.NOT_FOUND, f"{resource} '{identifier}' no encontrado"
    )


def unauthorized(detail: str = "Autenticación requerida") -> AppHTTPException:
    return AppHTTPException(401, ErrorCode.UNAUTHORIZED, detail)


def forbidden(detail: str = "Acceso denegado") -> AppHTTPException:
    return AppHTTPException(403, ErrorCode.FORBIDDEN, detail)


def rate_limited(retry_after: int = 60) -> AppHTTPException:
    retry_after = max(1, int(retry_after))
    return AppHTTPException(
        429,
        ErrorCode.RATE_LIMITED,
        f"Demasiadas solicitudes. Reintentá en {retry_after}s",
        headers={"Retry-After": str(retry_after)},
    )


def database_error(
    detail: str = "Falla en operación de almacenamiento",
) -> AppHTTPException:
    return AppHTTPException(503, ErrorCode.DATABASE_ERROR, detail)


def configuration_error(
    detail: str = "Configuración de seguridad incompleta",
) -> AppHTTPException:
    return AppHTTPException(503, ErrorCode.CONFIGURATION_ERROR, detail)


def decryption_error(detail: str = "No se pudo descifrar el dato") -> AppHTTPException:
    return AppHTTPException(500, ErrorCode.DECRYPTION_ERROR, detail)


# ---------------------------------------------------------------------------
# Handlers FastAPI
# ---------------------------------------------------------------------------
def _request_id_from(request: Request) -> str | None:
    return getattr(getattr(request, "state", None), "request_id", None)


async def app_exception_handler(
    request: Request, exc: AppHTTPException
) -> JSONResponse:
    """Handler para AppHTTPException (propaga Retry-After y similares)."""
    request_id = _request_id_from(request)

    errors = exc.errors or []
    if request_id:
        errors = [*errors, {"request_id": request_id}]

    error = ErrorDetail(
        type=f"about:blank/{exc.code.value.lower()}",
        title=exc.code.value.replace("_", " ").title(),
        status=exc.status_code,
        detail=str(exc.detail),
        code=exc.code,
        instance=str(request.url),
        errors=errors or None,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error.model_dump(mode="json", exclude_none=True),
        headers=getattr(exc, "headers", None),
        media_type=PROBLEM_JSON_MEDIA_TYPE,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback para excepciones no manejadas (no expone internos)."""
    request_id = _request_id_from(request)

    error = ErrorDetail(
        type="about:blank/internal_error",
        title="Internal Server Error",
        status=500,
        detail="Ocurrió un error inesperado",
        code=ErrorCode.INTERNAL_ERROR,
        instance=str(request.url),
        errors=[{"request_id": request_id}] if request_id else None,
    )
    return JSONResponse(
        status_code=500,
        content=error.model_dump(mode="json", exclude_none=True),
        media_type=PROBLEM_JSON_MEDIA_TYPE,
    )
