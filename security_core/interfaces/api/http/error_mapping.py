"""
===============================================================================
TARJETA CRC — error_mapping.py (SecurityCoreError -> HTTP RFC7807)
===============================================================================

Responsabilidades:
  - Traducir la taxonomía interna a AppHTTPException (problem+json).
  - Registrar los handlers en la app FastAPI.

Reglas:
  - MalformedCiphertextError es input inválido: 422 (antes que DecryptionError).
  - DatabaseError / StorageError / ConfigurationError: 503, sin detalles internos.
  - El error_id viaja en errors[] para correlacionar con logs.

Colaboradores:
  - crosscutting.exceptions
  - crosscutting.error_responses
===============================================================================
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ....crosscutting.error_responses import (
    AppHTTPException,
    ErrorCode,
    app_exception_handler,
    configuration_error,
    database_error,
    decryption_error,
    forbidden,
    generic_exception_handler,
    validation_error,
)
from ....crosscutting.exceptions import (
    ConfigurationError,
    DecryptionError,
    ForbiddenError,
    NotFoundError,
    SecurityCoreError,
    StorageError,
    ValidationError,
)
from ....crosscutting.logger import logger


def to_http_exception(exc: SecurityCoreError) -> AppHTTPException:
    # R: MalformedCiphertextError hereda de ValidationError => 422 antes que 500.
    if isinstance(exc, ValidationError):
        http_exc = validation_error(exc.message)
    elif isinstance(exc, ForbiddenError):
        http_exc = forbidden(exc.message)
        http_exc.errors = [{"reason": exc.reason}]
    elif isinstance(exc, NotFoundError):
        http_exc = AppHTTPException(404, ErrorCode.NOT_FOUND, exc.message)
    elif isinstance(exc, ConfigurationError):
        http_exc = configuration_error()
    elif isinstance(exc, StorageError):
        http_exc = database_error()
    elif isinstance(exc, DecryptionError):
        http_exc = decryption_error()
    else:
        http_exc = AppHTTPException(
            500, ErrorCode.INTERNAL_ERROR, "Error interno del core"
        )

    http_exc.errors = [*(http_exc.errors or []), {"error_id": exc.error_id}]
    return http_exc


async def security_core_exception_handler(
    request: Request, exc: SecurityCoreError
) -> JSONResponse:
    http_exc = to_http_exception(exc)
    if http_exc.status_code >= 500:
        logger.error(
            "Security core error",
            extra={"error_code": exc.error_code, "error_id": exc.error_id},
        )
    return await app_exception_handler(request, http_exc)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppHTTPException, app_exception_handler)
    app.add_exception_handler(SecurityCoreError, security_core_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
