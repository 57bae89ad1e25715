"""
===============================================================================
MÓDULO: Excepciones tipadas del core de seguridad
===============================================================================

Objetivo
--------
Que el caller pueda distinguir sin ambigüedad:
- "denegado" (ForbiddenError / resultado allowed=False)
- "input inválido" (ValidationError)
- "error de configuración / storage / cripto" (el resto)

Cada error lleva:
- error_code estable (mapeable a HTTP)
- error_id para correlación con logs
- message "humana" (sin filtrar secretos ni plaintext)

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componente:
  SecurityCoreError + subclases

Responsabilidades:
  - Estandarizar errores internos que luego se mapean a RFC7807
  - Generar error_id para rastreo

Colaboradores:
  - interfaces/api/http/error_mapping.py
  - crosscutting/logger.py
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4


@dataclass(frozen=True)
class ErrorResponse:
    """Payload mínimo para serializar un error interno."""

    error_code: str
    message: str
    error_id: str

    def to_dict(self) -> dict:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "error_id": self.error_id,
        }


class SecurityCoreError(Exception):
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Clase:
      SecurityCoreError

    Responsabilidades:
      - Base para errores del core
      - Proveer error_code + error_id + message

    Colaboradores:
      - interfaces/api/http/error_mapping.py
    ----------------------------------------------------------------------------
    """

    error_code: str = "SECURITY_CORE_ERROR"

    def __init__(
        self,
        message: str,
        error_id: str | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.error_id = error_id or str(uuid4())
        self.original_error = original_error
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error_code=self.error_code, message=self.message, error_id=self.error_id
        )


class ValidationError(SecurityCoreError):
    """Input malformado: acción/categoría desconocida, metadata excedida, etc."""

    error_code: str = "VALIDATION_ERROR"


class ForbiddenError(SecurityCoreError):
    """Regla de autorización violada. `reason` es un código estable."""

    error_code: str = "FORBIDDEN"

    def __init__(self, message: str, *, reason: str = "forbidden", **kwargs):
        super().__init__(message, **kwargs)
        self.reason = reason


class NotFoundError(SecurityCoreError):
    error_code: str = "NOT_FOUND"


class ConfigurationError(SecurityCoreError):
    """Secreto/clave obligatoria ausente. Fatal en el primer uso."""

    error_code: str = "CONFIGURATION_ERROR"


class DecryptionError(SecurityCoreError):
    """Falló la verificación AEAD. Nunca tratar como "valor vacío"."""

    error_code: str = "DECRYPTION_ERROR"


class MalformedCiphertextError(DecryptionError, ValidationError):
    """El registro no tiene la forma iv:authTag:ciphertext (base64)."""

    error_code: str = "MALFORMED_CIPHERTEXT"


class StorageError(SecurityCoreError):
    """Backend de persistencia inalcanzable o con error (Postgres, Redis)."""

    error_code: str = "STORAGE_ERROR"


class DatabaseError(StorageError):
    """Errores de DB (conexión, query, timeout, pool)."""

    error_code: str = "DATABASE_ERROR"
