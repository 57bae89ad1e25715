"""
===============================================================================
MÓDULO: Logger estructurado (JSON) para eventos de seguridad
===============================================================================

Objetivo
--------
Loguear de forma parseable (JSON), correlacionable (request_id / actor_id /
client_ip) y segura: el core maneja claves, peppers y passwords, así que la
redacción no es opcional.

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componente:
  JSONFormatter + setup_logger()

Responsabilidades:
  - Formatear logs como JSON
  - Enriquecer con contexto (context.get_context_dict)
  - Redactar campos sensibles (por nombre exacto o fragmento) y limitar tamaños

Colaboradores:
  - security_core/context.py (ContextVars)
  - crosscutting/config.py (nivel y formato)
===============================================================================
"""

from __future__ import annotations

import json
import logging
import os
import sys
import traceback
from datetime import datetime, timezone
from typing import Any

from pydantic import SecretStr

# Atributos propios del LogRecord: no se copian como "extra".
_RESERVED_RECORD_KEYS: frozenset[str] = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime", "taskName"}

_REDACTED = "***REDACTED***"


class _Redactor:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Clase:
      _Redactor

    Responsabilidades:
      - Redactar claves sensibles (exactas y por fragmento: "*_key", "*pepper*")
      - Nunca volcar SecretStr ni bytes
      - Recortar strings y estructuras profundas

    Colaboradores:
      - JSONFormatter
    ----------------------------------------------------------------------------
    """

    SENSITIVE_KEYS = {
        "authorization",
        "cookie",
        "set-cookie",
        "x-api-key",
        "plaintext",
        "ciphertext",
    }

    # Fragmentos: cualquier clave que los contenga se redacta.
    SENSITIVE_FRAGMENTS = (
        "password",
        "passwd",
        "pepper",
        "secret",
        "token",
        "encryption_key",
        "signing_key",
        "private_key",
        "credential",
        "webhook",
    )

    def __init__(self, max_str: int = 4_000, max_depth: int = 4):
        self._max_str = max_str
        self._max_depth = max_depth

    def is_sensitive(self, key: str) -> bool:
        lowered = key.lower()
        if lowered in self.SENSITIVE_KEYS:
            return True
        return any(fragment in lowered for fragment in self.SENSITIVE_FRAGMENTS)

    def sanitize(self, value: Any, *, depth: int = 0, key: str | None = None) -> Any:
        if key and self.is_sensitive(key):
            return _REDACTED

        if isinstance(value, SecretStr):
            return _REDACTED

        if depth > self._max_depth:
            return "***TRUNCATED***"

        if isinstance(value, str):
            if len(value) <= self._max_str:
                return value
            return value[: self._max_str] + "…(truncated)"

        if isinstance(value, (bytes, bytearray)):
            return f"<bytes {len(value)}B>"

        if isinstance(value, dict):
            return {
                str(k): self.sanitize(v, depth=depth + 1, key=str(k))
                for k, v in value.items()
            }

        if isinstance(value, (list, tuple, set, frozenset)):
            return [self.sanitize(v, depth=depth + 1, key=key) for v in value]

        if isinstance(value, (int, float, bool)) or value is None:
            return value

        return str(value)


class JSONFormatter(logging.Formatter):
    """LogRecord -> JSON de una línea, con contexto de request y stacktrace."""

    def __init__(self):
        super().__init__()
        self._redactor = _Redactor()

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "pid": os.getpid(),
        }

        from ..context import get_context_dict

        payload.update(get_context_dict())

        for k, v in record.__dict__.items():
            if k in _RESERVED_RECORD_KEYS:
                continue
            payload[k] = self._redactor.sanitize(v, key=k)

        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stacktrace": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(
            payload, ensure_ascii=False, default=str, separators=(",", ":")
        )


def setup_logger(name: str = "security-core") -> logging.Logger:
    """
    Crea y configura el logger global.

    - Evita duplicar handlers en reimport
    - Respeta log_level / log_json de Settings cuando se pueden cargar
    """
    log = logging.getLogger(name)

    level = "INFO"
    use_json = True

    # R: Settings inválidos no deben impedir loguear el error que los reporta.
    try:
        from .config import get_settings

        s = get_settings()
        level = (s.log_level or "INFO").upper()
        use_json = s.log_json
    except ValueError:
        pass

    log.setLevel(getattr(logging, level, logging.INFO))

    if not log.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            JSONFormatter()
            if use_json
            else logging.Formatter("%(levelname)s %(name)s %(message)s")
        )
        log.addHandler(handler)

    return log


logger = setup_logger()
