"""security_core.infrastructure.services.retry

Name: Retry Helper for outbound webhooks (tenacity)

Qué es
------
Resiliencia para llamadas HTTP salientes (canales de alertas):
  - Clasificación transient (reintentar) vs permanent (fail-fast)
  - Decorator de `tenacity` con exponential backoff + jitter
  - Log estructurado de cada reintento

CRC (Component Card)
--------------------
Component: retry helper
Responsibilities:
  - Decidir qué errores de httpx son reintentables
  - Proveer un decorator estándar con attempts/delays explícitos
Collaborators:
  - tenacity (motor de retry)
  - httpx (tipos de error)
  - crosscutting.logger
Constraints:
  - Reintentar SOLO 408/429/5xx, timeouts y errores de transporte
  - Nunca reintentar 4xx permanentes (webhook mal configurado)
"""

from __future__ import annotations

from typing import Callable, TypeVar

import httpx
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from ...crosscutting.logger import logger

T = TypeVar("T")

# R: HTTP status codes que indican fallas transitorias (reintentables)
TRANSIENT_HTTP_CODES: frozenset[int] = frozenset({408, 425, 429, 500, 502, 503, 504})


def is_transient_error(exception: BaseException) -> bool:
    """R: True si vale la pena reintentar.

    Reglas (en orden):
      1) httpx.HTTPStatusError: según status code.
      2) httpx.TransportError (timeouts, conexión, protocolo): True.
      3) Built-ins de red (TimeoutError, ConnectionError): True.
      4) Default: False.
    """
    if isinstance(exception, httpx.HTTPStatusError):
        return exception.response.status_code in TRANSIENT_HTTP_CODES

    if isinstance(exception, httpx.TransportError):
        return True

    return isinstance(exception, (TimeoutError, ConnectionError))


def _log_retry(retry_state: RetryCallState) -> None:
    """R: before_sleep: un warning por intento fallido."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    wait_time = retry_state.next_action.sleep if retry_state.next_action else 0

    logger.warning(
        "Retrying outbound call",
        extra={
            "function": getattr(retry_state.fn, "__name__", "unknown"),
            "attempt": retry_state.attempt_number,
            "wait_seconds": round(float(wait_time), 2),
            "error": str(exc) if exc else None,
            "error_type": type(exc).__name__ if exc else None,
        },
    )


def create_retry_decorator(
    max_attempts: int,
    base_delay: float,
    max_delay: float,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """R: Decorator tenacity con backoff exponencial + jitter; re-lanza el último error."""
    if max_attempts <= 0:
        raise ValueError("max_attempts must be > 0")
    if base_delay < 0:
        raise ValueError("base_delay must be >= 0")
    if max_delay <= 0:
        raise ValueError("max_delay must be > 0")

    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential_jitter(
            initial=base_delay, max=max_delay, jitter=base_delay
        ),
        retry=retry_if_exception(is_transient_error),
        before_sleep=_log_retry,
        reraise=True,
    )
