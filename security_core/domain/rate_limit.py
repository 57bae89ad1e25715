"""
===============================================================================
TARJETA CRC — domain/rate_limit.py
===============================================================================

Responsabilidades:
  - Value objects del rate limiting de ventana fija.
  - Política explícita ante falla del store (FAIL_CLOSED / FAIL_OPEN).
  - Políticas por defecto por clase de operación (login, mfa, redeem, ...).

Colaboradores:
  - application.rate_limiting.RateLimiter
  - domain.repositories.RateLimitStore
===============================================================================
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Final, Mapping

_MINUTE_MS: Final[int] = 60_000


class FailurePolicy(str, Enum):
    """Qué hacer si el store no responde. Siempre explícito en cada llamada."""

    FAIL_CLOSED = "closed"
    FAIL_OPEN = "open"


class OperationClass(str, Enum):
    LOGIN = "login"
    MFA = "mfa"
    REDEEM = "redeem"
    CONTACT = "contact"
    TELEMETRY = "telemetry"


@dataclass(frozen=True, slots=True)
class RateLimitPolicy:
    limit: int
    window_ms: int
    failure_policy: FailurePolicy = FailurePolicy.FAIL_CLOSED

    def __post_init__(self) -> None:
        if self.limit <= 0:
            raise ValueError("limit must be > 0")
        if self.window_ms <= 0:
            raise ValueError("window_ms must be > 0")


DEFAULT_RATE_LIMIT_POLICIES: Mapping[OperationClass, RateLimitPolicy] = {
    OperationClass.LOGIN: RateLimitPolicy(5, 15 * _MINUTE_MS),
    OperationClass.MFA: RateLimitPolicy(5, 5 * _MINUTE_MS),
    OperationClass.REDEEM: RateLimitPolicy(10, 15 * _MINUTE_MS),
    OperationClass.CONTACT: RateLimitPolicy(3, 60 * _MINUTE_MS),
    OperationClass.TELEMETRY: RateLimitPolicy(
        60, _MINUTE_MS, failure_policy=FailurePolicy.FAIL_OPEN
    ),
}


@dataclass(frozen=True, slots=True)
class RateLimitCounter:
    """Estado devuelto por el store tras el incremento atómico."""

    admitted: bool
    count: int
    window_start_ms: int


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    """
    Resultado de check_and_increment.

    allowed=False es un resultado esperado (no excepción).
    degraded=True indica que se aplicó la FailurePolicy por falla del store.
    """

    allowed: bool
    remaining: int
    reset_in_ms: int
    limit: int
    degraded: bool = False

    @property
    def retry_after_seconds(self) -> int:
        return max(1, math.ceil(self.reset_in_ms / 1000))
