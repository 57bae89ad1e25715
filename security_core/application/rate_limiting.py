"""
===============================================================================
SERVICE: Rate Limiting (fixed window, atomic store)
===============================================================================

Name:
    Rate Limiting Service

Qué es:
    Contador de ventana fija por identifier ("login:203.0.113.7",
    "redeem:user-42", ...). Cada llamada admite-e-incrementa en UNA operación
    atómica del store; no hay read-then-write en esta capa.

Why:
    - Fuerza bruta sobre login/MFA/códigos de canje.
    - Spam en formularios públicos y telemetría.

Arquitectura:
    - Capa: Application (policy/service)
    - Storage: RateLimitStore (memory / Postgres / Redis)

-------------------------------------------------------------------------------
CRC CARD
-------------------------------------------------------------------------------
Component: RateLimiter
Responsibilities:
  - check_and_increment con FailurePolicy explícita por llamada
  - Políticas por clase de operación (login, mfa, redeem, contact, telemetry)
  - reset explícito tras una operación sensible exitosa
Collaborators:
  - domain.repositories.RateLimitStore
  - domain.rate_limit (RateLimitPolicy, RateLimitResult, FailurePolicy)
===============================================================================
"""

from __future__ import annotations

import time
from typing import Any, Callable, Mapping

from ..crosscutting.exceptions import ConfigurationError, StorageError, ValidationError
from ..crosscutting.logger import logger
from ..domain.rate_limit import (
    DEFAULT_RATE_LIMIT_POLICIES,
    FailurePolicy,
    OperationClass,
    RateLimitPolicy,
    RateLimitResult,
)
from ..domain.repositories import RateLimitStore

MsClock = Callable[[], int]


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _is_positive_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def build_policies(
    overrides: Mapping[str, Mapping[str, Any]] | None = None,
) -> dict[OperationClass, RateLimitPolicy]:
    """
    Defaults + overrides de configuración.

    overrides: {"login": {"limit": 10, "window_ms": 600000, "failure_policy": "open"}}
    Campos omitidos conservan el default de la clase.
    """
    policies = dict(DEFAULT_RATE_LIMIT_POLICIES)
    for name, raw in (overrides or {}).items():
        try:
            op = OperationClass(name)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown rate limit operation class: {name}") from exc
        if not isinstance(raw, Mapping):
            raise ConfigurationError(f"Rate limit policy for {name} must be an object")

        base = policies[op]
        try:
            policies[op] = RateLimitPolicy(
                limit=int(raw.get("limit", base.limit)),
                window_ms=int(raw.get("window_ms", base.window_ms)),
                failure_policy=FailurePolicy(
                    raw.get("failure_policy", base.failure_policy.value)
                ),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(
                f"Invalid rate limit policy for {name}: {exc}"
            ) from exc
    return policies


class RateLimiter:
    """
    Uso típico:
        result = limiter.check_operation(OperationClass.LOGIN, client_ip)
        if not result.allowed:
            raise rate_limited(result.retry_after_seconds)
        ...
        limiter.reset_operation(OperationClass.LOGIN, client_ip)  # login OK
    """

    def __init__(
        self,
        store: RateLimitStore,
        policies: Mapping[OperationClass, RateLimitPolicy] | None = None,
        *,
        clock: MsClock | None = None,
    ) -> None:
        self._store = store
        self._policies = dict(policies or DEFAULT_RATE_LIMIT_POLICIES)
        self._clock = clock or _now_ms

    def policy_for(self, operation: OperationClass | str) -> RateLimitPolicy:
        try:
            return self._policies[OperationClass(operation)]
        except (KeyError, ValueError) as exc:
            raise ValidationError(f"Unknown rate limit operation class: {operation}") from exc

    def check_and_increment(
        self,
        identifier: str,
        limit: int,
        window_ms: int,
        *,
        failure_policy: FailurePolicy,
    ) -> RateLimitResult:
        if not isinstance(identifier, str) or not identifier.strip():
            raise ValidationError("identifier is required")
        if not _is_positive_int(limit):
            raise ValidationError("limit must be a positive integer")
        if not _is_positive_int(window_ms):
            raise ValidationError("window_ms must be a positive integer")
        failure_policy = FailurePolicy(failure_policy)

        now_ms = self._clock()
        try:
            counter = self._store.increment(
                identifier, limit=limit, window_ms=window_ms, now_ms=now_ms
            )
        except StorageError as exc:
            return self._degraded(identifier, limit, window_ms, failure_policy, exc)

        reset_in_ms = max(0, counter.window_start_ms + window_ms - now_ms)
        if not counter.admitted:
            logger.warning(
                "Rate limit exceeded",
                extra={
                    "identifier": identifier,
                    "limit": limit,
                    "count": counter.count,
                    "reset_in_ms": reset_in_ms,
                },
            )
            return RateLimitResult(
                allowed=False, remaining=0, reset_in_ms=reset_in_ms, limit=limit
            )

        return RateLimitResult(
            allowed=True,
            remaining=max(0, limit - counter.count),
            reset_in_ms=reset_in_ms,
            limit=limit,
        )

    def _degraded(
        self,
        identifier: str,
        limit: int,
        window_ms: int,
        failure_policy: FailurePolicy,
        exc: StorageError,
    ) -> RateLimitResult:
        allowed = failure_policy is FailurePolicy.FAIL_OPEN
        logger.error(
            "Rate limit store unavailable, applying failure policy",
            extra={
                "identifier": identifier,
                "failure_policy": failure_policy.value,
                "allowed": allowed,
                "error_id": exc.error_id,
            },
        )
        return RateLimitResult(
            allowed=allowed,
            remaining=limit if allowed else 0,
            reset_in_ms=window_ms,
            limit=limit,
            degraded=True,
        )

    def check_operation(
        self, operation: OperationClass | str, subject: str
    ) -> RateLimitResult:
        """Aplica la política configurada de la clase (identifier = "{op}:{subject}")."""
        policy = self.policy_for(operation)
        if not isinstance(subject, str) or not subject.strip():
            raise ValidationError("subject is required")
        op = OperationClass(operation)
        return self.check_and_increment(
            f"{op.value}:{subject}",
            policy.limit,
            policy.window_ms,
            failure_policy=policy.failure_policy,
        )

    def reset(self, identifier: str) -> None:
        if not isinstance(identifier, str) or not identifier.strip():
            raise ValidationError("identifier is required")
        self._store.reset(identifier)

    def reset_operation(self, operation: OperationClass | str, subject: str) -> None:
        self.policy_for(operation)
        self.reset(f"{OperationClass(operation).value}:{subject}")
