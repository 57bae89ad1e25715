"""
============================================================
TARJETA CRC — infrastructure/repositories/redis/rate_limit.py
============================================================
Class: RedisRateLimitStore

Responsibilities:
  - Contadores de ventana fija en Redis (hash {start, count} por identifier).
  - Admitir-e-incrementar atómicamente con un script Lua (Redis ejecuta
    scripts de forma serial: no hay read-then-write entre procesos).
  - TTL nativo (PEXPIRE) = largo de la ventana: entradas vencidas desaparecen.

Collaborators:
  - redis-py (Redis.register_script)
  - crosscutting.exceptions.StorageError

Notes:
  - Errores de Redis NO se silencian: se levantan como StorageError y el
    RateLimiter aplica la FailurePolicy explícita del caller.
============================================================
"""

from __future__ import annotations

from redis import Redis
from redis.exceptions import RedisError

from ....crosscutting.exceptions import StorageError
from ....crosscutting.logger import logger
from ....domain.rate_limit import RateLimitCounter

# KEYS[1] = key ; ARGV = now_ms, window_ms, limit
# Devuelve {admitted(0|1), window_start_ms, count}
_ADMIT_SCRIPT = """
local data = redis.call('HMGET', KEYS[1], 'start', 'count')
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local start = tonumber(data[1])
local count = tonumber(data[2])

if (not start) or (now - start >= window) then
  redis.call('HSET', KEYS[1], 'start', now, 'count', 1)
  redis.call('PEXPIRE', KEYS[1], window)
  return {1, now, 1}
end

if count < limit then
  count = redis.call('HINCRBY', KEYS[1], 'count', 1)
  return {1, start, count}
end

return {0, start, count}
"""


class RedisRateLimitStore:
    KEY_PREFIX = "security:ratelimit:"

    def __init__(self, client: Redis):
        self._client = client
        self._admit = client.register_script(_ADMIT_SCRIPT)

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisRateLimitStore":
        if not redis_url:
            raise ValueError("redis_url is required")
        return cls(Redis.from_url(redis_url))

    def _k(self, identifier: str) -> str:
        return f"{self.KEY_PREFIX}{identifier}"

    def increment(
        self, identifier: str, *, limit: int, window_ms: int, now_ms: int
    ) -> RateLimitCounter:
        try:
            admitted, window_start_ms, count = self._admit(
                keys=[self._k(identifier)],
                args=[int(now_ms), int(window_ms), int(limit)],
            )
        except RedisError as exc:
            logger.exception(
                "RedisRateLimitStore: increment failed",
                extra={"identifier": identifier, "error": str(exc)},
            )
            raise StorageError(f"Rate limit increment failed: {exc}") from exc

        return RateLimitCounter(
            admitted=bool(int(admitted)),
            count=int(count),
            window_start_ms=int(window_start_ms),
        )

    def reset(self, identifier: str) -> None:
        try:
            self._client.delete(self._k(identifier))
        except RedisError as exc:
            logger.exception(
                "RedisRateLimitStore: reset failed",
                extra={"identifier": identifier, "error": str(exc)},
            )
            raise StorageError(f"Rate limit reset failed: {exc}") from exc
