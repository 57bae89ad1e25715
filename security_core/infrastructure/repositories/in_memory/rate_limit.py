# =============================================================================
# FILE: infrastructure/repositories/in_memory/rate_limit.py
# =============================================================================
"""
In-memory fixed-window rate limit store.

Thread-safe (un único Lock hace de punto de serialización) pero local al
proceso: sólo para tests y desarrollo. En producción usar Postgres o Redis.
"""

from __future__ import annotations

import threading

from ....domain.rate_limit import RateLimitCounter


class InMemoryRateLimitStore:
    """RateLimitStore en memoria: identifier -> (window_start_ms, count)."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[int, int]] = {}
        self._lock = threading.Lock()

    def increment(
        self, identifier: str, *, limit: int, window_ms: int, now_ms: int
    ) -> RateLimitCounter:
        with self._lock:
            entry = self._entries.get(identifier)

            if entry is None or now_ms - entry[0] >= window_ms:
                self._entries[identifier] = (now_ms, 1)
                return RateLimitCounter(admitted=True, count=1, window_start_ms=now_ms)

            window_start_ms, count = entry
            if count < limit:
                self._entries[identifier] = (window_start_ms, count + 1)
                return RateLimitCounter(
                    admitted=True, count=count + 1, window_start_ms=window_start_ms
                )

            return RateLimitCounter(
                admitted=False, count=count, window_start_ms=window_start_ms
            )

    def reset(self, identifier: str) -> None:
        with self._lock:
            self._entries.pop(identifier, None)

    def prune_expired(self, *, now_ms: int, window_ms: int) -> int:
        """Borra ventanas vencidas (mantenimiento opcional)."""
        with self._lock:
            expired = [
                key
                for key, (start, _) in self._entries.items()
                if now_ms - start >= window_ms
            ]
            for key in expired:
                del self._entries[key]
            return len(expired)
