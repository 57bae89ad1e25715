"""Redis adapters (redis-py)."""

from .rate_limit import RedisRateLimitStore

__all__ = ["RedisRateLimitStore"]
