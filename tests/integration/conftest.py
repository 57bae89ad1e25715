"""
Name: Integration Test Configuration

Responsibilities:
  - Provide a Postgres pool with the core schema, cleaned per test
  - Provide a Redis client on a scratch key prefix

Notes:
  - Test modules skip themselves unless RUN_INTEGRATION=1
  - DATABASE_URL / REDIS_URL must point at disposable instances
"""

import os

import pytest
from psycopg_pool import ConnectionPool
from redis import Redis

from security_core.infrastructure.db.schema import ensure_schema

_TABLES = ("audit_logs", "permission_overrides", "rate_limits", "users")


@pytest.fixture(scope="session")
def pg_pool():
    url = os.getenv("DATABASE_URL")
    if not url:
        pytest.skip("DATABASE_URL not set")
    pool = ConnectionPool(conninfo=url, min_size=1, max_size=10, open=True)
    ensure_schema(pool)
    yield pool
    pool.close()


@pytest.fixture
def pg(pg_pool):
    with pg_pool.connection() as conn:
        conn.execute(f"TRUNCATE {', '.join(_TABLES)} RESTART IDENTITY")
        conn.execute(
            "INSERT INTO users (id, role) VALUES "
            "('super-1', 'SUPERADMIN'), ('admin-1', 'ADMIN'), ('user-1', 'USER')"
        )
    return pg_pool


@pytest.fixture
def redis_client():
    url = os.getenv("REDIS_URL")
    if not url:
        pytest.skip("REDIS_URL not set")
    client = Redis.from_url(url)
    yield client
    for key in client.scan_iter("security:ratelimit:it-*"):
        client.delete(key)
    client.close()
