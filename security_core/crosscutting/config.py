"""
Name: Security Core Configuration (Settings)

Responsibilities:
  - Centralized, typed configuration using pydantic-settings
  - Hold key material (encryption key, pepper, audit signing key) as SecretStr
  - Select storage backends (memory / postgres / redis)
  - Expose per-operation rate-limit overrides and alert channel destinations

Collaborators:
  - container.py: builds stores, services and the facade from these values
  - crosscutting/logger.py: log_level / log_json
  - infrastructure/services/retry.py: retry attempts and delays

Constraints:
  - No business logic, pure configuration
  - Secrets are NOT validated here: absence is fatal at first use
    (CryptoVault / audit sealer), not at startup

Notes:
  - Singleton via lru_cache
  - RATE_LIMIT_POLICIES is a JSON object: {"login": {"limit": 5, "window_ms": 900000}}
"""

import json
from functools import lru_cache

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_BACKENDS = {"memory", "postgres"}
_RATE_LIMIT_BACKENDS = {"memory", "postgres", "redis"}


class Settings(BaseSettings):
    """
    Settings loaded from environment variables.

    Attributes:
        app_env: development | test | production
        storage_backend: memory | postgres (overrides, audit log, user roles)
        rate_limit_backend: memory | postgres | redis
        rate_limit_policies: JSON overrides per operation class
        encryption_key: AES key material (>= 32 chars)
        previous_encryption_keys: Comma-separated retired keys (decrypt only)
        password_pepper: Server-side secret mixed into passwords
        audit_signing_key: HMAC key for the audit hash chain
        audit_metadata_max_bytes: Max serialized metadata size (default: 2000)
        *_security_webhook: Alert channel destinations (empty = disabled)
        security_alert_timeout_seconds: Per-channel HTTP timeout
    """

    # Environment
    app_env: str = "development"

    # Database
    database_url: str = ""
    db_pool_min_size: int = 1
    db_pool_max_size: int = 10
    db_statement_timeout_ms: int = 5000

    # Redis (rate limit backend)
    redis_url: str = ""

    # Backends
    storage_backend: str = "memory"
    rate_limit_backend: str = "memory"

    # Rate limiting
    rate_limit_policies: str = ""

    # Key material
    encryption_key: SecretStr = SecretStr("")
    previous_encryption_keys: SecretStr = SecretStr("")
    password_pepper: SecretStr = SecretStr("")
    audit_signing_key: SecretStr = SecretStr("")

    # Audit
    audit_metadata_max_bytes: int = 2000
    audit_query_max_limit: int = 100
    audit_retention_days: int = 90

    # Security alerts
    discord_security_webhook: str = ""
    slack_security_webhook: str = ""
    teams_security_webhook: str = ""
    custom_security_webhook: str = ""
    email_alert_endpoint: str = ""
    security_email: str = "security@localhost"
    security_alert_timeout_seconds: float = 5.0

    # Retry/Resilience (outbound webhooks)
    retry_max_attempts: int = 2
    retry_base_delay_seconds: float = 0.5
    retry_max_delay_seconds: float = 5.0

    # Background (fire-and-forget) work
    background_max_workers: int = 4

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    @field_validator("storage_backend")
    @classmethod
    def storage_backend_valid(cls, v: str) -> str:
        value = (v or "memory").strip().lower()
        if value not in _BACKENDS:
            raise ValueError("storage_backend must be memory or postgres")
        return value

    @field_validator("rate_limit_backend")
    @classmethod
    def rate_limit_backend_valid(cls, v: str) -> str:
        value = (v or "memory").strip().lower()
        if value not in _RATE_LIMIT_BACKENDS:
            raise ValueError("rate_limit_backend must be memory, postgres, or redis")
        return value

    @field_validator("rate_limit_policies")
    @classmethod
    def rate_limit_policies_valid(cls, v: str) -> str:
        if not (v or "").strip():
            return ""
        try:
            payload = json.loads(v)
        except json.JSONDecodeError as exc:
            raise ValueError(f"rate_limit_policies must be valid JSON: {exc}")
        if not isinstance(payload, dict):
            raise ValueError("rate_limit_policies must be a JSON object")
        return v

    @field_validator("audit_metadata_max_bytes", "audit_query_max_limit")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be greater than 0")
        return v

    @model_validator(mode="after")
    def validate_backend_requirements(self):
        needs_db = "postgres" in {self.storage_backend, self.rate_limit_backend}
        if needs_db and not self.database_url:
            raise ValueError("DATABASE_URL is required for the postgres backend")
        if self.rate_limit_backend == "redis" and not self.redis_url:
            raise ValueError("REDIS_URL is required for the redis rate limit backend")
        return self

    @model_validator(mode="after")
    def validate_production_requirements(self):
        if not self.is_production():
            return self
        # R: un contador por proceso no es compartido entre instancias.
        if self.rate_limit_backend == "memory":
            raise ValueError("RATE_LIMIT_BACKEND=memory is not allowed in production")
        if self.storage_backend == "memory":
            raise ValueError("STORAGE_BACKEND=memory is not allowed in production")
        return self

    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"

    def get_previous_encryption_keys_list(self) -> list[str]:
        raw = self.previous_encryption_keys.get_secret_value()
        return [k.strip() for k in raw.split(",") if k.strip()]

    def get_rate_limit_policy_overrides(self) -> dict[str, dict]:
        if not self.rate_limit_policies.strip():
            return {}
        return json.loads(self.rate_limit_policies)

    def get_alert_destinations(self) -> dict[str, str]:
        """Canales con destino configurado (los vacíos se omiten)."""
        destinations = {
            "discord": self.discord_security_webhook,
            "slack": self.slack_security_webhook,
            "teams": self.teams_security_webhook,
            "custom": self.custom_security_webhook,
            "email": self.email_alert_endpoint,
        }
        return {name: url.strip() for name, url in destinations.items() if url.strip()}

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get singleton Settings instance.

    Raises:
        ValidationError: If env vars are missing or invalid
    """
    return Settings()
