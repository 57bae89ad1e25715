"""
Infrastructure Services (Infrastructure Layer)

Barrel del paquete: cifrado de campos, canales de alerta y retry.

CRC (Component Card)
--------------------
Component: infrastructure.services (Facade)
Responsibilities:
  - Publicar imports canónicos para container.py y tests
Collaborators:
  - cryptography, httpx, tenacity
"""

from .alert_channels import (
    WebhookChannel,
    build_channels,
    build_custom_payload,
    build_discord_payload,
    build_slack_payload,
    build_teams_payload,
    custom_headers,
    email_payload_builder,
)
from .field_encryption import (
    AesGcmFieldEncryption,
    EncryptedField,
    normalize_lookup_value,
)
from .retry import TRANSIENT_HTTP_CODES, create_retry_decorator, is_transient_error

__all__ = [
    "AesGcmFieldEncryption",
    "EncryptedField",
    "normalize_lookup_value",
    "WebhookChannel",
    "build_channels",
    "build_custom_payload",
    "build_discord_payload",
    "build_slack_payload",
    "build_teams_payload",
    "custom_headers",
    "email_payload_builder",
    "TRANSIENT_HTTP_CODES",
    "create_retry_decorator",
    "is_transient_error",
]
