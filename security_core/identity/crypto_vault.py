"""
===============================================================================
TARJETA CRC — identity/crypto_vault.py
===============================================================================

Módulo:
    CryptoVault (fachada criptográfica)

Responsabilidades:
    - Passwords: hash / verify / needs_rehash / verify_and_upgrade.
    - PII reversible: encrypt / decrypt / rotate (AES-256-GCM).
    - Búsqueda por igualdad: hash_for_lookup / encrypt_searchable.

Colaboradores:
    - identity.passwords.PepperedPasswordHasher
    - infrastructure.services.field_encryption.AesGcmFieldEncryption
    - crosscutting.config.Settings (material de claves, leído una vez)

Decisiones de diseño:
    - El material de claves se lee UNA vez desde Settings y nunca se loguea.
    - Clave ausente = ConfigurationError en el primer uso, no al construir.
===============================================================================
"""

from __future__ import annotations

from ..crosscutting.config import Settings
from ..infrastructure.services.field_encryption import (
    AesGcmFieldEncryption,
    EncryptedField,
)
from .passwords import PepperedPasswordHasher


class CryptoVault:
    def __init__(
        self,
        passwords: PepperedPasswordHasher,
        fields: AesGcmFieldEncryption,
    ):
        self._passwords = passwords
        self._fields = fields

    @classmethod
    def from_settings(cls, settings: Settings) -> "CryptoVault":
        return cls(
            passwords=PepperedPasswordHasher(
                settings.password_pepper.get_secret_value(),
                require_pepper=settings.is_production(),
            ),
            fields=AesGcmFieldEncryption(
                settings.encryption_key.get_secret_value(),
                previous_keys=settings.get_previous_encryption_keys_list(),
            ),
        )

    # -----------------------------------------------------------------
    # Passwords
    # -----------------------------------------------------------------
    def hash_password(self, password: str) -> str:
        return self._passwords.hash(password)

    def verify_password(self, password: str, stored_hash: str) -> bool:
        return self._passwords.verify(password, stored_hash)

    def verify_and_upgrade(
        self, password: str, stored_hash: str
    ) -> tuple[bool, str | None]:
        return self._passwords.verify_and_upgrade(password, stored_hash)

    def needs_rehash(self, stored_hash: str) -> bool:
        return self._passwords.needs_rehash(stored_hash)

    # -----------------------------------------------------------------
    # Campos cifrados
    # -----------------------------------------------------------------
    def encrypt(self, plaintext: str, *, context: str | None = None) -> str:
        return self._fields.encrypt(plaintext, context=context)

    def decrypt(self, record: str, *, context: str | None = None) -> str:
        return self._fields.decrypt(record, context=context)

    def rotate(self, record: str, *, context: str | None = None) -> str:
        return self._fields.rotate(record, context=context)

    def needs_rotation(self, record: str, *, context: str | None = None) -> bool:
        return self._fields.needs_rotation(record, context=context)

    def hash_for_lookup(self, value: str) -> str:
        return self._fields.hash_for_lookup(value)

    def lookup_candidates(self, value: str) -> list[str]:
        return self._fields.lookup_candidates(value)

    def encrypt_searchable(
        self, value: str, *, context: str | None = None
    ) -> EncryptedField:
        return self._fields.encrypt_searchable(value, context=context)
