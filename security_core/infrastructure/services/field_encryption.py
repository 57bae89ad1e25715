"""
============================================================
TARJETA CRC — infrastructure/services/field_encryption.py
============================================================
Class: AesGcmFieldEncryption

Responsibilities:
  - Cifrar PII reversible con AES-256-GCM (AEAD), nonce aleatorio por llamada.
  - Formato persistido: "iv:authTag:ciphertext" (base64 estándar).
  - Hash determinístico con clave (HMAC-SHA256) del valor normalizado para
    búsquedas por igualdad sin descifrar.
  - Rotación: descifra con la clave actual o con claves anteriores, y
    rotate() re-cifra con la actual.
  - Lazy-fail: la clave se valida en el primer uso (ConfigurationError).

Collaborators:
  - cryptography (AESGCM, HKDF)
  - crosscutting.exceptions (ConfigurationError, DecryptionError,
    MalformedCiphertextError)
============================================================
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import os
import threading
import unicodedata
from dataclasses import dataclass
from typing import Sequence

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ...crosscutting.exceptions import (
    ConfigurationError,
    DecryptionError,
    MalformedCiphertextError,
)
from ...crosscutting.logger import logger

NONCE_BYTES = 12
TAG_BYTES = 16
MIN_KEY_CHARS = 32

_ENCRYPTION_INFO = b"security-core:field-encryption:v1"
_LOOKUP_INFO = b"security-core:lookup-hash:v1"


def normalize_lookup_value(value: str) -> str:
    """NFKC + strip + lower: "  Ana@Example.COM " y "ana@example.com" colisionan a propósito."""
    return unicodedata.normalize("NFKC", value).strip().lower()


def _derive(secret: str, info: bytes) -> bytes:
    return HKDF(
        algorithm=hashes.SHA256(), length=32, salt=None, info=info
    ).derive(secret.encode("utf-8"))


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


@dataclass(frozen=True, slots=True)
class EncryptedField:
    """Valor cifrado + hash de lookup, persistidos juntos."""

    ciphertext: str
    lookup_hash: str


@dataclass(frozen=True, slots=True)
class _KeyMaterial:
    cipher: AESGCM
    lookup_key: bytes


class AesGcmFieldEncryption:
    def __init__(self, key: str | None, previous_keys: Sequence[str] = ()):
        self._raw_key = (key or "").strip()
        self._raw_previous = tuple(k.strip() for k in previous_keys if k and k.strip())
        self._keys: tuple[_KeyMaterial, ...] | None = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Key material (lazy)
    # ------------------------------------------------------------------
    def _material(self) -> tuple[_KeyMaterial, ...]:
        if self._keys is not None:
            return self._keys
        with self._lock:
            if self._keys is None:
                if len(self._raw_key) < MIN_KEY_CHARS:
                    raise ConfigurationError(
                        f"ENCRYPTION_KEY must be set and at least {MIN_KEY_CHARS} characters"
                    )
                self._keys = tuple(
                    _KeyMaterial(
                        cipher=AESGCM(_derive(secret, _ENCRYPTION_INFO)),
                        lookup_key=_derive(secret, _LOOKUP_INFO),
                    )
                    for secret in (self._raw_key, *self._raw_previous)
                )
        return self._keys

    @staticmethod
    def _aad(context: str | None) -> bytes | None:
        return context.encode("utf-8") if context else None

    # ------------------------------------------------------------------
    # Cifrado reversible
    # ------------------------------------------------------------------
    def encrypt(self, plaintext: str, *, context: str | None = None) -> str:
        current = self._material()[0]
        nonce = os.urandom(NONCE_BYTES)
        sealed = current.cipher.encrypt(
            nonce, plaintext.encode("utf-8"), self._aad(context)
        )
        ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
        return f"{_b64(nonce)}:{_b64(tag)}:{_b64(ciphertext)}"

    @staticmethod
    def parse_record(record: str) -> tuple[bytes, bytes, bytes]:
        """(iv, tag, ciphertext) o MalformedCiphertextError."""
        if not isinstance(record, str):
            raise MalformedCiphertextError("Encrypted record must be a string")
        parts = record.split(":")
        if len(parts) != 3:
            raise MalformedCiphertextError(
                "Encrypted record must have the form iv:authTag:ciphertext"
            )
        try:
            iv, tag, ciphertext = (base64.b64decode(p, validate=True) for p in parts)
        except (binascii.Error, ValueError) as exc:
            raise MalformedCiphertextError(
                "Encrypted record is not valid base64", original_error=exc
            ) from exc
        if len(iv) != NONCE_BYTES or len(tag) != TAG_BYTES:
            raise MalformedCiphertextError("Encrypted record has invalid iv/tag length")
        return iv, tag, ciphertext

    def _open(self, record: str, context: str | None) -> tuple[str, int]:
        """Descifra probando claves en orden. Devuelve (plaintext, índice de clave)."""
        iv, tag, ciphertext = self.parse_record(record)
        keys = self._material()
        for index, material in enumerate(keys):
            try:
                data = material.cipher.decrypt(iv, ciphertext + tag, self._aad(context))
            except InvalidTag:
                continue
            try:
                return data.decode("utf-8"), index
            except UnicodeDecodeError as exc:
                raise DecryptionError(
                    "Decrypted payload is not valid UTF-8", original_error=exc
                ) from exc

        logger.warning(
            "field decryption failed (tampered data or unknown key)",
            extra={"keys_tried": len(keys)},
        )
        raise DecryptionError("Authentication failed: record was tampered or key is wrong")

    def decrypt(self, record: str, *, context: str | None = None) -> str:
        plaintext, _ = self._open(record, context)
        return plaintext

    def needs_rotation(self, record: str, *, context: str | None = None) -> bool:
        """True si el registro sólo abre con una clave anterior."""
        _, index = self._open(record, context)
        return index > 0

    def rotate(self, record: str, *, context: str | None = None) -> str:
        """Re-cifra con la clave actual (nuevo nonce siempre)."""
        return self.encrypt(self.decrypt(record, context=context), context=context)

    # ------------------------------------------------------------------
    # Hash de lookup
    # ------------------------------------------------------------------
    def hash_for_lookup(self, value: str) -> str:
        current = self._material()[0]
        normalized = normalize_lookup_value(value).encode("utf-8")
        return hmac.new(current.lookup_key, normalized, hashlib.sha256).hexdigest()

    def lookup_candidates(self, value: str) -> list[str]:
        """Hashes bajo todas las claves (buscar mientras dura una rotación)."""
        normalized = normalize_lookup_value(value).encode("utf-8")
        return [
            hmac.new(m.lookup_key, normalized, hashlib.sha256).hexdigest()
            for m in self._material()
        ]

    def encrypt_searchable(
        self, value: str, *, context: str | None = None
    ) -> EncryptedField:
        return EncryptedField(
            ciphertext=self.encrypt(value, context=context),
            lookup_hash=self.hash_for_lookup(value),
        )
