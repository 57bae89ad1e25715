"""
===============================================================================
TARJETA CRC — identity/passwords.py
===============================================================================

Módulo:
    Hashing de passwords con pepper (Argon2id)

Responsabilidades:
    - Hashear passwords con Argon2id (m=64 MiB, t=3, p=1, hash_len=32).
    - Mezclar el pepper del servidor antes de hashear (password + pepper).
    - Verificar primero con pepper y luego sin pepper (hashes legacy).
    - Detectar hashes a re-generar (parámetros viejos, legacy sin pepper).

Colaboradores:
    - argon2-cffi: PasswordHasher.
    - crosscutting.exceptions.ConfigurationError: pepper obligatorio ausente.

Decisiones de diseño:
    - verify() nunca levanta por mismatch ni por hash inválido: devuelve False.
    - El pepper se valida en el primer uso (no al importar ni al arrancar).
===============================================================================
"""

from __future__ import annotations

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError

from ..crosscutting.exceptions import ConfigurationError
from ..crosscutting.logger import logger

ARGON2_TIME_COST = 3
ARGON2_MEMORY_COST_KIB = 65536
ARGON2_PARALLELISM = 1
ARGON2_HASH_LEN = 32
ARGON2_SALT_LEN = 16


class PepperedPasswordHasher:
    def __init__(
        self,
        pepper: str | None,
        *,
        require_pepper: bool = False,
        time_cost: int = ARGON2_TIME_COST,
        memory_cost: int = ARGON2_MEMORY_COST_KIB,
        parallelism: int = ARGON2_PARALLELISM,
        hash_len: int = ARGON2_HASH_LEN,
        salt_len: int = ARGON2_SALT_LEN,
    ):
        self._pepper = pepper or ""
        self._require_pepper = require_pepper
        self._hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=hash_len,
            salt_len=salt_len,
            type=Type.ID,
        )

    def _checked_pepper(self) -> str:
        if not self._pepper and self._require_pepper:
            raise ConfigurationError("PASSWORD_PEPPER is required in production")
        return self._pepper

    def _matches(self, stored_hash: str, candidate: str) -> bool:
        try:
            return self._hasher.verify(stored_hash, candidate)
        except (VerificationError, InvalidHashError, ValueError):
            # R: VerifyMismatchError es subclase de VerificationError.
            return False

    def hash(self, password: str) -> str:
        return self._hasher.hash(password + self._checked_pepper())

    def _verify(self, password: str, stored_hash: str) -> tuple[bool, bool]:
        """(ok, legacy). legacy=True si sólo verificó sin pepper."""
        pepper = self._checked_pepper()
        if not isinstance(stored_hash, str) or not stored_hash:
            return False, False

        if self._matches(stored_hash, password + pepper):
            return True, False

        if pepper and self._matches(stored_hash, password):
            # Hash previo a la introducción del pepper.
            logger.info("password verified via legacy unpeppered hash")
            return True, True

        return False, False

    def verify(self, password: str, stored_hash: str) -> bool:
        ok, _ = self._verify(password, stored_hash)
        return ok

    def verify_and_upgrade(self, password: str, stored_hash: str) -> tuple[bool, str | None]:
        """(ok, nuevo_hash|None). nuevo_hash sólo si el hash guardado debe regenerarse."""
        ok, legacy = self._verify(password, stored_hash)
        if not ok:
            return False, None
        if legacy or self.needs_rehash(stored_hash):
            return True, self.hash(password)
        return True, None

    def needs_rehash(self, stored_hash: str) -> bool:
        try:
            return self._hasher.check_needs_rehash(stored_hash)
        except (InvalidHashError, ValueError):
            return True
