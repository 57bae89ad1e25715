"""
Identity: passwords con pepper y CryptoVault.
"""

from .crypto_vault import CryptoVault
from .passwords import PepperedPasswordHasher

__all__ = ["CryptoVault", "PepperedPasswordHasher"]
