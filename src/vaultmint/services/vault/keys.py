"""Vault private key encryption.

Keys are stored as base64(nonce || ciphertext || tag) using AES-256-GCM.
Each job decrypts the vault key itself; nothing here caches key material.
"""

import base64
import binascii
import os

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from vaultmint.services.exceptions import VaultKeyDecryptionError

logger = structlog.get_logger(__name__)

NONCE_SIZE = 12


class VaultKeyCipher:
    """AES-256-GCM cipher for vault private keys."""

    def __init__(self, key: bytes):
        """
        Args:
            key: 32-byte AES key

        Raises:
            ValueError: If the key is not 32 bytes long
        """
        if len(key) != 32:
            raise ValueError("Vault encryption key must be 32 bytes (AES-256)")
        self._aead = AESGCM(key)

    @classmethod
    def from_base64(cls, encoded_key: str) -> "VaultKeyCipher":
        """Build a cipher from the base64 VAULT_ENCRYPTION_KEY setting."""
        try:
            key = base64.b64decode(encoded_key, validate=True)
        except binascii.Error as e:
            raise ValueError("VAULT_ENCRYPTION_KEY must be valid base64") from e
        return cls(key)

    def encrypt(self, private_key: bytes) -> str:
        """Encrypt raw key bytes into the stored text format."""
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aead.encrypt(nonce, private_key, None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, ciphertext: str) -> bytes:
        """Decrypt a stored vault key into raw signing-key bytes.

        Args:
            ciphertext: base64(nonce || ciphertext || tag)

        Returns:
            Raw private key bytes

        Raises:
            VaultKeyDecryptionError: Malformed ciphertext, wrong key or tampered data
        """
        try:
            blob = base64.b64decode(ciphertext, validate=True)
        except (binascii.Error, ValueError) as e:
            raise VaultKeyDecryptionError("Vault key is not valid base64") from e

        if len(blob) <= NONCE_SIZE:
            raise VaultKeyDecryptionError("Vault key ciphertext is truncated")

        nonce, sealed = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
        try:
            return self._aead.decrypt(nonce, sealed, None)
        except InvalidTag as e:
            logger.error("vault.key_decryption_failed", reason="authentication tag mismatch")
            raise VaultKeyDecryptionError(
                "Vault key failed authentication. "
                "Check VAULT_ENCRYPTION_KEY matches the key used at campaign setup."
            ) from e
