"""Vault key cipher tests."""

import base64

import pytest

from tests.conftest import VAULT_ADDRESS, VAULT_PRIVATE_KEY
from vaultmint.services.blockchain.ledger import load_signer
from vaultmint.services.exceptions import InvalidSigningKeyError, VaultKeyDecryptionError
from vaultmint.services.vault.keys import NONCE_SIZE, VaultKeyCipher


def test_decrypt_recovers_signing_key(cipher):
    stored = cipher.encrypt(VAULT_PRIVATE_KEY)

    assert load_signer(cipher.decrypt(stored)).address == VAULT_ADDRESS


def test_encrypt_uses_fresh_nonce(cipher):
    assert cipher.encrypt(VAULT_PRIVATE_KEY) != cipher.encrypt(VAULT_PRIVATE_KEY)


def test_wrong_key_is_rejected(cipher):
    stored = cipher.encrypt(VAULT_PRIVATE_KEY)

    with pytest.raises(VaultKeyDecryptionError, match="VAULT_ENCRYPTION_KEY"):
        VaultKeyCipher(bytes(32)).decrypt(stored)


def test_tampered_ciphertext_is_rejected(cipher):
    blob = bytearray(base64.b64decode(cipher.encrypt(VAULT_PRIVATE_KEY)))
    blob[-1] ^= 0x01

    with pytest.raises(VaultKeyDecryptionError):
        cipher.decrypt(base64.b64encode(bytes(blob)).decode())


@pytest.mark.parametrize(
    "ciphertext",
    ["not base64!", base64.b64encode(b"\x00" * NONCE_SIZE).decode(), ""],
)
def test_malformed_ciphertext_is_rejected(cipher, ciphertext):
    with pytest.raises(VaultKeyDecryptionError):
        cipher.decrypt(ciphertext)


def test_key_must_be_32_bytes():
    with pytest.raises(ValueError):
        VaultKeyCipher(b"short")


def test_from_base64_setting():
    encoded = base64.b64encode(bytes(range(32))).decode()
    stored = VaultKeyCipher.from_base64(encoded).encrypt(b"payload")

    assert VaultKeyCipher(bytes(range(32))).decrypt(stored) == b"payload"
    with pytest.raises(ValueError):
        VaultKeyCipher.from_base64("%%%")


def test_decrypted_garbage_is_not_a_signing_key(cipher):
    with pytest.raises(InvalidSigningKeyError):
        load_signer(cipher.decrypt(cipher.encrypt(b"\x01" * 5)))
