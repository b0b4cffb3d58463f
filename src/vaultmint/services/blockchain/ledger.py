"""Ledger client contract consumed by the minting pipeline."""

from dataclasses import dataclass
from typing import Optional, Protocol

from eth_account import Account
from eth_account.signers.local import LocalAccount

from vaultmint.services.exceptions import InvalidSigningKeyError


@dataclass(frozen=True)
class CreateTokenParams:
    """Parameters for creating a collection or a child token."""

    uri: str
    name: str
    symbol: str
    seller_fee_basis_points: int = 0
    is_mutable: bool = False
    is_collection: bool = False
    collection: Optional[str] = None  # parent collection address (child tokens only)
    owner: Optional[str] = None  # recipient of a child token


class LedgerClient(Protocol):
    """Operations the pipeline needs from the ledger network."""

    def load_signer(self, private_key: bytes) -> LocalAccount: ...

    async def get_balance(self, address: str) -> int: ...

    async def transfer(self, signer: LocalAccount, to_address: str, amount: int) -> str: ...

    async def create_token(self, signer: LocalAccount, params: CreateTokenParams) -> str: ...


def load_signer(private_key: bytes) -> LocalAccount:
    """Derive a signing account from raw private key bytes.

    Raises:
        InvalidSigningKeyError: If the bytes are not a valid secp256k1 key
    """
    try:
        return Account.from_key(private_key)
    except (ValueError, TypeError) as e:
        raise InvalidSigningKeyError(f"Vault key is not a valid signing key: {e}") from e
