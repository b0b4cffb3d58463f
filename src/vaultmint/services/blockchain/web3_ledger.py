"""Web3 ledger client: balances, refunds and token creation on an EVM network.

Collections and child tokens are created through a collection factory
contract. A collection is the ERC-721 contract the factory deploys; a child
token is addressed as ``"<collection>:<tokenId>"``.

Every vault signs many transactions at once (one per concurrent mint), so
submissions are serialized per signer and nonces come from a local counter
that never falls behind the node's pending count.
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import structlog
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3
from web3.exceptions import TimeExhausted

from vaultmint.abi import get_contract_abi
from vaultmint.services.blockchain.ledger import CreateTokenParams, load_signer
from vaultmint.services.exceptions import (
    BlockchainConnectionError,
    TokenCreationError,
    TransactionRevertError,
    TransactionSubmissionError,
    TransactionTimeoutError,
)
from vaultmint.services.ipfs.pinata_client import PinataClient

logger = structlog.get_logger()

NATIVE_TRANSFER_GAS = 21_000


def build_token_metadata(params: CreateTokenParams) -> dict[str, Any]:
    """Build the metadata document pinned for a new token.

    Args:
        params: Token creation parameters; params.uri is the campaign asset

    Returns:
        Metadata dictionary with keys name, symbol, image,
        seller_fee_basis_points and (for child tokens) collection
    """
    metadata: dict[str, Any] = {
        "name": params.name,
        "symbol": params.symbol,
        "image": params.uri,
        "seller_fee_basis_points": params.seller_fee_basis_points,
    }
    if params.collection:
        metadata["collection"] = params.collection
    return metadata


class Web3LedgerClient:
    """Ledger client backed by web3.py and a collection factory contract."""

    def __init__(
        self,
        w3: AsyncWeb3,
        factory_address: str,
        storage: PinataClient,
        transaction_timeout: int = 180,
        gas_buffer_percentage: float = 0.20,
    ):
        """
        Initialize ledger client.

        Args:
            w3: AsyncWeb3 instance connected to the ledger RPC endpoint
            factory_address: Collection factory contract address
            storage: Metadata uploader used for every created token
            transaction_timeout: Max wait time for confirmation in seconds (default: 180)
            gas_buffer_percentage: Safety buffer on the priority fee (default: 0.20 = 20%)
        """
        self.w3 = w3
        self.factory_address = AsyncWeb3.to_checksum_address(factory_address)
        self.storage = storage
        self.transaction_timeout = transaction_timeout
        self.gas_buffer = 1.0 + gas_buffer_percentage
        self._nonce_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._next_nonce: dict[str, int] = {}

        self.contract = self.w3.eth.contract(
            address=self.factory_address, abi=get_contract_abi("CollectionFactory")
        )

        logger.info(
            "ledger.initialized",
            factory_address=self.factory_address,
            timeout=transaction_timeout,
        )

    def load_signer(self, private_key: bytes) -> LocalAccount:
        return load_signer(private_key)

    async def get_balance(self, address: str) -> int:
        """
        Get the native balance of an address.

        Returns:
            Balance in minor units (wei)

        Raises:
            BlockchainConnectionError: RPC call failed
        """
        try:
            return await self.w3.eth.get_balance(AsyncWeb3.to_checksum_address(address))
        except Exception as e:
            logger.error("ledger.balance_query_failed", address=address, error=str(e))
            raise BlockchainConnectionError(f"Balance query failed for {address}: {e}") from e

    async def transfer(self, signer: LocalAccount, to_address: str, amount: int) -> str:
        """
        Send a native transfer and wait for confirmation.

        Args:
            signer: Account paying the transfer and its fee
            to_address: Destination address
            amount: Amount in minor units (wei)

        Returns:
            Transaction hash (0x-prefixed hex string)

        Raises:
            TransientError: Submission failed or confirmation timed out
            PermanentError: Transaction reverted on-chain
        """
        if amount <= 0:
            raise ValueError("Transfer amount must be positive")

        max_fee_per_gas, max_priority_fee_per_gas = await self._fee_params()
        chain_id = await self.w3.eth.chain_id

        async with self._reserve_nonce(signer.address) as nonce:
            transaction = {
                "from": signer.address,
                "to": AsyncWeb3.to_checksum_address(to_address),
                "value": amount,
                "nonce": nonce,
                "gas": NATIVE_TRANSFER_GAS,
                "maxFeePerGas": max_fee_per_gas,
                "maxPriorityFeePerGas": max_priority_fee_per_gas,
                "chainId": chain_id,
            }
            raw_hash = await self._submit(signer, transaction, operation="transfer")

        tx_hash, _ = await self._confirm(raw_hash, operation="transfer")
        return tx_hash

    async def create_token(self, signer: LocalAccount, params: CreateTokenParams) -> str:
        """
        Pin token metadata and create a collection or child token.

        Args:
            signer: Vault account paying for and owning the creation
            params: Token parameters; child tokens need collection and owner

        Returns:
            Collection contract address, or "<collection>:<tokenId>" for child tokens

        Raises:
            ValueError: Child token without collection or owner
            TransientError / PermanentError: Metadata upload or transaction failed
            TokenCreationError: Confirmed receipt carried no creation event
        """
        if not params.is_collection and (not params.collection or not params.owner):
            raise ValueError("Child tokens require a collection and an owner")

        metadata = build_token_metadata(params)
        pin_name = f"{params.symbol}-collection" if params.is_collection else f"{params.symbol}-token"
        metadata_cid = await self.storage.upload_metadata(metadata, pin_name)
        token_uri = f"ipfs://{metadata_cid}"

        if params.is_collection:
            function = self.contract.functions.createCollection(
                params.name,
                params.symbol,
                token_uri,
                params.is_mutable,
                params.seller_fee_basis_points,
            )
        else:
            function = self.contract.functions.mintTo(
                AsyncWeb3.to_checksum_address(params.collection),
                AsyncWeb3.to_checksum_address(params.owner),
                token_uri,
            )

        max_fee_per_gas, max_priority_fee_per_gas = await self._fee_params()
        chain_id = await self.w3.eth.chain_id

        async with self._reserve_nonce(signer.address) as nonce:
            try:
                transaction = await function.build_transaction(
                    {
                        "from": signer.address,
                        "nonce": nonce,
                        "maxFeePerGas": max_fee_per_gas,
                        "maxPriorityFeePerGas": max_priority_fee_per_gas,
                        "chainId": chain_id,
                    }  # type: ignore[arg-type]
                )
            except Exception as e:
                logger.error(
                    "ledger.build_transaction_failed", error=str(e), symbol=params.symbol
                )
                raise TransactionSubmissionError(f"Could not build token transaction: {e}") from e

            raw_hash = await self._submit(signer, transaction, operation="create_token")

        tx_hash, receipt = await self._confirm(raw_hash, operation="create_token")

        if params.is_collection:
            events = self.contract.events.CollectionCreated().process_receipt(receipt)
            if not events:
                raise TokenCreationError(f"No CollectionCreated event in {tx_hash}")
            return events[0]["args"]["collection"]

        events = self.contract.events.TokenMinted().process_receipt(receipt)
        if not events:
            raise TokenCreationError(f"No TokenMinted event in {tx_hash}")
        args = events[0]["args"]
        return f"{args['collection']}:{args['tokenId']}"

    async def _fee_params(self) -> tuple[int, int]:
        """EIP-1559 fee parameters with the priority-fee buffer applied."""
        try:
            max_priority_fee = await self.w3.eth.max_priority_fee
            latest_block = await self.w3.eth.get_block("latest")
        except Exception as e:
            raise BlockchainConnectionError(f"Fee estimation failed: {e}") from e

        base_fee = latest_block.get("baseFeePerGas", 0)
        max_priority_fee_buffered = int(max_priority_fee * self.gas_buffer)
        max_fee_per_gas = int((base_fee * 2) + max_priority_fee_buffered)
        return max_fee_per_gas, max_priority_fee_buffered

    @asynccontextmanager
    async def _reserve_nonce(self, address: str) -> AsyncIterator[int]:
        """Hold the signer's submission lock and yield its next nonce.

        The local counter advances only when the block exits cleanly (the
        node accepted the transaction). A failed submission drops the
        counter so the next one resyncs from the node.

        Raises:
            BlockchainConnectionError: Pending transaction count query failed
        """
        async with self._nonce_locks[address]:
            try:
                pending = await self.w3.eth.get_transaction_count(address, "pending")
            except Exception as e:
                raise BlockchainConnectionError(f"Nonce query failed for {address}: {e}") from e

            nonce = max(pending, self._next_nonce.get(address, 0))
            try:
                yield nonce
            except BaseException:
                self._next_nonce.pop(address, None)
                raise
            self._next_nonce[address] = nonce + 1

    async def _submit(self, signer: LocalAccount, transaction: dict, operation: str) -> bytes:
        """Sign and submit a transaction.

        Returns:
            Raw transaction hash as returned by the node
        """
        signed_txn = signer.sign_transaction(transaction)

        try:
            raw_hash = await self.w3.eth.send_raw_transaction(signed_txn.raw_transaction)
        except Exception as e:
            logger.error("ledger.transaction_submission_failed", operation=operation, error=str(e))
            raise TransactionSubmissionError(f"Transaction submission failed: {str(e)}") from e

        tx_hash = AsyncWeb3.to_hex(raw_hash)
        logger.info(
            "ledger.transaction_submitted",
            operation=operation,
            tx_hash=tx_hash,
            nonce=transaction.get("nonce"),
        )
        return raw_hash

    async def _confirm(self, raw_hash: bytes, operation: str):
        """Wait for a submitted transaction to be mined.

        Returns:
            Tuple of (tx_hash, receipt)
        """
        tx_hash = AsyncWeb3.to_hex(raw_hash)
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                raw_hash, timeout=self.transaction_timeout
            )
        except TimeExhausted as e:
            logger.warning(
                "ledger.transaction_timeout",
                operation=operation,
                tx_hash=tx_hash,
                timeout=self.transaction_timeout,
            )
            raise TransactionTimeoutError(f"Transaction confirmation timeout: {tx_hash}") from e

        if receipt["status"] == 0:
            logger.error(
                "ledger.transaction_reverted",
                operation=operation,
                tx_hash=tx_hash,
                block_number=receipt["blockNumber"],
            )
            raise TransactionRevertError(f"Transaction reverted: {tx_hash}")

        logger.info(
            "ledger.transaction_confirmed",
            operation=operation,
            tx_hash=tx_hash,
            block_number=receipt["blockNumber"],
            gas_used=receipt["gasUsed"],
        )
        return tx_hash, receipt
