"""Collection preparation.

Creates the parent collection token for a session, once, and stores its
address on the session. Runs as the handler of prepare jobs.
"""

from typing import Awaitable, Callable, Optional
from uuid import UUID

import structlog

from vaultmint.core.timing import timed
from vaultmint.services.blockchain.ledger import CreateTokenParams, LedgerClient
from vaultmint.services.exceptions import CollectionRecordError, DuplicateCollectionError
from vaultmint.services.vault.funds import VaultFundManager
from vaultmint.services.vault.keys import VaultKeyCipher

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[int], Awaitable[None]]


class CollectionPreparer:
    """Creates and records the collection token of a session.

    Missing data (vault, session, campaign fields) is logged and skipped;
    decryption and ledger failures propagate so the queue can retry.
    """

    def __init__(
        self,
        uow_factory,
        ledger: LedgerClient,
        cipher: VaultKeyCipher,
        fund_manager: Optional[VaultFundManager] = None,
    ):
        """
        Args:
            uow_factory: Unit of Work factory
            ledger: Ledger client used to create the collection token
            cipher: Vault key cipher
            fund_manager: When set, surplus vault funds are refunded after preparing
        """
        self.uow_factory = uow_factory
        self.ledger = ledger
        self.cipher = cipher
        self.fund_manager = fund_manager

    async def prepare(self, vault_id: UUID, progress: Optional[ProgressCallback] = None) -> None:
        """Prepare the collection for the session funded by a vault.

        Workflow:
        1. Resolve vault -> session -> campaign -> organizer
        2. Skip if data is missing; only refund if the session is already prepared
        3. Decrypt the vault key and create the collection token
        4. Store the address on the session (first writer wins)
        5. Report progress, then refund the vault surplus to the organizer

        Args:
            vault_id: Vault named by the prepare job payload
            progress: Optional callback receiving progress percentages

        Raises:
            VaultKeyDecryptionError / InvalidSigningKeyError: Vault key unusable
            TransientError / PermanentError: Ledger or metadata upload failed
            DuplicateCollectionError: Another job stored a collection first
            CollectionRecordError: Collection created but the store write failed
        """
        log = logger.bind(vault_id=str(vault_id))

        async with await self.uow_factory() as uow:
            context = await uow.vaults.get_with_context(vault_id)

        if context is None:
            log.warning("prepare.skipped", reason="vault_not_found")
            return
        if context.session is None or context.campaign is None:
            log.warning("prepare.skipped", reason="session_not_found")
            return

        qr_session, campaign = context.session, context.campaign
        log = log.bind(qr_session_id=str(qr_session.id), campaign_id=str(campaign.id))

        if qr_session.is_prepared:
            log.info("prepare.already_prepared", collection=qr_session.collection)
            if self.fund_manager is not None:
                signer = self.ledger.load_signer(
                    self.cipher.decrypt(context.vault.encrypted_private_key)
                )
                await self.fund_manager.reconcile(signer, qr_session, context.organizer)
            return

        missing = campaign.missing_token_fields()
        if missing:
            log.warning("prepare.skipped", reason="campaign_fields_missing", missing=missing)
            return

        log.info("prepare.started")
        signer = self.ledger.load_signer(self.cipher.decrypt(context.vault.encrypted_private_key))

        params = CreateTokenParams(
            uri=campaign.token_uri,  # type: ignore[arg-type]
            name=f"{campaign.name} Collection",
            symbol=campaign.token_symbol,  # type: ignore[arg-type]
            seller_fee_basis_points=0,
            is_mutable=False,
            is_collection=True,
        )
        with timed("prepare.create_collection", qr_session_id=str(qr_session.id)):
            collection = await self.ledger.create_token(signer, params)

        try:
            with timed("prepare.store_collection", qr_session_id=str(qr_session.id)):
                async with await self.uow_factory() as uow:
                    stored = await uow.qr_sessions.set_collection(qr_session.id, collection)
        except Exception as e:
            log.error(
                "prepare.store_failed",
                orphaned_collection=collection,
                error_type=type(e).__name__,
                error_message=str(e),
                message="Collection exists on-chain without a local record - manual repair",
            )
            raise CollectionRecordError(
                f"Created collection {collection} for session {qr_session.id} "
                f"but could not store it: {e}"
            ) from e

        if not stored:
            log.error(
                "prepare.duplicate_collection",
                orphaned_collection=collection,
                message="Session already had a collection; new collection token is orphaned",
            )
            raise DuplicateCollectionError(
                f"Session {qr_session.id} already has a collection; "
                f"orphaned collection token {collection}"
            )

        log.info("prepare.succeeded", collection=collection)

        if progress is not None:
            await progress(50)

        if self.fund_manager is not None:
            qr_session.collection = collection
            await self.fund_manager.reconcile(signer, qr_session, context.organizer)
