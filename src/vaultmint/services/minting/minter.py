"""NFT minting.

Mints one child token under a session's collection for a claim's recipient
and records the result. Runs as the handler of mint jobs.
"""

from typing import Awaitable, Callable, Optional
from uuid import UUID

import structlog

from vaultmint.core.timing import timed
from vaultmint.models.claim import ClaimStatus
from vaultmint.models.token import Token
from vaultmint.services.blockchain.ledger import CreateTokenParams, LedgerClient
from vaultmint.services.exceptions import MintRecordError
from vaultmint.services.vault.keys import VaultKeyCipher

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[int], Awaitable[None]]


class NFTMinter:
    """Mints the token owed to a claim.

    A claim is moved PENDING -> MINTING with a conditional update before any
    on-chain call, so at most one job can mint a given claim.
    """

    def __init__(self, uow_factory, ledger: LedgerClient, cipher: VaultKeyCipher):
        self.uow_factory = uow_factory
        self.ledger = ledger
        self.cipher = cipher

    async def mint(self, claim_id: UUID, progress: Optional[ProgressCallback] = None) -> None:
        """Mint and record the token for a claim.

        Workflow:
        1. Load the claim with session, campaign, organizer and vault
        2. Skip if any precondition is missing or the claim is not PENDING
        3. Claim the mint (PENDING -> MINTING); skip if another job won
        4. Decrypt the vault key and create the child token
        5. Create the Token row and mark the claim CLAIMED in one transaction
        6. Report progress once the mint is recorded

        Error handling:
        - Decryption or ledger failure: claim released to PENDING, error re-raised
          (if the release itself fails the claim stays MINTING and both errors are logged)
        - Store failure after the mint: claim stays MINTING, MintRecordError raised
          with the on-chain address for manual repair

        Args:
            claim_id: Claim named by the mint job payload
            progress: Optional callback receiving progress percentages
        """
        log = logger.bind(claim_id=str(claim_id))

        async with await self.uow_factory() as uow:
            context = await uow.claims.get_with_context(claim_id)
            if context is None:
                log.warning("mint.skipped", reason="claim_not_found")
                return

            missing = context.missing_preconditions()
            if missing:
                log.warning("mint.skipped", reason="preconditions_missing", missing=missing)
                return

            if context.claim.status != ClaimStatus.PENDING:
                log.info("mint.skipped", reason="claim_not_pending", status=context.claim.status.value)
                return

            acquired = await uow.claims.begin_minting(claim_id)

        if not acquired:
            log.info("mint.skipped", reason="claim_taken_by_another_job")
            return

        qr_session, campaign, vault = context.session, context.campaign, context.vault
        log = log.bind(qr_session_id=str(qr_session.id), recipient=context.claim.wallet)
        log.info("mint.started")

        try:
            signer = self.ledger.load_signer(self.cipher.decrypt(vault.encrypted_private_key))
            params = CreateTokenParams(
                uri=campaign.token_uri or "",
                name=campaign.name,
                symbol=campaign.token_symbol or "",
                seller_fee_basis_points=0,
                is_mutable=False,
                is_collection=False,
                collection=qr_session.collection,
                owner=context.claim.wallet,
            )
            with timed("mint.create_token", claim_id=str(claim_id)):
                mint_address = await self.ledger.create_token(signer, params)
        except Exception as e:
            await self._release(claim_id, e, log)
            raise

        try:
            with timed("mint.record_token", claim_id=str(claim_id)):
                async with await self.uow_factory() as uow:
                    token = await uow.tokens.add(
                        Token(
                            mint_address=mint_address,
                            metadata_uri=campaign.metadata_uri,
                            campaign_id=campaign.id,
                            qr_session_id=qr_session.id,
                        )
                    )
                    await uow.claims.mark_claimed(claim_id, token)
        except Exception as e:
            log.error(
                "mint.record_failed",
                mint_address=mint_address,
                error_type=type(e).__name__,
                error_message=str(e),
                message="Token exists on-chain without a local record - manual repair required",
            )
            raise MintRecordError(
                f"Minted {mint_address} for claim {claim_id} but could not record it: {e}"
            ) from e

        log.info("mint.succeeded", mint_address=mint_address, token_id=str(token.id))

        if progress is not None:
            await progress(50)

    async def _release(self, claim_id: UUID, error: Exception, log) -> None:
        """Return the claim to PENDING after a failed ledger call.

        A failure of the release itself is logged; the caller re-raises the
        original ledger error and the claim stays MINTING.
        """
        try:
            async with await self.uow_factory() as uow:
                await uow.claims.release(claim_id)
        except Exception as release_error:
            log.error(
                "mint.release_failed",
                error_type=type(error).__name__,
                error_message=str(error),
                release_error_type=type(release_error).__name__,
                release_error_message=str(release_error),
                message="Claim left MINTING - manual repair required",
            )
            return

        log.warning(
            "mint.released",
            error_type=type(error).__name__,
            error_message=str(error),
            message="Claim returned to PENDING for retry",
        )

    async def fail_claim(self, claim_id: UUID, error: Exception) -> bool:
        """Mark a claim FAILED once its mint job has failed for good.

        After an unrecorded mint (MintRecordError) the claim is expected in
        MINTING and keeps the on-chain address in its error; otherwise the
        failed attempt released it to PENDING. A claim in any other status
        was picked up by another job and is left alone.

        Returns:
            True if the claim was marked FAILED
        """
        expected = (
            ClaimStatus.MINTING if isinstance(error, MintRecordError) else ClaimStatus.PENDING
        )
        message = f"{type(error).__name__}: {error}"

        async with await self.uow_factory() as uow:
            claim = await uow.claims.mark_failed(claim_id, message, expected)

        log = logger.bind(claim_id=str(claim_id))
        if claim is None:
            log.info("mint.fail_skipped", expected_status=expected.value)
            return False

        log.error("mint.claim_failed", error=message)
        return True
