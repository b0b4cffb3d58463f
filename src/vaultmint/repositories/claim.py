"""Claim repository for vaultmint.

Provides the claim graph lookup used by the minter and the conditional
status updates that keep a claim from being minted twice.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from vaultmint.core.timezone import utcnow
from vaultmint.models.campaign import Campaign
from vaultmint.models.claim import Claim, ClaimStatus
from vaultmint.models.organizer import Organizer
from vaultmint.models.qr_session import QRSession
from vaultmint.models.token import Token
from vaultmint.models.vault import Vault


@dataclass
class ClaimContext:
    """Claim with its session, campaign, organizer and vault."""

    claim: Claim
    session: Optional[QRSession]
    campaign: Optional[Campaign]
    organizer: Optional[Organizer]
    vault: Optional[Vault]

    def missing_preconditions(self) -> list[str]:
        """Names of the minting preconditions this claim does not meet."""
        missing = []
        if self.session is None:
            missing.append("session")
        else:
            if self.vault is None:
                missing.append("vault")
            if not self.session.collection:
                missing.append("collection")
            if self.campaign is None:
                missing.append("campaign")
        if not self.claim.wallet:
            missing.append("wallet")
        return missing


class ClaimRepository:
    """Repository for Claim entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_by_id(self, claim_id: UUID) -> Claim | None:
        result = await self.session.execute(select(Claim).where(Claim.id == claim_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def add(self, claim: Claim) -> Claim:
        self.session.add(claim)
        await self.session.flush()
        return claim

    async def get_with_context(self, claim_id: UUID) -> ClaimContext | None:
        """Retrieve claim with Session -> Campaign -> Organizer and Session -> Vault.

        Args:
            claim_id: Claim's unique identifier

        Returns:
            ClaimContext if the claim exists, None otherwise
        """
        result = await self.session.execute(
            select(Claim, QRSession, Campaign, Organizer, Vault)
            .outerjoin(QRSession, QRSession.id == Claim.qr_session_id)  # type: ignore[arg-type]
            .outerjoin(Campaign, Campaign.id == QRSession.campaign_id)  # type: ignore[arg-type]
            .outerjoin(Organizer, Organizer.id == Campaign.organizer_id)  # type: ignore[arg-type]
            .outerjoin(Vault, Vault.qr_session_id == QRSession.id)  # type: ignore[arg-type]
            .where(Claim.id == claim_id)  # type: ignore[arg-type]
        )
        row = result.first()
        if row is None:
            return None
        claim, qr_session, campaign, organizer, vault = row
        return ClaimContext(
            claim=claim,
            session=qr_session,
            campaign=campaign,
            organizer=organizer,
            vault=vault,
        )

    async def begin_minting(self, claim_id: UUID) -> bool:
        """Atomically move a claim from PENDING to MINTING.

        Query explanation:
        - WHERE status = 'PENDING': only one concurrent caller can match
        - rowcount tells the caller whether it won

        Returns:
            True if this caller now owns the mint, False otherwise
        """
        result = await self.session.execute(
            update(Claim)
            .where(Claim.id == claim_id)  # type: ignore[arg-type]
            .where(Claim.status == ClaimStatus.PENDING)  # type: ignore[arg-type]
            .values(status=ClaimStatus.MINTING, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def release(self, claim_id: UUID) -> bool:
        """Return a MINTING claim to PENDING so a retry can mint it.

        Returns:
            True if the claim was released, False if it was not MINTING
        """
        result = await self.session.execute(
            update(Claim)
            .where(Claim.id == claim_id)  # type: ignore[arg-type]
            .where(Claim.status == ClaimStatus.MINTING)  # type: ignore[arg-type]
            .values(status=ClaimStatus.PENDING, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_claimed(self, claim_id: UUID, token: Token) -> Claim:
        """Link the minted token to the claim and mark it CLAIMED.

        Args:
            claim_id: Claim to update (must be MINTING)
            token: Persisted Token row for the mint

        Raises:
            LookupError: If the claim no longer exists
            InvalidStateTransition: If the claim is not MINTING
        """
        result = await self.session.execute(
            select(Claim)
            .where(Claim.id == claim_id)  # type: ignore[arg-type]
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        claim = result.scalar_one_or_none()
        if claim is None:
            raise LookupError(f"Claim {claim_id} not found")

        claim.mark_claimed(token.id, token.mint_address)
        self.session.add(claim)
        await self.session.flush()
        return claim


    async def mark_failed(
        self, claim_id: UUID, error_message: str, expected_status: ClaimStatus
    ) -> Claim | None:
        """Move a claim to FAILED if it is still in the status its failed job left it in.

        Query explanation:
        - SELECT ... FOR UPDATE: lock the claim row
        - populate_existing: state check runs against the locked row, not a stale identity

        Args:
            claim_id: Claim whose mint job failed for good
            error_message: Reason stored on the claim
            expected_status: PENDING after a released mint, MINTING after an unrecorded mint

        Returns:
            The failed claim, or None if it is missing or moved on (e.g. claimed by another job)
        """
        result = await self.session.execute(
            select(Claim)
            .where(Claim.id == claim_id)  # type: ignore[arg-type]
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        claim = result.scalar_one_or_none()
        if claim is None or claim.status != expected_status:
            return None

        claim.mark_failed(error_message)
        self.session.add(claim)
        await self.session.flush()
        return claim
