"""Vault repository for vaultmint.

Resolves a vault together with the session, campaign and organizer it funds.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vaultmint.models.campaign import Campaign
from vaultmint.models.organizer import Organizer
from vaultmint.models.qr_session import QRSession
from vaultmint.models.vault import Vault


@dataclass
class VaultContext:
    """Vault with its owning session graph (any link may be absent)."""

    vault: Vault
    session: Optional[QRSession]
    campaign: Optional[Campaign]
    organizer: Optional[Organizer]


class VaultRepository:
    """Repository for Vault entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_with_context(self, vault_id: UUID) -> VaultContext | None:
        """Retrieve vault with session, campaign and organizer in one query.

        Uses outer joins so a broken link yields None for that part
        instead of hiding the vault.

        Args:
            vault_id: Vault's unique identifier

        Returns:
            VaultContext if the vault exists, None otherwise
        """
        result = await self.session.execute(
            select(Vault, QRSession, Campaign, Organizer)
            .outerjoin(QRSession, QRSession.id == Vault.qr_session_id)  # type: ignore[arg-type]
            .outerjoin(Campaign, Campaign.id == QRSession.campaign_id)  # type: ignore[arg-type]
            .outerjoin(Organizer, Organizer.id == Campaign.organizer_id)  # type: ignore[arg-type]
            .where(Vault.id == vault_id)  # type: ignore[arg-type]
        )
        row = result.one_or_none()
        if row is None:
            return None
        vault, qr_session, campaign, organizer = row
        return VaultContext(vault=vault, session=qr_session, campaign=campaign, organizer=organizer)

    async def add(self, vault: Vault) -> Vault:
        self.session.add(vault)
        await self.session.flush()
        return vault
