"""Token repository for vaultmint."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vaultmint.models.token import Token


class TokenRepository:
    """Repository for Token entities."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, token_id: UUID) -> Token | None:
        result = await self.session.execute(select(Token).where(Token.id == token_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def add(self, token: Token) -> Token:
        """Persist new token to database.

        Args:
            token: Token entity to persist

        Returns:
            Persisted token with generated ID
        """
        self.session.add(token)
        await self.session.flush()
        return token

    async def list_by_session(self, qr_session_id: UUID) -> list[Token]:
        """Tokens minted for a session, oldest first."""
        result = await self.session.execute(
            select(Token)
            .where(Token.qr_session_id == qr_session_id)  # type: ignore[arg-type]
            .order_by(Token.created_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())
