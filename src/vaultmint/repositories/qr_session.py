"""QRSession repository for vaultmint."""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from vaultmint.models.qr_session import QRSession


class QRSessionRepository:
    """Repository for QRSession entities.

    The collection address is written with a conditional update so it can
    only ever be set once, even under concurrent prepare jobs.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, qr_session_id: UUID) -> QRSession | None:
        result = await self.session.execute(
            select(QRSession).where(QRSession.id == qr_session_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def add(self, qr_session: QRSession) -> QRSession:
        self.session.add(qr_session)
        await self.session.flush()
        return qr_session

    async def set_collection(self, qr_session_id: UUID, collection: str) -> bool:
        """Store the collection address if none is stored yet.

        Query explanation:
        - UPDATE ... SET collection = :collection
        - WHERE id = :id AND collection IS NULL: first writer wins

        Args:
            qr_session_id: Session to update
            collection: On-chain address of the collection token

        Returns:
            True if the address was stored, False if the session already had
            a collection (or does not exist)

        Raises:
            ValueError: If collection is empty
        """
        if not collection:
            raise ValueError("collection cannot be empty")

        result = await self.session.execute(
            update(QRSession)
            .where(QRSession.id == qr_session_id)  # type: ignore[arg-type]
            .where(QRSession.collection.is_(None))  # type: ignore[union-attr]
            .values(collection=collection)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
