"""QRSession entity - one funded minting campaign instance."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from vaultmint.core.timezone import UTCDateTime, utcnow


class QRSession(SQLModel, table=True):
    """QRSession caps the number of claims and owns the collection token.

    ``collection`` stays None until the collection preparer stores the
    on-chain address; it is written at most once.
    """

    __tablename__ = "qr_sessions"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    campaign_id: UUID = Field(foreign_key="campaigns.id", index=True)
    max_claims: Optional[int] = Field(default=None, ge=0)
    collection: Optional[str] = Field(default=None, max_length=128)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    @property
    def is_prepared(self) -> bool:
        return bool(self.collection)
