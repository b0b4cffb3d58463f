"""Token entity - one minted NFT."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from vaultmint.core.timezone import UTCDateTime, utcnow


class Token(SQLModel, table=True):
    """Token records an NFT minted for a claim. Created once per mint."""

    __tablename__ = "tokens"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    mint_address: str = Field(max_length=128, unique=True, index=True)
    metadata_uri: Optional[str] = Field(default=None)
    campaign_id: UUID = Field(foreign_key="campaigns.id", index=True)
    qr_session_id: UUID = Field(foreign_key="qr_sessions.id", index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
