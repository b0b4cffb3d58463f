"""Campaign entity - token naming and metadata shared by every mint."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from vaultmint.core.timezone import UTCDateTime, utcnow


class Campaign(SQLModel, table=True):
    """Campaign describes the tokens minted for its sessions.

    Read-only from the minting pipeline's point of view.
    """

    __tablename__ = "campaigns"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str = Field(max_length=255)
    token_symbol: Optional[str] = Field(default=None, max_length=32)
    token_uri: Optional[str] = Field(default=None)
    metadata_uri: Optional[str] = Field(default=None)
    organizer_id: UUID = Field(foreign_key="organizers.id", index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    def missing_token_fields(self) -> list[str]:
        """Names of the fields required to create tokens that are empty."""
        required = {
            "token_uri": self.token_uri,
            "name": self.name,
            "token_symbol": self.token_symbol,
        }
        return [field for field, value in required.items() if not value]
