"""Organizer entity - campaign owner and refund destination."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from vaultmint.core.timezone import UTCDateTime, utcnow


class Organizer(SQLModel, table=True):
    """Organizer runs campaigns; its wallet receives vault refunds."""

    __tablename__ = "organizers"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    wallet_address: Optional[str] = Field(default=None, max_length=64)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
