"""Vault entity - custodial signing wallet funding one session."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from vaultmint.core.timezone import UTCDateTime, utcnow


class Vault(SQLModel, table=True):
    """Vault holds an encrypted private key; never modified by the pipeline."""

    __tablename__ = "vaults"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    address: str = Field(max_length=64, index=True)
    encrypted_private_key: str
    qr_session_id: UUID = Field(foreign_key="qr_sessions.id", unique=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
