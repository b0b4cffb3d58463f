"""Claim entity - a recipient's right to one minted token."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from vaultmint.core.timezone import UTCDateTime, utcnow


class ClaimStatus(str, Enum):
    """Claim lifecycle status."""

    PENDING = "PENDING"
    MINTING = "MINTING"
    CLAIMED = "CLAIMED"
    FAILED = "FAILED"


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid lifecycle transition."""

    pass


class Claim(SQLModel, table=True):
    """Claim tracks one recipient's mint from request to linked Token."""

    __tablename__ = "claims"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    qr_session_id: Optional[UUID] = Field(default=None, foreign_key="qr_sessions.id", index=True)
    wallet: Optional[str] = Field(default=None, max_length=64)
    status: ClaimStatus = Field(default=ClaimStatus.PENDING, index=True)
    mint_address: Optional[str] = Field(default=None, max_length=128)
    token_id: Optional[UUID] = Field(default=None, foreign_key="tokens.id", unique=True)
    error: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    def mark_claimed(self, token_id: UUID, mint_address: str) -> None:
        """Link the minted token and transition from minting to claimed.

        Args:
            token_id: Primary key of the Token row created for this mint
            mint_address: On-chain address of the minted token

        Raises:
            InvalidStateTransition: If current status is not minting
            ValueError: If mint_address is empty
        """
        if self.status != ClaimStatus.MINTING:
            raise InvalidStateTransition(
                f"Cannot mark claimed from {self.status.value}. Claim must be in MINTING state."
            )
        if not mint_address:
            raise ValueError("mint_address is required")
        self.token_id = token_id
        self.mint_address = mint_address
        self.status = ClaimStatus.CLAIMED
        self.updated_at = utcnow()

    def mark_failed(self, error_message: str) -> None:
        """Transition from any non-terminal state to failed.

        Raises:
            InvalidStateTransition: If current status is already terminal (claimed/failed)
        """
        if self.status in (ClaimStatus.CLAIMED, ClaimStatus.FAILED):
            raise InvalidStateTransition(
                f"Cannot mark failed from terminal state {self.status.value}."
            )
        self.error = error_message[:1000]
        self.status = ClaimStatus.FAILED
        self.updated_at = utcnow()
