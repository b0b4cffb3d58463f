"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata.
"""

from vaultmint.models.campaign import Campaign
from vaultmint.models.claim import Claim, ClaimStatus, InvalidStateTransition
from vaultmint.models.job import Job, JobKind, JobStatus
from vaultmint.models.organizer import Organizer
from vaultmint.models.qr_session import QRSession
from vaultmint.models.token import Token
from vaultmint.models.vault import Vault

__all__ = [
    "Organizer",
    "Campaign",
    "QRSession",
    "Vault",
    "Claim",
    "ClaimStatus",
    "InvalidStateTransition",
    "Token",
    "Job",
    "JobKind",
    "JobStatus",
]
