"""Repository layer for vaultmint.

Provides data access abstractions for all domain entities.
No base classes - each repository is self-contained.
"""

from vaultmint.repositories.claim import ClaimContext, ClaimRepository
from vaultmint.repositories.job import JobRepository
from vaultmint.repositories.qr_session import QRSessionRepository
from vaultmint.repositories.token import TokenRepository
from vaultmint.repositories.vault import VaultContext, VaultRepository

__all__ = [
    "ClaimContext",
    "ClaimRepository",
    "JobRepository",
    "QRSessionRepository",
    "TokenRepository",
    "VaultContext",
    "VaultRepository",
]
