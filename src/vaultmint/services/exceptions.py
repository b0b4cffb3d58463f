"""Service error hierarchy for vault, storage and blockchain operations.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- TransientError: Errors that may succeed on retry (network, rate limits, timeouts)
- PermanentError: Errors that will not succeed on retry (authentication, validation)
- UnrecoverableJobError: Job-level errors the dispatcher must not retry

The dispatcher retries every job failure except UnrecoverableJobError;
the Transient/Permanent split is kept for logging and operator triage.
"""


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class TransientError(ServiceError):
    """Transient error that may succeed on retry.

    Examples:
    - Network timeouts
    - Rate limit exceeded (429)
    - Service unavailable (503)
    - Transaction confirmation timeouts
    """

    pass


class PermanentError(ServiceError):
    """Permanent error that will not succeed on retry.

    Examples:
    - Authentication failures (401, 403)
    - Invalid request parameters (400)
    - Transaction reverts
    - Configuration errors
    """

    pass


# Metadata storage (IPFS) errors
class IPFSUploadError(ServiceError):
    """Base exception for IPFS upload errors."""

    pass


class IPFSRateLimitError(TransientError):
    """Rate limit exceeded (429)."""

    pass


class IPFSNetworkError(TransientError):
    """Network timeout or service unavailable."""

    pass


class IPFSAuthError(PermanentError):
    """Authentication failure (401, 403)."""

    pass


class IPFSValidationError(PermanentError):
    """Bad request (400)."""

    pass


# Blockchain-specific errors
class BlockchainError(ServiceError):
    """Base exception for blockchain errors."""

    pass


class BlockchainConnectionError(TransientError):
    """Failed to reach the ledger RPC endpoint."""

    pass


class TransactionSubmissionError(TransientError):
    """Transaction submission failed."""

    pass


class TransactionTimeoutError(TransientError):
    """Transaction confirmation timeout."""

    pass


class TransactionRevertError(PermanentError):
    """Transaction reverted on-chain."""

    pass


class TokenCreationError(PermanentError):
    """Token creation confirmed but the created address could not be read."""

    pass


# Vault key errors
class VaultKeyDecryptionError(ServiceError):
    """Encrypted vault key could not be decrypted."""

    pass


class InvalidSigningKeyError(ServiceError):
    """Decrypted key material is not a valid signing key."""

    pass


# Job-level errors
class UnrecoverableJobError(PermanentError):
    """Job failure that retrying cannot fix; the job fails immediately."""

    pass


class JobPayloadError(UnrecoverableJobError):
    """Job payload is missing required fields or malformed."""

    pass


class DuplicateCollectionError(UnrecoverableJobError):
    """A collection token was created for a session that already had one."""

    pass


class MintRecordError(UnrecoverableJobError):
    """Token was minted on-chain but recording it in the store failed."""

    pass


class CollectionRecordError(UnrecoverableJobError):
    """Collection was created on-chain but storing it on the session failed."""

    pass
