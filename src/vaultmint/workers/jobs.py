"""Job variants routed by the dispatcher.

A queued job is stored as (kind, payload); ``parse_job`` turns it into a
typed variant so routing never inspects raw payload dictionaries.
"""

from dataclasses import dataclass
from typing import Any, Union
from uuid import UUID

from vaultmint.core.config import Settings
from vaultmint.models.job import Job, JobKind
from vaultmint.services.exceptions import JobPayloadError
from vaultmint.uow import UnitOfWork


@dataclass(frozen=True)
class PrepareJob:
    """Prepare the collection of the session funded by vault_id."""

    vault_id: UUID


@dataclass(frozen=True)
class MintJob:
    """Mint the token owed to claim_id."""

    claim_id: UUID


JobVariant = Union[PrepareJob, MintJob]


def _uuid_field(payload: Any, key: str) -> UUID:
    if not isinstance(payload, dict):
        raise JobPayloadError(f"Job payload must be an object, got {type(payload).__name__}")
    value = payload.get(key)
    if not value:
        raise JobPayloadError(f"Job payload is missing '{key}'")
    try:
        return UUID(str(value))
    except ValueError as e:
        raise JobPayloadError(f"Job payload '{key}' is not a valid id: {value!r}") from e


def parse_job(kind: JobKind, payload: Any) -> JobVariant:
    """Build the typed job for a stored kind and payload.

    Raises:
        JobPayloadError: Unknown kind or malformed payload
    """
    if kind == JobKind.PREPARE:
        return PrepareJob(vault_id=_uuid_field(payload, "vaultId"))
    if kind == JobKind.MINT:
        return MintJob(claim_id=_uuid_field(payload, "claimId"))
    raise JobPayloadError(f"Unknown job kind: {kind!r}")


async def enqueue_prepare(uow: UnitOfWork, settings: Settings, vault_id: UUID) -> Job:
    """Queue collection preparation for the session funded by vault_id."""
    return await uow.jobs.enqueue(
        settings.prepare_queue_name,
        JobKind.PREPARE,
        {"vaultId": str(vault_id)},
        max_attempts=settings.job_max_attempts,
    )


async def enqueue_mint(uow: UnitOfWork, settings: Settings, claim_id: UUID) -> Job:
    """Queue minting for a claim."""
    return await uow.jobs.enqueue(
        settings.mint_queue_name,
        JobKind.MINT,
        {"claimId": str(claim_id)},
        max_attempts=settings.job_max_attempts,
    )
