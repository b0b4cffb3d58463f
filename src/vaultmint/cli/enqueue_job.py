"""CLI command adding a job to a queue channel.

Usage:
    python -m vaultmint.cli.enqueue_job prepare VAULT_ID
    python -m vaultmint.cli.enqueue_job mint CLAIM_ID
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace
from uuid import UUID

import structlog

from vaultmint.core import timezone  # noqa: F401
from vaultmint.core.config import Settings, configure_logging
from vaultmint.core.database import setup_db_session
from vaultmint.models.job import JobKind
from vaultmint.uow import create_uow_factory
from vaultmint.workers.jobs import enqueue_mint, enqueue_prepare

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> Namespace:
    parser = ArgumentParser(description="Queue a prepare or mint job")
    parser.add_argument("kind", choices=[kind.value for kind in JobKind])
    parser.add_argument("target_id", type=UUID, help="Vault id (prepare) or claim id (mint)")
    return parser.parse_args(argv)


async def async_main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]
    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)

    async with await uow_factory() as uow:
        if args.kind == JobKind.PREPARE.value:
            job = await enqueue_prepare(uow, settings, args.target_id)
        else:
            job = await enqueue_mint(uow, settings, args.target_id)

    logger.info("cli.job_enqueued", job_id=str(job.id), channel=job.channel, kind=job.kind.value)
    print(f"{job.id} queued on {job.channel}")
    return 0


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
