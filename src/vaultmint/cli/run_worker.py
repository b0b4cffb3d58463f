"""CLI command running the job dispatcher.

Usage:
    python -m vaultmint.cli.run_worker [OPTIONS]

Examples:
    # Run both channels with settings from .env
    python -m vaultmint.cli.run_worker

    # Create missing tables first (development databases)
    python -m vaultmint.cli.run_worker --init-db

    # Verbose logging
    python -m vaultmint.cli.run_worker -v
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace

import structlog

from vaultmint.app import run_workers
from vaultmint.core import timezone  # noqa: F401
from vaultmint.core.config import Settings, configure_logging
from vaultmint.core.database import setup_db_session

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(description="Run the prepare and mint job workers")

    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create missing database tables before starting",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args(argv)


async def async_main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)

    try:
        await run_workers(settings, session_factory, init_db=args.init_db)
    except asyncio.CancelledError:
        logger.info("cli.interrupted")
        return 130
    return 0


def main() -> None:
    """Synchronous entry point for CLI."""
    try:
        sys.exit(asyncio.run(async_main()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
