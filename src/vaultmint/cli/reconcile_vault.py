"""CLI command refunding a vault's surplus to its organizer.

Usage:
    python -m vaultmint.cli.reconcile_vault VAULT_ID [VAULT_ID ...]

Exit codes: 0 all vaults reconciled (or nothing to refund), 1 any failure.
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace
from uuid import UUID

import structlog

from vaultmint.app import build_services
from vaultmint.core import timezone  # noqa: F401
from vaultmint.core.config import Settings, configure_logging
from vaultmint.core.database import setup_db_session
from vaultmint.services.exceptions import ServiceError
from vaultmint.services.vault.funds import from_minor_units

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> Namespace:
    parser = ArgumentParser(
        description="Refund vault balance above the reserve to the organizer",
        epilog="reserve = max_claims * TRANSFER_COST_PER_TOKEN + MINIMUM_RESERVED_BUFFER",
    )
    parser.add_argument("vault_ids", nargs="+", type=UUID, metavar="VAULT_ID")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable DEBUG logging")
    return parser.parse_args(argv)


async def async_main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    services = build_services(settings, session_factory)
    decimals = settings.ledger_decimals

    exit_code = 0
    for vault_id in args.vault_ids:
        try:
            result = await services.fund_manager.reconcile_vault(vault_id)
        except ServiceError as e:
            logger.error(
                "cli.reconcile_failed",
                vault_id=str(vault_id),
                error_type=type(e).__name__,
                error_message=str(e),
            )
            print(f"{vault_id}: failed ({type(e).__name__}: {e})", file=sys.stderr)
            exit_code = 1
            continue

        if result.transferred:
            print(
                f"{vault_id}: refunded {from_minor_units(result.refunded, decimals)} "
                f"(kept {from_minor_units(result.reserved, decimals)}) tx={result.tx_hash}"
            )
        else:
            print(f"{vault_id}: skipped ({result.skipped_reason})")

    return exit_code


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
