"""Worker application assembly.

Builds the ledger client, handlers and dispatcher from settings and runs one
self-restarting worker per queue channel.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from web3 import AsyncHTTPProvider, AsyncWeb3

from vaultmint.core import timezone  # noqa: F401  (sets TZ=UTC)
from vaultmint.core.config import Settings
from vaultmint.core.database import create_tables
from vaultmint.services.blockchain.web3_ledger import Web3LedgerClient
from vaultmint.services.ipfs.pinata_client import PinataClient
from vaultmint.services.minting.collection import CollectionPreparer
from vaultmint.services.minting.minter import NFTMinter
from vaultmint.services.vault.funds import VaultFundManager
from vaultmint.services.vault.keys import VaultKeyCipher
from vaultmint.uow import create_uow_factory
from vaultmint.workers.dispatcher import Dispatcher
from vaultmint.workers.events import JobEvents, bind_worker_events

logger = structlog.get_logger()

RESTART_DELAY = 1


@dataclass
class Services:
    """Everything a worker process needs, wired from settings."""

    uow_factory: Callable
    ledger: Web3LedgerClient
    cipher: VaultKeyCipher
    fund_manager: VaultFundManager
    preparer: CollectionPreparer
    minter: NFTMinter


def build_ledger(settings: Settings) -> Web3LedgerClient:
    w3 = AsyncWeb3(AsyncHTTPProvider(settings.rpc_endpoint))
    storage = PinataClient(jwt_token=settings.pinata_jwt, base_url=settings.pinata_api_url)
    return Web3LedgerClient(
        w3=w3,
        factory_address=settings.collection_factory_address,
        storage=storage,
        transaction_timeout=settings.transaction_timeout_seconds,
    )


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    ledger: Web3LedgerClient | None = None,
) -> Services:
    """Wire handlers and their collaborators.

    Args:
        settings: Application settings
        session_factory: Database session factory
        ledger: Ledger client to use instead of one built from settings

    Returns:
        Services bundle sharing a single ledger client and cipher
    """
    uow_factory = create_uow_factory(session_factory)
    ledger = ledger or build_ledger(settings)
    cipher = VaultKeyCipher.from_base64(settings.vault_encryption_key)

    fund_manager = VaultFundManager(
        ledger=ledger,
        per_transfer_cost=settings.transfer_cost_per_token,
        fixed_buffer=settings.minimum_reserved_buffer,
        decimals=settings.ledger_decimals,
        uow_factory=uow_factory,
        cipher=cipher,
    )
    preparer = CollectionPreparer(
        uow_factory,
        ledger,
        cipher,
        fund_manager=fund_manager if settings.refund_after_prepare else None,
    )
    minter = NFTMinter(uow_factory, ledger, cipher)

    return Services(
        uow_factory=uow_factory,
        ledger=ledger,
        cipher=cipher,
        fund_manager=fund_manager,
        preparer=preparer,
        minter=minter,
    )


def create_resilient_worker(
    coro_func: Callable[[], Awaitable[None]],
    worker_name: str,
    shutdown_event: asyncio.Event,
    registry: set[asyncio.Task],
) -> asyncio.Task:
    """Start a worker that is restarted after a crash.

    Args:
        coro_func: Zero-argument coroutine function running the worker loop
        worker_name: Human-readable worker name for logging
        shutdown_event: Once set, crashed or stopped workers are not restarted
        registry: Set holding the live task of every worker, for shutdown

    Returns:
        Initial task handle (restarts create new tasks)
    """

    def on_worker_done(task: asyncio.Task):
        registry.discard(task)
        if shutdown_event.is_set():
            logger.info("worker.shutdown_complete", worker=worker_name)
            return

        if task.cancelled():
            logger.info("worker.cancelled", worker=worker_name)
            return

        exc = task.exception()
        if exc:
            logger.error(
                "worker.crashed",
                worker=worker_name,
                error=str(exc),
                error_type=type(exc).__name__,
                retry_in_seconds=RESTART_DELAY,
                exc_info=exc,
            )
        else:
            logger.warning(
                "worker.stopped_unexpectedly",
                worker=worker_name,
                retry_in_seconds=RESTART_DELAY,
            )

        async def restart_worker():
            await asyncio.sleep(RESTART_DELAY)
            if shutdown_event.is_set():
                return

            logger.info("worker.restarting", worker=worker_name)
            new_task = asyncio.create_task(coro_func())
            registry.add(new_task)
            new_task.add_done_callback(on_worker_done)

        asyncio.create_task(restart_worker())

    task = asyncio.create_task(coro_func())
    registry.add(task)
    task.add_done_callback(on_worker_done)
    return task


async def run_workers(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    init_db: bool = False,
) -> None:
    """Run the dispatcher for every channel until cancelled.

    Args:
        settings: Application settings
        session_factory: Database session factory
        init_db: Create missing tables before starting
    """
    if init_db:
        await create_tables(session_factory.kw["bind"])
        logger.info("startup.tables_created")

    services = build_services(settings, session_factory)

    events = JobEvents()
    bind_worker_events("dispatcher", events)
    dispatcher = Dispatcher.from_settings(
        settings, services.uow_factory, services.preparer, services.minter, events=events
    )

    shutdown_event = asyncio.Event()
    tasks: set[asyncio.Task] = set()
    for channel in dispatcher.channels:
        create_resilient_worker(
            lambda channel=channel: dispatcher.run_channel(channel),
            channel.name,
            shutdown_event,
            tasks,
        )

    logger.info(
        "application.startup",
        db_url=settings.database_url.split("@")[-1],
        channels=[channel.name for channel in dispatcher.channels],
    )

    try:
        await shutdown_event.wait()
    finally:
        logger.info("application.shutdown")
        shutdown_event.set()
        running = list(tasks)
        for task in running:
            task.cancel()
        await asyncio.gather(*running, return_exceptions=True)
