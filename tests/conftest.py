"""pytest fixtures for vaultmint tests.

Provides:
- utc_timezone: Autouse fixture enforcing UTC timezone
- engine: Function-scoped SQLite database (aiosqlite) with all tables created
- session: Function-scoped database session
- uow_factory: Function-scoped UnitOfWork factory
- cipher / ledger / settings: Vault key cipher, in-memory ledger double, test settings
- seed: Helper creating organizer -> campaign -> session -> vault (-> claims)
"""

import os
from dataclasses import dataclass, field
from typing import AsyncGenerator, Optional
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from vaultmint.core.config import Settings
from vaultmint.core.database import create_tables
from vaultmint.models import Campaign, Claim, Organizer, QRSession, Vault
from vaultmint.services.blockchain.ledger import CreateTokenParams, load_signer
from vaultmint.services.vault.keys import VaultKeyCipher
from vaultmint.uow import create_uow_factory

# Well-known development key; never funded on a real network
VAULT_PRIVATE_KEY = bytes.fromhex(
    "4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
)
VAULT_ADDRESS = load_signer(VAULT_PRIVATE_KEY).address
ORGANIZER_WALLET = "0x1234567890123456789012345678901234567890"
RECIPIENT_WALLET = "0xABCdef1234567890123456789012345678901234"
COLLECTION_ADDRESS = "0xC011EC7100000000000000000000000000000001"
ENCRYPTION_KEY = bytes(range(32))


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests."""
    os.environ["TZ"] = "UTC"
    yield


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Provide a fresh SQLite database file per test with every table created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'vaultmint.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def uow_factory(engine):
    """Provide function-scoped UnitOfWork factory bound to the test database."""
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)
    return create_uow_factory(session_factory)


@pytest.fixture
def cipher() -> VaultKeyCipher:
    return VaultKeyCipher(ENCRYPTION_KEY)


@pytest.fixture
def settings() -> Settings:
    return Settings(  # type: ignore[call-arg]
        _env_file=None,
        APP_ENV="test",
        PREPARE_QUEUE_NAME="prepareQueue",
        MINT_QUEUE_NAME="mintQueue",
        PREPARE_CONCURRENCY=5,
        MINT_CONCURRENCY=5,
        JOB_MAX_ATTEMPTS=3,
        JOB_BACKOFF_SECONDS=2.0,
        POLL_INTERVAL_SECONDS=0.01,
    )


class FakeLedger:
    """In-memory ledger recording every call.

    Signers are derived with the real eth_account loader so decryption
    failures and key handling behave as in production.
    """

    def __init__(self, balance: int = 0):
        self.balance = balance
        self.created: list[CreateTokenParams] = []
        self.transfers: list[tuple[str, str, int]] = []
        self.balance_queries: list[str] = []
        self.create_error: Optional[Exception] = None
        self.transfer_error: Optional[Exception] = None
        self.minted = 0

    def load_signer(self, private_key: bytes):
        return load_signer(private_key)

    async def get_balance(self, address: str) -> int:
        self.balance_queries.append(address)
        return self.balance

    async def transfer(self, signer, to_address: str, amount: int) -> str:
        if self.transfer_error is not None:
            raise self.transfer_error
        self.transfers.append((signer.address, to_address, amount))
        self.balance -= amount
        return f"0x{len(self.transfers):064x}"

    async def create_token(self, signer, params: CreateTokenParams) -> str:
        if self.create_error is not None:
            raise self.create_error
        self.created.append(params)
        if params.is_collection:
            return COLLECTION_ADDRESS
        self.minted += 1
        return f"{params.collection}:{self.minted}"


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@dataclass
class Seeded:
    organizer_id: UUID
    campaign_id: UUID
    qr_session_id: UUID
    vault_id: UUID
    claim_ids: list[UUID] = field(default_factory=list)


@pytest.fixture
def seed(uow_factory, cipher):
    """Return a coroutine function creating one fully linked session.

    Keyword arguments override the happy-path defaults, e.g.
    ``await seed(token_uri=None)`` or ``await seed(collection=COLLECTION_ADDRESS, claims=2)``.
    """

    async def _seed(
        *,
        organizer_wallet: Optional[str] = ORGANIZER_WALLET,
        name: str = "Summer Drop",
        token_symbol: Optional[str] = "DROP",
        token_uri: Optional[str] = "ipfs://bafyasset",
        metadata_uri: Optional[str] = "ipfs://bafymetadata",
        max_claims: Optional[int] = 3,
        collection: Optional[str] = None,
        claims: int = 0,
        claim_wallet: Optional[str] = RECIPIENT_WALLET,
    ) -> Seeded:
        async with await uow_factory() as uow:
            organizer = Organizer(wallet_address=organizer_wallet)
            uow.session.add(organizer)
            await uow.session.flush()

            campaign = Campaign(
                name=name,
                token_symbol=token_symbol,
                token_uri=token_uri,
                metadata_uri=metadata_uri,
                organizer_id=organizer.id,
            )
            uow.session.add(campaign)
            await uow.session.flush()

            qr_session = await uow.qr_sessions.add(
                QRSession(campaign_id=campaign.id, max_claims=max_claims, collection=collection)
            )
            vault = await uow.vaults.add(
                Vault(
                    address=VAULT_ADDRESS,
                    encrypted_private_key=cipher.encrypt(VAULT_PRIVATE_KEY),
                    qr_session_id=qr_session.id,
                )
            )

            claim_ids = []
            for _ in range(claims):
                claim = await uow.claims.add(Claim(qr_session_id=qr_session.id, wallet=claim_wallet))
                claim_ids.append(claim.id)

            return Seeded(
                organizer_id=organizer.id,
                campaign_id=campaign.id,
                qr_session_id=qr_session.id,
                vault_id=vault.id,
                claim_ids=claim_ids,
            )

    return _seed
