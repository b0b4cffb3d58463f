"""Collection preparation tests.

Tests cover:
- Scenario C: campaign missing token_uri completes without an on-chain call
- Happy path stores the collection and refunds the vault surplus
- Already prepared sessions are never prepared twice
- Losing the store race raises DuplicateCollectionError
- Decryption and ledger failures propagate without persisting anything
- A store failure after creation raises CollectionRecordError with the orphaned address
- Progress reporting runs only after the collection is stored
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from tests.conftest import COLLECTION_ADDRESS, ORGANIZER_WALLET, FakeLedger
from vaultmint.repositories.qr_session import QRSessionRepository
from vaultmint.services.exceptions import (
    CollectionRecordError,
    DuplicateCollectionError,
    TransactionRevertError,
    VaultKeyDecryptionError,
)
from vaultmint.services.minting.collection import CollectionPreparer
from vaultmint.services.vault.funds import VaultFundManager
from vaultmint.services.vault.keys import VaultKeyCipher


def make_fund_manager(ledger: FakeLedger) -> VaultFundManager:
    return VaultFundManager(
        ledger=ledger,
        per_transfer_cost=Decimal("0.000005"),
        fixed_buffer=Decimal("0.01"),
        decimals=9,
    )


async def stored_collection(uow_factory, qr_session_id):
    async with await uow_factory() as uow:
        qr_session = await uow.qr_sessions.get_by_id(qr_session_id)
        return qr_session.collection


@pytest.mark.asyncio
async def test_missing_token_uri_skips_without_ledger_call(seed, uow_factory, cipher, ledger):
    """Scenario C: prepare for a campaign without token_uri leaves collection unset."""
    seeded = await seed(token_uri=None)
    preparer = CollectionPreparer(uow_factory, ledger, cipher, make_fund_manager(ledger))

    await preparer.prepare(seeded.vault_id)

    assert ledger.created == []
    assert ledger.transfers == []
    assert await stored_collection(uow_factory, seeded.qr_session_id) is None


@pytest.mark.asyncio
async def test_unknown_vault_is_skipped(uow_factory, cipher, ledger):
    preparer = CollectionPreparer(uow_factory, ledger, cipher)

    await preparer.prepare(uuid4())

    assert ledger.created == []


@pytest.mark.asyncio
async def test_prepare_creates_collection_and_refunds(seed, uow_factory, cipher):
    ledger = FakeLedger(balance=50_000_000)
    seeded = await seed(max_claims=3)
    preparer = CollectionPreparer(uow_factory, ledger, cipher, make_fund_manager(ledger))
    progress = []

    async def report(value):
        progress.append(value)

    await preparer.prepare(seeded.vault_id, progress=report)

    assert await stored_collection(uow_factory, seeded.qr_session_id) == COLLECTION_ADDRESS
    assert len(ledger.created) == 1
    params = ledger.created[0]
    assert params.is_collection is True
    assert params.is_mutable is False
    assert params.seller_fee_basis_points == 0
    assert params.name == "Summer Drop Collection"
    assert params.symbol == "DROP"
    assert params.uri == "ipfs://bafyasset"
    assert ledger.transfers[0][1:] == (ORGANIZER_WALLET, 39_985_000)
    assert progress == [50]


@pytest.mark.asyncio
async def test_prepare_without_fund_manager_does_not_refund(seed, uow_factory, cipher):
    ledger = FakeLedger(balance=50_000_000)
    seeded = await seed()

    await CollectionPreparer(uow_factory, ledger, cipher).prepare(seeded.vault_id)

    assert await stored_collection(uow_factory, seeded.qr_session_id) == COLLECTION_ADDRESS
    assert ledger.transfers == []
    assert ledger.balance_queries == []


@pytest.mark.asyncio
async def test_already_prepared_session_only_refunds(seed, uow_factory, cipher):
    ledger = FakeLedger(balance=50_000_000)
    seeded = await seed(collection="0xEXISTING")
    preparer = CollectionPreparer(uow_factory, ledger, cipher, make_fund_manager(ledger))

    await preparer.prepare(seeded.vault_id)

    assert ledger.created == []
    assert len(ledger.transfers) == 1
    assert await stored_collection(uow_factory, seeded.qr_session_id) == "0xEXISTING"


@pytest.mark.asyncio
async def test_prepare_twice_creates_one_collection(seed, uow_factory, cipher, ledger):
    seeded = await seed()
    preparer = CollectionPreparer(uow_factory, ledger, cipher)

    await preparer.prepare(seeded.vault_id)
    await preparer.prepare(seeded.vault_id)

    assert len(ledger.created) == 1


@pytest.mark.asyncio
async def test_lost_store_race_raises_duplicate(seed, uow_factory, cipher):
    """Another job stores a collection while this one is creating its own."""
    seeded = await seed()

    class RacingLedger(FakeLedger):
        async def create_token(self, signer, params):
            async with await uow_factory() as uow:
                await uow.qr_sessions.set_collection(seeded.qr_session_id, "0xWINNER")
            return await super().create_token(signer, params)

    ledger = RacingLedger()

    with pytest.raises(DuplicateCollectionError, match=COLLECTION_ADDRESS):
        await CollectionPreparer(uow_factory, ledger, cipher).prepare(seeded.vault_id)

    assert await stored_collection(uow_factory, seeded.qr_session_id) == "0xWINNER"


@pytest.mark.asyncio
async def test_decryption_failure_propagates(seed, uow_factory, ledger):
    seeded = await seed()
    wrong_cipher = VaultKeyCipher(bytes(32))

    with pytest.raises(VaultKeyDecryptionError):
        await CollectionPreparer(uow_factory, ledger, wrong_cipher).prepare(seeded.vault_id)

    assert ledger.created == []
    assert await stored_collection(uow_factory, seeded.qr_session_id) is None


@pytest.mark.asyncio
async def test_ledger_failure_persists_nothing(seed, uow_factory, cipher, ledger):
    seeded = await seed()
    ledger.create_error = TransactionRevertError("reverted")

    with pytest.raises(TransactionRevertError):
        await CollectionPreparer(uow_factory, ledger, cipher).prepare(seeded.vault_id)

    assert await stored_collection(uow_factory, seeded.qr_session_id) is None


@pytest.mark.asyncio
async def test_store_failure_raises_with_orphaned_collection(
    seed, uow_factory, cipher, ledger, monkeypatch
):
    seeded = await seed()

    async def broken_set_collection(self, qr_session_id, collection):
        raise ConnectionError("store down")

    monkeypatch.setattr(QRSessionRepository, "set_collection", broken_set_collection)

    with pytest.raises(CollectionRecordError, match=COLLECTION_ADDRESS):
        await CollectionPreparer(uow_factory, ledger, cipher).prepare(seeded.vault_id)

    assert len(ledger.created) == 1
    assert await stored_collection(uow_factory, seeded.qr_session_id) is None


@pytest.mark.asyncio
async def test_progress_failure_after_store_never_creates_second_collection(
    seed, uow_factory, cipher
):
    """Scenario:
    1. Collection is created and stored
    2. Progress reporting then fails and the job is retried
    3. The retry sees the session prepared and only refunds
    """
    ledger = FakeLedger(balance=50_000_000)
    seeded = await seed(max_claims=3)
    preparer = CollectionPreparer(uow_factory, ledger, cipher, make_fund_manager(ledger))

    async def broken_progress(value):
        raise ConnectionError("store down")

    with pytest.raises(ConnectionError):
        await preparer.prepare(seeded.vault_id, progress=broken_progress)

    assert await stored_collection(uow_factory, seeded.qr_session_id) == COLLECTION_ADDRESS
    assert ledger.transfers == []

    await preparer.prepare(seeded.vault_id)

    assert len(ledger.created) == 1
    assert ledger.transfers[0][1:] == (ORGANIZER_WALLET, 39_985_000)
