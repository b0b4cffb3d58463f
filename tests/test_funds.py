"""Vault fund reconciliation tests.

Tests cover:
- Reservation formula and minor-unit rounding
- Refund of exactly balance - reserved (Scenario A at 9 and 18 decimals)
- No-op cases: no organizer wallet, no claim cap, balance within reserve
- Transfer failures propagate
- reconcile_vault maintenance entry point
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from tests.conftest import ORGANIZER_WALLET, VAULT_ADDRESS, VAULT_PRIVATE_KEY, FakeLedger
from vaultmint.models import Organizer, QRSession
from vaultmint.services.blockchain.ledger import load_signer
from vaultmint.services.exceptions import TransactionTimeoutError
from vaultmint.services.vault.funds import (
    VaultFundManager,
    from_minor_units,
    reserved_amount,
    to_minor_units,
)

COST = Decimal("0.000005")
BUFFER = Decimal("0.01")


def make_manager(ledger: FakeLedger, decimals: int = 9, **kwargs) -> VaultFundManager:
    return VaultFundManager(
        ledger=ledger, per_transfer_cost=COST, fixed_buffer=BUFFER, decimals=decimals, **kwargs
    )


def make_session(max_claims) -> QRSession:
    return QRSession(campaign_id=uuid4(), max_claims=max_claims)


@pytest.fixture
def signer():
    return load_signer(VAULT_PRIVATE_KEY)


def test_reserved_amount_formula():
    assert reserved_amount(3, COST, BUFFER) == Decimal("0.010015")
    assert reserved_amount(0, COST, BUFFER) == BUFFER
    for max_claims in (0, 1, 7, 250, 10_000):
        assert reserved_amount(max_claims, COST, BUFFER) == max_claims * COST + BUFFER


def test_reserved_amount_rejects_negative_claims():
    with pytest.raises(ValueError):
        reserved_amount(-1, COST, BUFFER)


def test_to_minor_units_rounds_up():
    assert to_minor_units(Decimal("0.010015"), 9) == 10_015_000
    assert to_minor_units(Decimal("0.0000000001"), 9) == 1
    assert from_minor_units(10_015_000, 9) == Decimal("0.010015")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "decimals,balance,reserved,refund",
    [
        (9, 50_000_000, 10_015_000, 39_985_000),
        (18, 50_000_000_000_000_000, 10_015_000_000_000_000, 39_985_000_000_000_000),
    ],
)
async def test_reconcile_refunds_surplus(signer, decimals, balance, reserved, refund):
    """Scenario A: maxClaims=3, balance 0.05 -> reserve 0.010015, refund 0.039985."""
    ledger = FakeLedger(balance=balance)
    manager = make_manager(ledger, decimals=decimals)

    result = await manager.reconcile(
        signer, make_session(3), Organizer(wallet_address=ORGANIZER_WALLET)
    )

    assert ledger.transfers == [(VAULT_ADDRESS, ORGANIZER_WALLET, refund)]
    assert result.reserved == reserved
    assert result.refunded == refund
    assert result.transferred
    assert result.tx_hash is not None
    assert ledger.balance == reserved


@pytest.mark.asyncio
async def test_reconcile_without_organizer_wallet_never_transfers(signer):
    ledger = FakeLedger(balance=10**18)
    manager = make_manager(ledger)

    for organizer in (None, Organizer(wallet_address=None), Organizer(wallet_address="")):
        result = await manager.reconcile(signer, make_session(3), organizer)
        assert result.skipped_reason == "organizer_wallet_missing"

    assert ledger.transfers == []
    assert ledger.balance_queries == []


@pytest.mark.asyncio
@pytest.mark.parametrize("max_claims", [None, 0])
async def test_reconcile_without_claim_cap_is_noop(signer, max_claims):
    ledger = FakeLedger(balance=10**18)

    result = await make_manager(ledger).reconcile(
        signer, make_session(max_claims), Organizer(wallet_address=ORGANIZER_WALLET)
    )

    assert result.skipped_reason == "max_claims_unset"
    assert ledger.transfers == []


@pytest.mark.asyncio
@pytest.mark.parametrize("balance", [0, 9_000_000, 10_015_000])
async def test_reconcile_within_reserve_is_noop(signer, balance):
    ledger = FakeLedger(balance=balance)

    result = await make_manager(ledger).reconcile(
        signer, make_session(3), Organizer(wallet_address=ORGANIZER_WALLET)
    )

    assert result.skipped_reason == "nothing_to_refund"
    assert result.refunded == 0
    assert ledger.transfers == []


@pytest.mark.asyncio
async def test_reconcile_transfer_failure_propagates(signer):
    ledger = FakeLedger(balance=50_000_000)
    ledger.transfer_error = TransactionTimeoutError("confirmation timeout")

    with pytest.raises(TransactionTimeoutError):
        await make_manager(ledger).reconcile(
            signer, make_session(3), Organizer(wallet_address=ORGANIZER_WALLET)
        )


@pytest.mark.asyncio
async def test_reconcile_vault_loads_and_refunds(seed, uow_factory, cipher):
    seeded = await seed(max_claims=3)
    ledger = FakeLedger(balance=50_000_000)
    manager = make_manager(ledger, uow_factory=uow_factory, cipher=cipher)

    result = await manager.reconcile_vault(seeded.vault_id)

    assert result.refunded == 39_985_000
    assert ledger.transfers == [(VAULT_ADDRESS, ORGANIZER_WALLET, 39_985_000)]


@pytest.mark.asyncio
async def test_reconcile_vault_unknown_vault_is_skipped(uow_factory, cipher):
    ledger = FakeLedger(balance=50_000_000)
    manager = make_manager(ledger, uow_factory=uow_factory, cipher=cipher)

    result = await manager.reconcile_vault(uuid4())

    assert result.skipped_reason == "vault_not_found"
    assert ledger.transfers == []


@pytest.mark.asyncio
async def test_reconcile_vault_requires_store_and_cipher():
    with pytest.raises(RuntimeError):
        await make_manager(FakeLedger()).reconcile_vault(uuid4())
