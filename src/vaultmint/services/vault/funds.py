"""Vault fund reconciliation.

Keeps enough balance in a vault to pay for every outstanding mint and
returns the surplus to the campaign organizer.

Reservation formula (major units):

    reserved = max_claims * per_transfer_cost + fixed_buffer

The fixed buffer absorbs fee volatility and minimum-balance rules. The
reserved amount is rounded up to the ledger's minor unit, so rounding can
only ever keep more in the vault, never less.
"""

from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal
from typing import Optional
from uuid import UUID

import structlog
from eth_account.signers.local import LocalAccount

from vaultmint.core.timing import timed
from vaultmint.models.organizer import Organizer
from vaultmint.models.qr_session import QRSession
from vaultmint.services.blockchain.ledger import LedgerClient
from vaultmint.services.vault.keys import VaultKeyCipher

logger = structlog.get_logger(__name__)


def reserved_amount(max_claims: int, per_transfer_cost: Decimal, fixed_buffer: Decimal) -> Decimal:
    """Exact reserve in major units for a session with max_claims claims.

    Raises:
        ValueError: If max_claims is negative
    """
    if max_claims < 0:
        raise ValueError("max_claims cannot be negative")
    return Decimal(max_claims) * per_transfer_cost + fixed_buffer


def to_minor_units(amount: Decimal, decimals: int) -> int:
    """Convert a major-unit amount to minor units, rounding up."""
    scaled = amount * (Decimal(10) ** decimals)
    return int(scaled.to_integral_value(rounding=ROUND_CEILING))


def from_minor_units(amount: int, decimals: int) -> Decimal:
    return Decimal(amount) / (Decimal(10) ** decimals)


@dataclass
class RefundResult:
    """Outcome of a reconcile call. Amounts are in minor units."""

    balance: int = 0
    reserved: int = 0
    refunded: int = 0
    tx_hash: Optional[str] = None
    skipped_reason: Optional[str] = None

    @property
    def transferred(self) -> bool:
        return self.refunded > 0


class VaultFundManager:
    """Computes a vault's reserve and refunds the surplus to the organizer."""

    def __init__(
        self,
        ledger: LedgerClient,
        per_transfer_cost: Decimal,
        fixed_buffer: Decimal,
        decimals: int,
        uow_factory=None,
        cipher: VaultKeyCipher | None = None,
    ):
        """
        Args:
            ledger: Ledger client used for balance queries and transfers
            per_transfer_cost: Cost of one mint, in major units
            fixed_buffer: Amount always kept in the vault, in major units
            decimals: Minor units per major unit, as a power of ten
            uow_factory: Unit of Work factory (only needed by reconcile_vault)
            cipher: Vault key cipher (only needed by reconcile_vault)
        """
        self.ledger = ledger
        self.per_transfer_cost = per_transfer_cost
        self.fixed_buffer = fixed_buffer
        self.decimals = decimals
        self.uow_factory = uow_factory
        self.cipher = cipher

    def reserved_minor_units(self, max_claims: int) -> int:
        return to_minor_units(
            reserved_amount(max_claims, self.per_transfer_cost, self.fixed_buffer),
            self.decimals,
        )

    async def reconcile(
        self,
        signer: LocalAccount,
        session: QRSession,
        organizer: Organizer | None,
    ) -> RefundResult:
        """Refund everything above the reserve to the organizer.

        No transfer happens when the organizer has no wallet, the session has
        no claim cap (None or 0 both count as unset), or the balance does not
        exceed the reserve.

        Args:
            signer: Vault signing account
            session: Session the vault funds (provides max_claims)
            organizer: Refund destination

        Returns:
            RefundResult describing what was moved

        Raises:
            TransientError / PermanentError: Balance query or transfer failed;
                the transfer is confirmed before this method returns
        """
        log = logger.bind(qr_session_id=str(session.id), vault_address=signer.address)

        if organizer is None or not organizer.wallet_address:
            log.info("refund.skipped", reason="organizer_wallet_missing")
            return RefundResult(skipped_reason="organizer_wallet_missing")

        if not session.max_claims:
            log.info("refund.skipped", reason="max_claims_unset")
            return RefundResult(skipped_reason="max_claims_unset")

        reserved = self.reserved_minor_units(session.max_claims)
        balance = await self.ledger.get_balance(signer.address)

        if balance <= reserved:
            log.info("refund.skipped", reason="nothing_to_refund", balance=balance, reserved=reserved)
            return RefundResult(balance=balance, reserved=reserved, skipped_reason="nothing_to_refund")

        surplus = balance - reserved
        with timed("refund.transfer", qr_session_id=str(session.id)):
            tx_hash = await self.ledger.transfer(signer, organizer.wallet_address, surplus)

        log.info(
            "refund.completed",
            tx_hash=tx_hash,
            refunded=str(from_minor_units(surplus, self.decimals)),
            reserved=str(from_minor_units(reserved, self.decimals)),
            organizer_wallet=organizer.wallet_address,
        )
        return RefundResult(balance=balance, reserved=reserved, refunded=surplus, tx_hash=tx_hash)

    async def reconcile_vault(self, vault_id: UUID) -> RefundResult:
        """Maintenance entry point: load a vault by id and reconcile it.

        A missing vault or session is a soft skip, matching the job policy
        for missing data.
        """
        if self.uow_factory is None or self.cipher is None:
            raise RuntimeError("reconcile_vault requires uow_factory and cipher")

        async with await self.uow_factory() as uow:
            context = await uow.vaults.get_with_context(vault_id)

        if context is None or context.session is None:
            logger.warning("refund.vault_not_found", vault_id=str(vault_id))
            return RefundResult(skipped_reason="vault_not_found")

        signer = self.ledger.load_signer(self.cipher.decrypt(context.vault.encrypted_private_key))
        return await self.reconcile(signer, context.session, context.organizer)
