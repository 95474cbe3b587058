from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable, Optional

from domain.amounts import format_amount, scale_amount
from domain.base_types import NATIVE_DECIMALS, AssetSymbol, WalletAddress
from domain.chain import AggregatedTx, RawTransaction
from domain.directives import Cost, Posting, Transaction, TxFlag
from ledger_config import LedgerConfig

logger = logging.getLogger(__name__)

CONTRACT_EXECUTION = "Contract Execution"

CallDescriber = Callable[[RawTransaction], Optional[str]]


@dataclass(frozen=True)
class TransferLeg:
    """One value movement, already scaled to display units."""

    from_address: WalletAddress
    to_address: WalletAddress
    amount: Decimal
    symbol: AssetSymbol


class PostingSynthesizer:
    """Derive balanced ledger transactions from aggregated chain records.

    Postings come out in a fixed order: gas, token legs, internal legs,
    native leg and finally the elided PnL posting that absorbs whatever the
    ledger cannot balance on its own.
    """

    def __init__(self, ledger_config: LedgerConfig, *, describe_call: CallDescriber | None = None) -> None:
        self.ledger_config = ledger_config
        self.defaults = ledger_config.default_accounts
        self.native_symbol = ledger_config.native_symbol
        self._describe_call = describe_call

    def synthesize_all(self, transactions: Iterable[AggregatedTx]) -> list[Transaction]:
        synthesized = [self.synthesize(tx) for tx in transactions]
        logger.info("Synthesized %d ledger transactions", len(synthesized))
        return synthesized

    def synthesize(self, tx: AggregatedTx) -> Transaction:
        token_legs = self.token_legs(tx)
        internal_legs = self.internal_legs(tx)
        native_legs = self.native_legs(tx)

        postings: list[Posting] = []
        postings.extend(self.gas_postings(tx.transaction))
        postings.extend(self.transfer_postings(token_legs))
        postings.extend(self.transfer_postings(internal_legs))
        postings.extend(self.transfer_postings(native_legs))
        postings.append(Posting(account=self.defaults.pnl))

        return Transaction(
            date=tx.date,
            flag=TxFlag.COMPLETED,
            narration=self.narration(tx, token_legs + internal_legs, native_legs),
            metadata={"tx": tx.hash},
            postings=postings,
        )

    def token_legs(self, tx: AggregatedTx) -> list[TransferLeg]:
        return [
            TransferLeg(
                from_address=transfer.from_address,
                to_address=transfer.to_address,
                amount=scale_amount(transfer.value, transfer.token_decimals),
                symbol=transfer.token_symbol,
            )
            for transfer in tx.token_transfers
        ]

    def internal_legs(self, tx: AggregatedTx) -> list[TransferLeg]:
        return [
            TransferLeg(
                from_address=internal.from_address,
                to_address=internal.to_address,
                amount=scale_amount(internal.value, NATIVE_DECIMALS),
                symbol=self.native_symbol,
            )
            for internal in tx.internal_transfers
            if not internal.is_error
        ]

    def native_legs(self, tx: AggregatedTx) -> list[TransferLeg]:
        raw = tx.transaction
        if not raw.value or raw.is_error:
            return []
        return [
            TransferLeg(
                from_address=raw.from_address,
                to_address=raw.to_address,
                amount=scale_amount(raw.value, NATIVE_DECIMALS),
                symbol=self.native_symbol,
            )
        ]

    def gas_postings(self, raw: RawTransaction) -> list[Posting]:
        connection = self.ledger_config.get_connection(raw.from_address)
        if connection is None:
            return []
        gas = scale_amount(raw.gas_used * raw.gas_price, NATIVE_DECIMALS)
        if not gas:
            return []
        return [
            Posting(account=self.defaults.fee, amount=gas, symbol=self.native_symbol),
            Posting(
                account=connection.asset_account(self.native_symbol),
                amount=-gas,
                symbol=self.native_symbol,
                cost=Cost(),
            ),
        ]

    def transfer_postings(self, legs: list[TransferLeg]) -> list[Posting]:
        """Apply the leg merge policy to one transfer list.

        A single transfer always yields both sides, with default accounts
        standing in for untracked counterparties. In a multi-transfer list
        only sides owned by a tracked wallet produce a posting.
        """
        multi_leg = len(legs) > 1
        postings: list[Posting] = []
        for leg in legs:
            if not leg.amount:
                continue
            source = self.ledger_config.get_connection(leg.from_address)
            target = self.ledger_config.get_connection(leg.to_address)
            if source is not None or not multi_leg:
                account = source.asset_account(leg.symbol) if source else self.defaults.income
                postings.append(Posting(account=account, amount=-leg.amount, symbol=leg.symbol))
            if target is not None or not multi_leg:
                account = target.asset_account(leg.symbol) if target else self.defaults.expenses
                postings.append(Posting(account=account, amount=leg.amount, symbol=leg.symbol))
        return postings

    def narration(self, tx: AggregatedTx, transfers: list[TransferLeg], native: list[TransferLeg]) -> str:
        if not transfers and not native:
            return self._contract_narration(tx.transaction)
        if not transfers:
            return self._directional(native[0])
        if len(transfers) == 1 and not native:
            return self._directional(transfers[0])
        return self._exchange(transfers + native)

    def label(self, address: str) -> str:
        connection = self.ledger_config.get_connection(address)
        return connection.account_prefix if connection else address

    def _contract_narration(self, raw: RawTransaction) -> str:
        if self._describe_call is None:
            return CONTRACT_EXECUTION
        return self._describe_call(raw) or CONTRACT_EXECUTION

    def _directional(self, leg: TransferLeg) -> str:
        source = self.ledger_config.get_connection(leg.from_address)
        target = self.ledger_config.get_connection(leg.to_address)
        quantity = f"{format_amount(leg.amount)} {leg.symbol}"
        if target is not None and source is None:
            return f"Received {quantity} from {self.label(leg.from_address)}"
        if source is not None and target is None:
            return f"Sent {quantity} to {self.label(leg.to_address)}"
        return f"Transfer {quantity} from {self.label(leg.from_address)} to {self.label(leg.to_address)}"

    def _exchange(self, legs: list[TransferLeg]) -> str:
        outgoing: list[str] = []
        incoming: list[str] = []
        for leg in legs:
            if not leg.amount:
                continue
            if self.ledger_config.get_connection(leg.from_address) and leg.symbol not in outgoing:
                outgoing.append(leg.symbol)
            if self.ledger_config.get_connection(leg.to_address) and leg.symbol not in incoming:
                incoming.append(leg.symbol)
        return f"Exchange {','.join(outgoing)} -> {','.join(incoming)}"


__all__ = ["CONTRACT_EXECUTION", "CallDescriber", "PostingSynthesizer", "TransferLeg"]
