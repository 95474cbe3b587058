from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from time import perf_counter
from typing import Any, Protocol

from db.transactions_cache import TransactionsCacheRepository
from domain.balance_tracker import RunningBalances
from domain.base_types import AssetSymbol, TxHash, WalletAddress
from domain.chain import AggregatedTx, InternalTransfer, RawTransaction, TokenTransfer
from ledger_config import ETHEREUM, Connection, LedgerConfig

logger = logging.getLogger(__name__)


class IntegrityError(RuntimeError):
    """An internal transfer points at a transaction no feed has reported."""

    def __init__(self, tx_hash: str, address: str) -> None:
        super().__init__(f"Internal transfer {tx_hash} for {address} has no owning transaction")
        self.tx_hash = tx_hash
        self.address = address


class ChainGateway(Protocol):
    async def get_transaction_list(self, address: str) -> list[dict[str, Any]]: ...

    async def get_token_transfer_list(self, address: str) -> list[dict[str, Any]]: ...

    async def get_internal_transfer_list(self, address: str) -> list[dict[str, Any]]: ...

    async def get_transaction(self, tx_hash: str) -> dict[str, Any]: ...


@dataclass(frozen=True)
class TokenInfo:
    symbol: AssetSymbol
    contract_address: WalletAddress
    decimals: int


@dataclass
class AddressActivity:
    connection: Connection
    tokens: dict[AssetSymbol, TokenInfo] = field(default_factory=dict)
    last_timestamp: int = 0
    last_block: int = 0

    def observe(self, timestamp: int, block_number: int) -> None:
        self.last_timestamp = max(self.last_timestamp, timestamp)
        self.last_block = max(self.last_block, block_number)


@dataclass
class AggregationResult:
    transactions: list[AggregatedTx]
    activity: dict[WalletAddress, AddressActivity]
    balances: RunningBalances

    @property
    def last_transaction(self) -> AggregatedTx | None:
        return self.transactions[-1] if self.transactions else None

    @property
    def last_date(self) -> date | None:
        last = self.last_transaction
        return last.date if last is not None else None

    @property
    def last_block(self) -> int:
        return max((tx.transaction.block_number for tx in self.transactions), default=0)


class TransactionAggregator:
    """Merge the per-address feeds into one record per transaction hash.

    The hash map is shared across connections, so a transfer between two
    tracked wallets ends up as a single record. Missing transactions referenced
    by token transfers are backfilled one at a time.
    """

    def __init__(
        self,
        gateway: ChainGateway,
        ledger_config: LedgerConfig,
        *,
        cache: TransactionsCacheRepository | None = None,
    ) -> None:
        self.gateway = gateway
        self.ledger_config = ledger_config
        self.cache = cache
        self.by_hash: dict[TxHash, AggregatedTx] = {}
        self.activity: dict[WalletAddress, AddressActivity] = {}
        self.backfilled = 0

    async def aggregate(self) -> AggregationResult:
        started = perf_counter()
        for connection in self.ledger_config.connections:
            if connection.type != ETHEREUM:
                logger.info("Skipping %s connection %s", connection.type, connection.account_prefix)
                continue
            await self.aggregate_address(connection)

        result = self.result()
        logger.info(
            "Aggregated %d transactions for %d addresses (%d backfilled) in %.2fs",
            len(result.transactions),
            len(self.activity),
            self.backfilled,
            perf_counter() - started,
        )
        return result

    async def aggregate_address(self, connection: Connection) -> None:
        address = connection.address
        transactions = await self.gateway.get_transaction_list(address)
        token_transfers = await self.gateway.get_token_transfer_list(address)
        internal_transfers = await self.gateway.get_internal_transfer_list(address)
        logger.info(
            "Fetched %s: %d transactions, %d token transfers, %d internal transfers",
            connection.account_prefix,
            len(transactions),
            len(token_transfers),
            len(internal_transfers),
        )
        await self.add_feeds(connection, transactions, token_transfers, internal_transfers)

    async def add_feeds(
        self,
        connection: Connection,
        transactions: list[dict[str, Any]],
        token_transfers: list[dict[str, Any]],
        internal_transfers: list[dict[str, Any]],
    ) -> None:
        activity = self.activity.setdefault(connection.address, AddressActivity(connection=connection))

        for entry in transactions:
            raw = RawTransaction.model_validate(entry)
            activity.observe(raw.timestamp, raw.block_number)
            if raw.hash not in self.by_hash:
                self.by_hash[raw.hash] = AggregatedTx(transaction=raw)

        for entry in token_transfers:
            transfer = TokenTransfer.model_validate(entry)
            if transfer.token_symbol in self.ledger_config.exclude_assets:
                continue
            activity.observe(transfer.timestamp, transfer.block_number)
            activity.tokens.setdefault(
                transfer.token_symbol,
                TokenInfo(
                    symbol=transfer.token_symbol,
                    contract_address=transfer.contract_address,
                    decimals=transfer.token_decimals,
                ),
            )
            aggregated = self.by_hash.get(transfer.hash)
            if aggregated is None:
                aggregated = await self._backfill(transfer)
            aggregated.add_token_transfer(transfer)

        for entry in internal_transfers:
            internal = InternalTransfer.model_validate(entry)
            aggregated = self.by_hash.get(internal.hash)
            if aggregated is None:
                raise IntegrityError(internal.hash, connection.address)
            activity.observe(internal.timestamp, internal.block_number)
            aggregated.add_internal_transfer(internal)

    def result(self) -> AggregationResult:
        ordered = sorted(self.by_hash.values(), key=lambda tx: tx.timestamp)
        balances = RunningBalances(set(self.activity))
        for tx in ordered:
            balances.apply_transaction(tx)
        return AggregationResult(transactions=ordered, activity=dict(self.activity), balances=balances)

    async def _backfill(self, transfer: TokenTransfer) -> AggregatedTx:
        record = self.cache.get(transfer.hash) if self.cache is not None else None
        if record is None:
            logger.info("Backfilling transaction %s", transfer.hash)
            record = await self.gateway.get_transaction(transfer.hash)
            if self.cache is not None:
                self.cache.put(transfer.hash, record)
        else:
            logger.debug("Backfilled transaction %s from cache", transfer.hash)

        # The proxy API carries no timestamp; the transfer event has it.
        raw = RawTransaction.model_validate({**record, "timeStamp": transfer.timestamp})
        aggregated = AggregatedTx(transaction=raw)
        self.by_hash[transfer.hash] = aggregated
        self.backfilled += 1
        return aggregated


__all__ = [
    "AddressActivity",
    "AggregationResult",
    "ChainGateway",
    "IntegrityError",
    "TokenInfo",
    "TransactionAggregator",
]
