from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Iterable

from .coingecko_client import CoinGeckoClient, HistoryPrice
from .etherscan_client import ContractSource, EtherscanClient
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

ETHERSCAN_MIN_INTERVAL = 0.2
COINGECKO_MIN_INTERVAL = 0.6


class EtherscanGateway:
    """Async facade over :class:`EtherscanClient`; every call is one limited request."""

    def __init__(self, client: EtherscanClient, limiter: RateLimiter | None = None) -> None:
        self.client = client
        self.limiter = limiter or RateLimiter(min_interval=ETHERSCAN_MIN_INTERVAL, max_concurrent=1, name="etherscan")

    async def get_transaction_list(self, address: str) -> list[dict[str, Any]]:
        return await self.limiter.run(self.client.get_transaction_list, address)

    async def get_token_transfer_list(self, address: str) -> list[dict[str, Any]]:
        return await self.limiter.run(self.client.get_token_transfer_list, address)

    async def get_internal_transfer_list(self, address: str) -> list[dict[str, Any]]:
        return await self.limiter.run(self.client.get_internal_transfer_list, address)

    async def get_transaction(self, tx_hash: str) -> dict[str, Any]:
        tx = await self.limiter.run(self.client.get_transaction_by_hash, tx_hash)
        receipt = await self.limiter.run(self.client.get_transaction_receipt, tx_hash)
        return self.client.merge_transaction(tx_hash, tx, receipt)

    async def get_token_balance(self, contract_address: str, address: str, block_number: int) -> str:
        return await self.limiter.run(self.client.get_token_balance, contract_address, address, block_number)

    async def get_source_code(self, address: str) -> ContractSource | None:
        return await self.limiter.run(self.client.get_source_code, address)


class CoinGeckoGateway:
    def __init__(self, client: CoinGeckoClient, limiter: RateLimiter | None = None) -> None:
        self.client = client
        self.limiter = limiter or RateLimiter(min_interval=COINGECKO_MIN_INTERVAL, max_concurrent=1, name="coingecko")

    async def get_history_price(self, on: date, coin_id: str) -> HistoryPrice:
        return await self.limiter.run(self.client.get_history_price, on, coin_id)

    async def get_current_prices(self, coin_ids: Iterable[str], fiat: str) -> dict[str, Decimal]:
        return await self.limiter.run(self.client.get_current_prices, list(coin_ids), fiat)


__all__ = ["COINGECKO_MIN_INTERVAL", "CoinGeckoGateway", "ETHERSCAN_MIN_INTERVAL", "EtherscanGateway"]
