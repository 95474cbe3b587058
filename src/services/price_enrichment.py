from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from time import perf_counter
from typing import Iterable

from domain.base_types import AssetSymbol, CoinId
from domain.directives import Cost, Posting, Price, Transaction
from ledger_config import Coin

from .coingecko_client import HistoryPrice
from .gateways import CoinGeckoGateway
from .price_store import PriceStore
from .price_types import PriceQuote

logger = logging.getLogger(__name__)

INCOME_ROOT = "Income"
PriceKey = tuple[date, CoinId]


def is_income_account(account: str) -> bool:
    return account.split(":", 1)[0] == INCOME_ROOT


def apply_cost(postings: Iterable[Posting], rate: Decimal, fiat: str) -> None:
    """Attach cost basis to one (date, coin) group.

    Inflows and income legs get a definite cost; outflows get an ambiguous
    cost so the ledger books them against existing lots.
    """
    for posting in postings:
        if posting.amount is None:
            continue
        if posting.amount >= 0 or is_income_account(posting.account):
            posting.cost = Cost(amount=rate, symbol=fiat)
        else:
            posting.cost = Cost()


class PriceEnrichment:
    def __init__(
        self,
        gateway: CoinGeckoGateway,
        *,
        coins: Iterable[Coin],
        fiat: str,
        store: PriceStore | None = None,
    ) -> None:
        self.gateway = gateway
        self.coins = list(coins)
        self.coin_ids: dict[AssetSymbol, CoinId] = {coin.symbol: coin.id for coin in self.coins}
        self.fiat = fiat.upper()
        self.store = store

    def group_postings(self, transactions: Iterable[Transaction]) -> dict[PriceKey, list[Posting]]:
        groups: dict[PriceKey, list[Posting]] = defaultdict(list)
        for transaction in transactions:
            for posting in transaction.postings:
                if posting.amount is None:
                    continue
                coin_id = self.coin_ids.get(AssetSymbol(posting.symbol))
                if coin_id is None:
                    continue
                groups[(transaction.date, coin_id)].append(posting)
        return groups

    async def enrich(self, transactions: Iterable[Transaction]) -> int:
        """Price every watched posting; returns the number of groups priced."""
        groups = self.group_postings(transactions)
        if not groups:
            return 0

        started = perf_counter()
        rates: dict[PriceKey, Decimal] = {}
        pending: list[PriceKey] = []
        for key in groups:
            cached = self._cached_rate(key)
            if cached is not None:
                rates[key] = cached
            else:
                pending.append(key)

        tasks = [asyncio.create_task(self.gateway.get_history_price(day, coin_id)) for day, coin_id in pending]
        results: list[HistoryPrice] = list(await asyncio.gather(*tasks))
        for key, result in zip(pending, results):
            rate = self._rate_from_result(key, result)
            if rate is not None:
                rates[key] = rate

        for key, rate in rates.items():
            apply_cost(groups[key], rate, self.fiat)

        logger.info(
            "Priced %d/%d (date, coin) groups (%d from cache) in %.2fs",
            len(rates),
            len(groups),
            len(groups) - len(pending),
            perf_counter() - started,
        )
        return len(rates)

    async def latest_prices(self, today: date) -> list[Price]:
        if not self.coins:
            return []
        current = await self.gateway.get_current_prices([coin.id for coin in self.coins], self.fiat)
        directives: list[Price] = []
        for coin in self.coins:
            rate = current.get(coin.id)
            if rate is None:
                logger.warning("No current %s price for %s", self.fiat, coin.id)
                continue
            directives.append(Price(date=today, holding=coin.symbol, amount=rate, symbol=self.fiat))
        return directives

    def _cached_rate(self, key: PriceKey) -> Decimal | None:
        if self.store is None:
            return None
        day, coin_id = key
        quote = self.store.read_day(coin_id, self.fiat, day)
        return quote.rate if quote is not None else None

    def _rate_from_result(self, key: PriceKey, result: HistoryPrice) -> Decimal | None:
        day, coin_id = key
        if result.error:
            logger.warning("Price lookup for %s on %s failed: %s", coin_id, day.isoformat(), result.error)
            return None
        rate = result.price_in(self.fiat)
        if rate is None:
            logger.warning("No %s price for %s on %s", self.fiat, coin_id, day.isoformat())
            return None
        if self.store is not None:
            self.store.write(
                PriceQuote.for_day(coin_id=coin_id, fiat=self.fiat, rate=rate, source="coingecko", day=day)
            )
        return rate


__all__ = ["PriceEnrichment", "apply_cost", "is_income_account"]
