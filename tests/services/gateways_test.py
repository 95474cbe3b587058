from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import cast
from unittest.mock import Mock

import pytest

from services.coingecko_client import CoinGeckoClient, HistoryPrice
from services.etherscan_client import EtherscanClient
from services.gateways import COINGECKO_MIN_INTERVAL, ETHERSCAN_MIN_INTERVAL, CoinGeckoGateway, EtherscanGateway
from services.rate_limiter import RateLimiter


def test_default_limiters_match_provider_limits() -> None:
    etherscan = EtherscanGateway(cast(EtherscanClient, Mock()))
    coingecko = CoinGeckoGateway(cast(CoinGeckoClient, Mock()))

    assert etherscan.limiter.min_interval == ETHERSCAN_MIN_INTERVAL == 0.2
    assert coingecko.limiter.min_interval == COINGECKO_MIN_INTERVAL == 0.6
    assert etherscan.limiter.max_concurrent == coingecko.limiter.max_concurrent == 1
    assert etherscan.limiter is not coingecko.limiter


@pytest.mark.asyncio
async def test_etherscan_gateway_routes_each_call_through_limiter(no_delay_limiter: RateLimiter) -> None:
    client = Mock(spec=EtherscanClient)
    client.get_transaction_list.return_value = [{"hash": "0x01"}]
    client.get_token_transfer_list.return_value = []
    client.get_internal_transfer_list.return_value = []
    client.get_token_balance.return_value = "5"
    client.get_source_code.return_value = None
    client.get_transaction_by_hash.return_value = {"hash": "0x02", "from": "0xa", "value": "0x1"}
    client.get_transaction_receipt.return_value = {"gasUsed": "0x2", "blockNumber": "0x3"}
    client.merge_transaction.side_effect = EtherscanClient.merge_transaction
    gateway = EtherscanGateway(client, no_delay_limiter)

    assert await gateway.get_transaction_list("0xabc") == [{"hash": "0x01"}]
    assert await gateway.get_token_transfer_list("0xabc") == []
    assert await gateway.get_internal_transfer_list("0xabc") == []
    assert await gateway.get_token_balance("0xc", "0xabc", 7) == "5"
    assert await gateway.get_source_code("0xc") is None
    backfilled = await gateway.get_transaction("0x02")

    assert backfilled["value"] == "1"
    assert backfilled["gasUsed"] == "2"
    # Backfill spends one limited request per proxy call.
    assert no_delay_limiter.dispatched == 7
    client.get_token_balance.assert_called_once_with("0xc", "0xabc", 7)


@pytest.mark.asyncio
async def test_coingecko_gateway_delegates(no_delay_limiter: RateLimiter) -> None:
    client = Mock(spec=CoinGeckoClient)
    snapshot = HistoryPrice(coin_id="ethereum", date=date(2020, 1, 5), prices={"eur": Decimal("116")})
    client.get_history_price.return_value = snapshot
    client.get_current_prices.return_value = {"ethereum": Decimal("2000")}
    gateway = CoinGeckoGateway(client, no_delay_limiter)

    assert await gateway.get_history_price(date(2020, 1, 5), "ethereum") is snapshot
    assert await gateway.get_current_prices(iter(["ethereum"]), "EUR") == {"ethereum": Decimal("2000")}
    client.get_current_prices.assert_called_once_with(["ethereum"], "EUR")
