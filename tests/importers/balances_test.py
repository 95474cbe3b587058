from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import cast

import pytest

from importers.etherscan.aggregator import ChainGateway, TransactionAggregator
from importers.etherscan.balances import balance_assertions, balance_date
from ledger_config import LedgerConfig
from tests.helpers.chain_fixtures import (
    DAY,
    DAY_ONE,
    SYM_CONTRACT,
    UNTRACKED,
    WALLET,
    StubEtherscanGateway,
    raw_tx,
    token_tx,
)


def test_balance_date_is_day_after_last_activity() -> None:
    assert balance_date(date(2020, 1, 31)) == date(2020, 2, 1)
    assert balance_date(date(2020, 12, 31)) == date(2021, 1, 1)


@pytest.mark.asyncio
async def test_assertions_use_provider_balance_at_last_block(
    ledger_config: LedgerConfig, caplog: pytest.LogCaptureFixture
) -> None:
    gateway = StubEtherscanGateway(
        transactions={WALLET: [raw_tx("0x01", block=10), raw_tx("0x02", block=20, timestamp=DAY_ONE + 3 * DAY + 5)]},
        token_transfers={WALLET: [token_tx("0x01", from_=UNTRACKED, to=WALLET, value="500", block=10)]},
        token_balances={(SYM_CONTRACT, WALLET): "700"},
    )
    result = await TransactionAggregator(cast(ChainGateway, gateway), ledger_config).aggregate()

    with caplog.at_level(logging.WARNING):
        balances = await balance_assertions(gateway, result)

    assert len(balances) == 1
    balance = balances[0]
    assert balance.date == date(2020, 1, 5)
    assert balance.account == "W:SYM"
    assert balance.amount == Decimal("7")
    assert balance.symbol == "SYM"
    assert ("tokenbalance", SYM_CONTRACT, WALLET, 20) in gateway.calls
    assert "provider reports 7 at block 20, feeds add up to 5" in caplog.text


@pytest.mark.asyncio
async def test_no_transactions_means_no_assertions(ledger_config: LedgerConfig) -> None:
    gateway = StubEtherscanGateway()
    result = await TransactionAggregator(cast(ChainGateway, gateway), ledger_config).aggregate()

    assert await balance_assertions(gateway, result) == []
