from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Protocol

from domain.amounts import format_amount, scale_amount
from domain.directives import Balance

from .aggregator import AggregationResult

logger = logging.getLogger(__name__)


class TokenBalanceGateway(Protocol):
    async def get_token_balance(self, contract_address: str, address: str, block_number: int) -> str: ...


def balance_date(last_date: date) -> date:
    """Assertions hold at the start of a day, so they go on the day after the last activity."""
    return last_date + timedelta(days=1)


async def balance_assertions(gateway: TokenBalanceGateway, result: AggregationResult) -> list[Balance]:
    last_date = result.last_date
    if last_date is None:
        return []

    on = balance_date(last_date)
    block = result.last_block
    assertions: list[Balance] = []
    for address, activity in result.activity.items():
        for symbol, token in activity.tokens.items():
            raw = await gateway.get_token_balance(token.contract_address, address, block)
            amount = scale_amount(raw, token.decimals)
            running = result.balances.get_balance(symbol=symbol, wallet=address)
            if running != amount:
                logger.warning(
                    "%s %s: provider reports %s at block %d, feeds add up to %s",
                    activity.connection.account_prefix,
                    symbol,
                    format_amount(amount),
                    block,
                    format_amount(running),
                )
            assertions.append(
                Balance(date=on, account=activity.connection.asset_account(symbol), amount=amount, symbol=symbol)
            )
    logger.info("Prepared %d balance assertions dated %s", len(assertions), on.isoformat())
    return assertions


__all__ = ["TokenBalanceGateway", "balance_assertions", "balance_date"]
