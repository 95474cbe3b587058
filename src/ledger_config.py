from __future__ import annotations

import json
import logging
from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from domain.base_types import NATIVE_SYMBOL, AssetSymbol, CoinId, WalletAddress
from domain.rules import Rule

logger = logging.getLogger(__name__)

ETHEREUM = "ethereum"


class _ConfigModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class Connection(_ConfigModel):
    """Tracked wallet; ``address`` is the join key, compared lower-case."""

    type: str = ETHEREUM
    address: WalletAddress
    account_prefix: str = Field(validation_alias=AliasChoices("account_prefix", "accountPrefix"))

    @field_validator("address", mode="before")
    @classmethod
    def _lower_address(cls, value: Any) -> str:
        return str(value).strip().lower()

    @field_validator("account_prefix")
    @classmethod
    def _strip_prefix(cls, value: str) -> str:
        prefix = value.strip().rstrip(":")
        if not prefix:
            raise ValueError("account_prefix must not be empty")
        return prefix

    def asset_account(self, symbol: str) -> str:
        return f"{self.account_prefix}:{symbol}"


class DefaultAccounts(_ConfigModel):
    income: str = "Income:Unknown"
    expenses: str = "Expenses:Unknown"
    fee: str = Field(default="Expenses:Fees:EthTx", validation_alias=AliasChoices("fee", "ethTx", "eth_tx"))
    pnl: str = "Income:PnL"


class Coin(_ConfigModel):
    symbol: AssetSymbol
    id: CoinId

    @field_validator("symbol", mode="before")
    @classmethod
    def _upper_symbol(cls, value: Any) -> str:
        return str(value).strip().upper()


class LedgerConfig(_ConfigModel):
    connections: list[Connection] = Field(default_factory=list)
    default_accounts: DefaultAccounts = Field(
        default_factory=DefaultAccounts,
        validation_alias=AliasChoices("default_accounts", "defaultAccount", "defaultAccounts"),
    )
    rules: list[Rule] = Field(default_factory=list)
    exclude_assets: set[AssetSymbol] = Field(
        default_factory=set, validation_alias=AliasChoices("exclude_assets", "excludeCoins")
    )
    fiat: str = "EUR"
    coins: list[Coin] = Field(default_factory=list)
    native_symbol: AssetSymbol = NATIVE_SYMBOL
    resolve_contracts: bool = False

    @field_validator("exclude_assets", mode="before")
    @classmethod
    def _upper_excluded(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple, set)):
            return {str(item).strip().upper() for item in value}
        return value

    @field_validator("fiat")
    @classmethod
    def _upper_fiat(cls, value: str) -> str:
        return value.strip().upper()

    def get_connection(self, address: str) -> Connection | None:
        needle = address.lower()
        for connection in self.connections:
            if connection.address == needle:
                return connection
        return None

    def tracked_addresses(self) -> set[WalletAddress]:
        return {connection.address for connection in self.connections}

    def coin_ids(self) -> dict[AssetSymbol, CoinId]:
        return {coin.symbol: coin.id for coin in self.coins}


def load_ledger_config(path: Path) -> LedgerConfig:
    """Read and validate a JSON ledger configuration.

    Rule field paths are resolved here, so a bad path fails the load rather
    than the run.
    """
    payload = json.loads(path.read_text(encoding="utf-8"), parse_float=Decimal)
    ledger_config = LedgerConfig.model_validate(payload)
    logger.info(
        "Loaded ledger config from %s: %d connections, %d rules, %d coins",
        path,
        len(ledger_config.connections),
        len(ledger_config.rules),
        len(ledger_config.coins),
    )
    return ledger_config


__all__ = ["Coin", "Connection", "DefaultAccounts", "ETHEREUM", "LedgerConfig", "load_ledger_config"]
