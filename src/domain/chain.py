from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from domain.base_types import AssetSymbol, TxHash, WalletAddress


def _lower_address(value: Any) -> str:
    return str(value or "").lower()


def _int_or_zero(value: Any) -> Any:
    # Etherscan reports "" for fields it has no data for (e.g. tokenDecimal on broken tokens).
    if value is None or value == "":
        return 0
    return value


class _ChainRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RawTransaction(_ChainRecord):
    """A normal transaction as reported by the account transaction feed.

    Integer quantities arrive as decimal strings and are kept as ``int``
    so wei values never lose precision.
    """

    hash: TxHash
    from_address: WalletAddress = Field(alias="from")
    to_address: WalletAddress = Field(default=WalletAddress(""), alias="to")
    value: int = 0
    gas_used: int = Field(default=0, alias="gasUsed")
    gas_price: int = Field(default=0, alias="gasPrice")
    timestamp: int = Field(default=0, alias="timeStamp")
    block_number: int = Field(default=0, alias="blockNumber")
    input: str = ""
    is_error: bool = Field(default=False, alias="isError")

    @field_validator("from_address", "to_address", mode="before")
    @classmethod
    def _lower_addresses(cls, value: Any) -> str:
        return _lower_address(value)

    @field_validator("value", "gas_used", "gas_price", "timestamp", "block_number", mode="before")
    @classmethod
    def _blank_as_zero(cls, value: Any) -> Any:
        return _int_or_zero(value)


class TokenTransfer(_ChainRecord):
    hash: TxHash
    from_address: WalletAddress = Field(alias="from")
    to_address: WalletAddress = Field(alias="to")
    value: int
    token_symbol: AssetSymbol = Field(alias="tokenSymbol")
    token_decimals: int = Field(default=0, alias="tokenDecimal")
    contract_address: WalletAddress = Field(default=WalletAddress(""), alias="contractAddress")
    timestamp: int = Field(default=0, alias="timeStamp")
    block_number: int = Field(default=0, alias="blockNumber")

    @field_validator("from_address", "to_address", "contract_address", mode="before")
    @classmethod
    def _lower_addresses(cls, value: Any) -> str:
        return _lower_address(value)

    @field_validator("token_decimals", "timestamp", "block_number", mode="before")
    @classmethod
    def _blank_as_zero(cls, value: Any) -> Any:
        return _int_or_zero(value)

    @field_validator("token_symbol", mode="before")
    @classmethod
    def _upper_symbol(cls, value: Any) -> str:
        return str(value or "").strip().upper()


class InternalTransfer(_ChainRecord):
    hash: TxHash
    from_address: WalletAddress = Field(alias="from")
    to_address: WalletAddress = Field(alias="to")
    value: int
    timestamp: int = Field(default=0, alias="timeStamp")
    block_number: int = Field(default=0, alias="blockNumber")
    is_error: bool = Field(default=False, alias="isError")

    @field_validator("from_address", "to_address", mode="before")
    @classmethod
    def _lower_addresses(cls, value: Any) -> str:
        return _lower_address(value)

    @field_validator("timestamp", "block_number", mode="before")
    @classmethod
    def _blank_as_zero(cls, value: Any) -> Any:
        return _int_or_zero(value)


class AggregatedTx(BaseModel):
    transaction: RawTransaction
    token_transfers: list[TokenTransfer] = Field(default_factory=list)
    internal_transfers: list[InternalTransfer] = Field(default_factory=list)

    @property
    def hash(self) -> TxHash:
        return self.transaction.hash

    @property
    def timestamp(self) -> int:
        return self.transaction.timestamp

    @property
    def date(self) -> date:
        return datetime.fromtimestamp(self.transaction.timestamp, tz=timezone.utc).date()

    @property
    def is_contract_execution(self) -> bool:
        """No value moved: no transfers, no live internal transfers and no native value."""
        if self.token_transfers or any(not internal.is_error for internal in self.internal_transfers):
            return False
        return not self.transaction.value or self.transaction.is_error

    def add_token_transfer(self, transfer: TokenTransfer) -> bool:
        """Append ``transfer`` unless the same movement is already recorded.

        The token feed reports the same movement once per involved tracked
        address, so (from, to, value) identifies a duplicate.
        """
        for existing in self.token_transfers:
            if (
                existing.from_address == transfer.from_address
                and existing.to_address == transfer.to_address
                and existing.value == transfer.value
            ):
                return False
        self.token_transfers.append(transfer)
        return True

    def add_internal_transfer(self, transfer: InternalTransfer) -> None:
        self.internal_transfers.append(transfer)


__all__ = ["AggregatedTx", "InternalTransfer", "RawTransaction", "TokenTransfer"]
