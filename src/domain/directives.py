from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import StrEnum
from typing import Any, Union

from pydantic import BaseModel, Field, field_validator, model_validator


class MetadataTypeError(TypeError):
    def __init__(self, key: str, value: object) -> None:
        self.key = key
        self.value = value
        super().__init__(f"Unsupported metadata value for {key!r}: {type(value).__name__}")


def coerce_metadata_value(key: str, value: object) -> str:
    if isinstance(value, str):
        return value
    # bool before int: bool is an int subclass but should stay "True"/"False".
    if isinstance(value, (bool, int, Decimal)):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    raise MetadataTypeError(key, value)


def _coerce_metadata_map(raw: Any) -> Any:
    if not isinstance(raw, dict):
        return raw
    return {str(key): coerce_metadata_value(str(key), value) for key, value in raw.items()}


class TxFlag(StrEnum):
    COMPLETED = "*"
    INCOMPLETE = "!"


class PriceKind(StrEnum):
    UNIT = "unit"
    TOTAL = "total"


class Cost(BaseModel):
    """Cost basis of a posting.

    A cost without amount and symbol is *ambiguous*: the ledger resolves it
    from the matching leg instead.
    """

    amount: Decimal | None = None
    symbol: str | None = None

    @model_validator(mode="after")
    def _validate_pair(self) -> Cost:
        if (self.amount is None) != (self.symbol is None):
            raise ValueError("Cost amount and symbol must be given together")
        return self

    @property
    def is_ambiguous(self) -> bool:
        return self.amount is None


class PriceAnnotation(BaseModel):
    kind: PriceKind = PriceKind.UNIT
    amount: Decimal
    symbol: str


class _WithMetadata(BaseModel):
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def _coerce_metadata(cls, raw: Any) -> Any:
        return _coerce_metadata_map(raw)


class Posting(_WithMetadata):
    """One leg of a transaction.

    Sign convention: positive amounts increase the account, negative amounts
    decrease it. ``amount=None`` leaves the amount to ledger interpolation.
    """

    account: str
    amount: Decimal | None = None
    symbol: str = ""
    cost: Cost | None = None
    price: PriceAnnotation | None = None

    @model_validator(mode="after")
    def _validate_symbol(self) -> Posting:
        if self.amount is not None and not self.symbol:
            raise ValueError("Posting with an amount needs a symbol")
        return self


class Transaction(_WithMetadata):
    date: date
    flag: TxFlag = TxFlag.COMPLETED
    payee: str = ""
    narration: str = ""
    postings: list[Posting] = Field(default_factory=list)


class Balance(_WithMetadata):
    """Balance assertion, checked at the start of ``date``."""

    date: date
    account: str
    amount: Decimal
    symbol: str


class Price(BaseModel):
    date: date
    holding: str
    amount: Decimal
    symbol: str


Directive = Union[Transaction, Balance, Price]


__all__ = [
    "Balance",
    "Cost",
    "Directive",
    "MetadataTypeError",
    "Posting",
    "Price",
    "PriceAnnotation",
    "PriceKind",
    "Transaction",
    "TxFlag",
    "coerce_metadata_value",
]
