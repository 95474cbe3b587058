from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Iterable, Union

from pydantic import AliasChoices, BaseModel, Field, model_validator

from domain.amounts import format_amount, parse_amount
from domain.directives import Balance, Posting, Transaction, TxFlag, coerce_metadata_value

logger = logging.getLogger(__name__)


class RuleConfigError(ValueError):
    pass


class TargetKind(StrEnum):
    POSTING = "posting"
    TRANSACTION = "transaction"
    BALANCE = "balance"


class FieldName(StrEnum):
    ACCOUNT = "account"
    AMOUNT = "amount"
    SYMBOL = "symbol"
    NARRATION = "narration"
    PAYEE = "payee"
    FLAG = "flag"
    METADATA = "metadata"


ADDRESSABLE_FIELDS: dict[TargetKind, frozenset[FieldName]] = {
    TargetKind.POSTING: frozenset({FieldName.ACCOUNT, FieldName.AMOUNT, FieldName.SYMBOL, FieldName.METADATA}),
    TargetKind.TRANSACTION: frozenset({FieldName.NARRATION, FieldName.PAYEE, FieldName.FLAG, FieldName.METADATA}),
    TargetKind.BALANCE: frozenset({FieldName.ACCOUNT, FieldName.AMOUNT, FieldName.SYMBOL, FieldName.METADATA}),
}

Target = Union[Posting, Transaction, Balance]


@dataclass(frozen=True)
class FieldRef:
    name: FieldName
    key: str | None = None

    @classmethod
    def parse(cls, path: str) -> FieldRef:
        """Parse ``account``, ``/account``, ``metadata.key`` or ``/metadata/key``."""
        parts = [part for part in re.split(r"[./]", path.strip()) if part]
        if not parts:
            raise RuleConfigError(f"Empty field path: {path!r}")
        try:
            name = FieldName(parts[0])
        except ValueError as exc:
            raise RuleConfigError(f"Unknown field {parts[0]!r} in path {path!r}") from exc

        if name is FieldName.METADATA:
            if len(parts) != 2:
                raise RuleConfigError(f"Metadata path needs exactly one key: {path!r}")
            return cls(name, parts[1])
        if len(parts) != 1:
            raise RuleConfigError(f"Field {name} has no sub-fields: {path!r}")
        return cls(name)

    def __str__(self) -> str:
        return f"{self.name}.{self.key}" if self.key else str(self.name)


def resolve_field(kind: TargetKind, path: str) -> FieldRef:
    ref = FieldRef.parse(path)
    if ref.name not in ADDRESSABLE_FIELDS[kind]:
        raise RuleConfigError(f"Field {ref} is not addressable on a {kind}")
    return ref


class _FieldInstruction(BaseModel):
    type: TargetKind = TargetKind.POSTING
    field: str = Field(validation_alias=AliasChoices("field", "query"))

    @model_validator(mode="after")
    def _validate_field(self) -> _FieldInstruction:
        resolve_field(self.type, self.field)
        return self

    @property
    def ref(self) -> FieldRef:
        return resolve_field(self.type, self.field)


class Pattern(_FieldInstruction):
    value: str

    @model_validator(mode="after")
    def _validate_regex(self) -> Pattern:
        try:
            re.compile(self.value)
        except re.error as exc:
            raise RuleConfigError(f"Invalid pattern {self.value!r}: {exc}") from exc
        return self

    def matches(self, targets: dict[TargetKind, Target]) -> bool:
        target = targets.get(self.type)
        if target is None:
            return False
        actual = read_field(target, self.ref)
        if not isinstance(actual, str) or not actual:
            return False
        return re.search(self.value, actual) is not None


class Transform(_FieldInstruction):
    value: Any

    def apply(self, targets: dict[TargetKind, Target]) -> None:
        target = targets.get(self.type)
        if target is not None:
            write_field(target, self.ref, self.value)


class Rule(BaseModel):
    pattern: list[Pattern] = Field(default_factory=list)
    transform: list[Transform] = Field(default_factory=list)

    def matches(self, targets: dict[TargetKind, Target]) -> bool:
        return all(pattern.matches(targets) for pattern in self.pattern)


def read_field(target: Target, ref: FieldRef) -> object | None:
    if ref.name is FieldName.METADATA:
        return target.metadata.get(ref.key or "")
    if ref.name is FieldName.AMOUNT:
        amount = getattr(target, "amount", None)
        return format_amount(amount) if amount is not None else None
    return getattr(target, ref.name.value, None)


def write_field(target: Target, ref: FieldRef, value: Any) -> None:
    if ref.name is FieldName.METADATA:
        key = ref.key or ""
        target.metadata[key] = coerce_metadata_value(key, value)
        return

    text = str(value)
    if ref.name is FieldName.SYMBOL and isinstance(target, (Posting, Balance)):
        old_symbol = target.symbol
        if old_symbol:
            target.account = re.sub(f"{re.escape(old_symbol)}$", lambda _: text, target.account)
        target.symbol = text
    elif ref.name is FieldName.AMOUNT and isinstance(target, (Posting, Balance)):
        target.amount = parse_amount(text)
    elif ref.name is FieldName.FLAG and isinstance(target, Transaction):
        target.flag = TxFlag(text)
    else:
        setattr(target, ref.name.value, text)


def _apply(rules: Iterable[Rule], targets: dict[TargetKind, Target]) -> int:
    matched = 0
    for rule in rules:
        if not rule.matches(targets):
            continue
        matched += 1
        for transform in rule.transform:
            transform.apply(targets)
    return matched


def apply_rules(rules: Iterable[Rule], posting: Posting, transaction: Transaction) -> int:
    """Apply ``rules`` in order to one posting of ``transaction``.

    Returns the number of rules that matched. Later rules see the changes
    made by earlier ones.
    """
    return _apply(rules, {TargetKind.POSTING: posting, TargetKind.TRANSACTION: transaction})


def apply_balance_rules(rules: Iterable[Rule], balance: Balance) -> int:
    return _apply(rules, {TargetKind.BALANCE: balance})


def apply_rules_to_transaction(rules: list[Rule], transaction: Transaction) -> None:
    for posting in transaction.postings:
        matched = apply_rules(rules, posting, transaction)
        if matched:
            logger.debug("Applied %d rules to %s %s", matched, posting.account, posting.symbol)


__all__ = [
    "FieldName",
    "FieldRef",
    "Pattern",
    "Rule",
    "RuleConfigError",
    "TargetKind",
    "Transform",
    "apply_balance_rules",
    "apply_rules",
    "apply_rules_to_transaction",
    "resolve_field",
]
