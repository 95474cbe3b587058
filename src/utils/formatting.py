from __future__ import annotations

import re
from typing import Iterable

from domain.amounts import format_amount, parse_amount
from domain.directives import Balance, Cost, Directive, Posting, Price, PriceAnnotation, PriceKind, Transaction

INDENT = "  "
METADATA_INDENT = "    "

_NUMBER = r"-?[\d,]+(?:\.\d+)?"
_POSTING_LINE = re.compile(
    rf"""^\s+(?P<account>\S+)
    (?:\s+(?P<amount>{_NUMBER})\s+(?P<symbol>[^\s{{@]+))?
    (?:\s+\{{(?P<cost>[^}}]*)\}})?
    (?:\s+(?P<price_op>@@?)\s+(?P<price_amount>{_NUMBER})\s+(?P<price_symbol>\S+))?
    \s*$""",
    re.VERBOSE,
)


def quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def render_metadata(metadata: dict[str, str], indent: str) -> list[str]:
    return [f"{indent}{key}: {quote(value)}" for key, value in metadata.items()]


def render_cost(cost: Cost) -> str:
    if cost.is_ambiguous or cost.amount is None:
        return "{}"
    return f"{{{format_amount(cost.amount)} {cost.symbol}}}"


def render_price_annotation(price: PriceAnnotation) -> str:
    operator = "@@" if price.kind is PriceKind.TOTAL else "@"
    return f"{operator} {format_amount(price.amount)} {price.symbol}"


def render_posting(posting: Posting) -> str:
    parts = [f"{INDENT}{posting.account}"]
    if posting.amount is not None:
        parts.append(f"{format_amount(posting.amount)} {posting.symbol}")
    if posting.cost is not None:
        parts.append(render_cost(posting.cost))
    if posting.price is not None:
        parts.append(render_price_annotation(posting.price))
    lines = [" ".join(parts)]
    lines.extend(render_metadata(posting.metadata, METADATA_INDENT))
    return "\n".join(lines)


def render_transaction(transaction: Transaction) -> str:
    header = f"{transaction.date.isoformat()} {transaction.flag}"
    if transaction.payee:
        header += f" {quote(transaction.payee)}"
    header += f" {quote(transaction.narration)}"
    lines = [header]
    lines.extend(render_metadata(transaction.metadata, INDENT))
    lines.extend(render_posting(posting) for posting in transaction.postings)
    return "\n".join(lines)


def render_balance(balance: Balance) -> str:
    lines = [f"{balance.date.isoformat()} balance {balance.account} {format_amount(balance.amount)} {balance.symbol}"]
    lines.extend(render_metadata(balance.metadata, INDENT))
    return "\n".join(lines)


def render_price(price: Price) -> str:
    return f"{price.date.isoformat()} price {price.holding} {format_amount(price.amount)} {price.symbol}"


def render_directive(directive: Directive) -> str:
    if isinstance(directive, Transaction):
        return render_transaction(directive)
    if isinstance(directive, Balance):
        return render_balance(directive)
    if isinstance(directive, Price):
        return render_price(directive)
    msg = f"Unsupported directive type: {type(directive).__name__}"
    raise TypeError(msg)


def render_directives(directives: Iterable[Directive]) -> str:
    rendered = "\n\n".join(render_directive(directive) for directive in directives)
    return f"{rendered}\n" if rendered else ""


def parse_posting_line(line: str) -> Posting:
    """Read back a line produced by :func:`render_posting` (metadata excluded)."""
    match = _POSTING_LINE.match(line)
    if match is None:
        msg = f"Not a posting line: {line!r}"
        raise ValueError(msg)

    amount_text = match.group("amount")
    cost: Cost | None = None
    cost_text = match.group("cost")
    if cost_text is not None:
        cost_parts = cost_text.split()
        if not cost_parts:
            cost = Cost()
        elif len(cost_parts) == 2:
            cost = Cost(amount=parse_amount(cost_parts[0]), symbol=cost_parts[1])
        else:
            msg = f"Malformed cost in posting line: {line!r}"
            raise ValueError(msg)

    price: PriceAnnotation | None = None
    if match.group("price_op") is not None:
        price = PriceAnnotation(
            kind=PriceKind.TOTAL if match.group("price_op") == "@@" else PriceKind.UNIT,
            amount=parse_amount(match.group("price_amount")),
            symbol=match.group("price_symbol"),
        )

    return Posting(
        account=match.group("account"),
        amount=parse_amount(amount_text) if amount_text is not None else None,
        symbol=match.group("symbol") or "",
        cost=cost,
        price=price,
    )


__all__ = [
    "parse_posting_line",
    "quote",
    "render_balance",
    "render_directive",
    "render_directives",
    "render_posting",
    "render_price",
    "render_transaction",
]
