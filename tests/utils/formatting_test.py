from datetime import date
from decimal import Decimal

import pytest

from domain.directives import Balance, Cost, Posting, Price, PriceAnnotation, PriceKind, Transaction, TxFlag
from utils.formatting import parse_posting_line, render_directives, render_posting, render_transaction


def test_render_transaction_layout() -> None:
    transaction = Transaction(
        date=date(2020, 1, 1),
        flag=TxFlag.COMPLETED,
        narration='Sent 1.23 SYM to "shop"',
        metadata={"tx": "0x01"},
        postings=[
            Posting(account="W:SYM", amount=Decimal("-1.23"), symbol="SYM", cost=Cost()),
            Posting(account="Expenses:Unknown", amount=Decimal("1.23"), symbol="SYM", metadata={"note": "x"}),
            Posting(account="Income:PnL"),
        ],
    )

    assert render_transaction(transaction) == "\n".join(
        [
            '2020-01-01 * "Sent 1.23 SYM to \\"shop\\""',
            '  tx: "0x01"',
            "  W:SYM -1.23 SYM {}",
            "  Expenses:Unknown 1.23 SYM",
            '    note: "x"',
            "  Income:PnL",
        ]
    )


def test_render_transaction_with_payee() -> None:
    transaction = Transaction(date=date(2020, 1, 1), flag=TxFlag.INCOMPLETE, payee="Shop", narration="Lunch")

    assert render_transaction(transaction) == '2020-01-01 ! "Shop" "Lunch"'


def test_render_directives_separates_with_blank_line() -> None:
    text = render_directives(
        [
            Transaction(date=date(2020, 1, 1), narration="Contract Execution", postings=[Posting(account="Income:PnL")]),
            Balance(date=date(2020, 1, 2), account="W:SYM", amount=Decimal("5566.00"), symbol="SYM"),
            Price(date=date(2020, 1, 3), holding="ETH", amount=Decimal("116.490"), symbol="EUR"),
        ]
    )

    assert text == (
        '2020-01-01 * "Contract Execution"\n'
        "  Income:PnL\n"
        "\n"
        "2020-01-02 balance W:SYM 5,566 SYM\n"
        "\n"
        "2020-01-03 price ETH 116.49 EUR\n"
    )


def test_render_directives_empty() -> None:
    assert render_directives([]) == ""


@pytest.mark.parametrize(
    "posting",
    [
        Posting(account="W:SYM", amount=Decimal("-1.23"), symbol="SYM"),
        Posting(account="W:SYM", amount=Decimal("5566"), symbol="SYM", cost=Cost(amount=Decimal("0.5"), symbol="EUR")),
        Posting(account="W:ETH", amount=Decimal("-0.000021"), symbol="ETH", cost=Cost()),
        Posting(
            account="Assets:Bank",
            amount=Decimal("-100"),
            symbol="USD",
            price=PriceAnnotation(kind=PriceKind.UNIT, amount=Decimal("0.9"), symbol="EUR"),
        ),
        Posting(
            account="W:CSYM",
            amount=Decimal("1234567.891"),
            symbol="CSYM",
            cost=Cost(amount=Decimal("1"), symbol="EUR"),
            price=PriceAnnotation(kind=PriceKind.TOTAL, amount=Decimal("1000"), symbol="EUR"),
        ),
        Posting(account="Income:PnL"),
    ],
)
def test_posting_line_round_trip(posting: Posting) -> None:
    line = render_posting(posting)

    parsed = parse_posting_line(line)

    assert parsed.account == posting.account
    assert parsed.amount == posting.amount
    assert parsed.symbol == posting.symbol
    assert parsed.cost == posting.cost
    assert parsed.price == posting.price
    assert render_posting(parsed) == line


def test_parse_posting_line_rejects_garbage() -> None:
    with pytest.raises(ValueError):
        parse_posting_line("2020-01-01 * \"not a posting\"")
    with pytest.raises(ValueError):
        parse_posting_line("  W:SYM 1 SYM {1 2 3}")
