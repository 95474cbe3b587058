from decimal import Decimal

from domain.balance_tracker import RunningBalances
from domain.base_types import AssetSymbol, WalletAddress
from domain.chain import AggregatedTx, InternalTransfer, RawTransaction, TokenTransfer
from tests.helpers.chain_fixtures import ROUTER, SECOND_WALLET, UNTRACKED, WALLET, internal_tx, raw_tx, token_tx

ETH = AssetSymbol("ETH")
SYM = AssetSymbol("SYM")


def test_running_balances_ignore_untracked_wallets() -> None:
    balances = RunningBalances({WalletAddress(WALLET)})

    balances.apply_movement(symbol=SYM, wallet=WalletAddress(WALLET), quantity=Decimal("1.5"))
    balances.apply_movement(symbol=SYM, wallet=WalletAddress(UNTRACKED), quantity=Decimal("3"))

    assert balances.get_balance(symbol=SYM, wallet=WalletAddress(WALLET)) == Decimal("1.5")
    assert balances.get_balance(symbol=SYM, wallet=WalletAddress(UNTRACKED)) == Decimal(0)


def test_running_balances_may_go_negative() -> None:
    balances = RunningBalances({WalletAddress(WALLET)})

    balances.apply_movement(symbol=SYM, wallet=WalletAddress(WALLET), quantity=Decimal("-2"))

    assert balances.get_balance(symbol=SYM, wallet=WalletAddress(WALLET)) == Decimal("-2")


def test_apply_transaction_books_gas_value_and_transfers() -> None:
    balances = RunningBalances({WalletAddress(WALLET), WalletAddress(SECOND_WALLET)})
    tx = AggregatedTx(
        transaction=RawTransaction.model_validate(
            raw_tx("0x01", to=SECOND_WALLET, value="1000000000000000000", gas_used="21000", gas_price="1000000000")
        )
    )
    tx.add_token_transfer(TokenTransfer.model_validate(token_tx("0x01", from_=UNTRACKED, to=WALLET, value="500")))
    tx.add_internal_transfer(InternalTransfer.model_validate(internal_tx("0x01", from_=ROUTER, to=WALLET, value="5")))
    tx.add_internal_transfer(
        InternalTransfer.model_validate(internal_tx("0x01", from_=ROUTER, to=WALLET, value="7", is_error="1"))
    )

    balances.apply_transaction(tx)

    gas = Decimal("0.000021")
    assert balances.get_balance(symbol=ETH, wallet=WalletAddress(WALLET)) == -gas - 1 + Decimal("5E-18")
    assert balances.get_balance(symbol=ETH, wallet=WalletAddress(SECOND_WALLET)) == Decimal(1)
    assert balances.get_balance(symbol=SYM, wallet=WalletAddress(WALLET)) == Decimal(5)


def test_asset_balances_for_filters_wallets() -> None:
    balances = RunningBalances({WalletAddress(WALLET), WalletAddress(SECOND_WALLET)})
    balances.apply_movement(symbol=ETH, wallet=WalletAddress(WALLET), quantity=Decimal("1.2"))
    balances.apply_movement(symbol=ETH, wallet=WalletAddress(SECOND_WALLET), quantity=Decimal("0.8"))
    balances.apply_movement(symbol=SYM, wallet=WalletAddress(SECOND_WALLET), quantity=Decimal("4"))

    assert balances.asset_balances_for() == {ETH: Decimal(2), SYM: Decimal(4)}
    assert balances.asset_balances_for({WalletAddress(WALLET)}) == {ETH: Decimal("1.2"), SYM: Decimal(0)}
