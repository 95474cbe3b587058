from __future__ import annotations

from collections import defaultdict
from decimal import Decimal

from domain.amounts import scale_amount
from domain.base_types import NATIVE_DECIMALS, NATIVE_SYMBOL, AssetSymbol, WalletAddress
from domain.chain import AggregatedTx


class RunningBalances:
    """Per-wallet, per-asset balances accumulated from aggregated transactions.

    Feeds only cover a window of history, so balances may go negative; they
    are a consistency check, never an assertion on their own.
    """

    def __init__(self, wallets: set[WalletAddress]) -> None:
        self.wallets = {WalletAddress(wallet.lower()) for wallet in wallets}
        self._balances: dict[AssetSymbol, dict[WalletAddress, Decimal]] = defaultdict(
            lambda: defaultdict(lambda: Decimal(0))
        )

    def apply_movement(self, *, symbol: AssetSymbol, wallet: WalletAddress, quantity: Decimal) -> None:
        if wallet not in self.wallets:
            return
        self._balances[symbol][wallet] += quantity

    def apply_transaction(self, tx: AggregatedTx) -> None:
        raw = tx.transaction
        if raw.from_address in self.wallets:
            gas = scale_amount(raw.gas_used * raw.gas_price, NATIVE_DECIMALS)
            self.apply_movement(symbol=NATIVE_SYMBOL, wallet=raw.from_address, quantity=-gas)
        if raw.value and not raw.is_error:
            amount = scale_amount(raw.value, NATIVE_DECIMALS)
            self.apply_movement(symbol=NATIVE_SYMBOL, wallet=raw.from_address, quantity=-amount)
            self.apply_movement(symbol=NATIVE_SYMBOL, wallet=raw.to_address, quantity=amount)
        for transfer in tx.token_transfers:
            amount = scale_amount(transfer.value, transfer.token_decimals)
            self.apply_movement(symbol=transfer.token_symbol, wallet=transfer.from_address, quantity=-amount)
            self.apply_movement(symbol=transfer.token_symbol, wallet=transfer.to_address, quantity=amount)
        for internal in tx.internal_transfers:
            if internal.is_error:
                continue
            amount = scale_amount(internal.value, NATIVE_DECIMALS)
            self.apply_movement(symbol=NATIVE_SYMBOL, wallet=internal.from_address, quantity=-amount)
            self.apply_movement(symbol=NATIVE_SYMBOL, wallet=internal.to_address, quantity=amount)

    def get_balance(self, *, symbol: AssetSymbol, wallet: WalletAddress) -> Decimal:
        return self._balances[symbol][WalletAddress(wallet.lower())]

    def asset_balances_for(self, wallets: set[WalletAddress] | None = None) -> dict[AssetSymbol, Decimal]:
        totals: dict[AssetSymbol, Decimal] = {}
        for symbol, wallet_balances in self._balances.items():
            total = sum(
                (balance for wallet, balance in wallet_balances.items() if wallets is None or wallet in wallets),
                start=Decimal(0),
            )
            totals[symbol] = total
        return totals
