from __future__ import annotations

from typing import NewType

WalletAddress = NewType("WalletAddress", str)
TxHash = NewType("TxHash", str)
AssetSymbol = NewType("AssetSymbol", str)
CoinId = NewType("CoinId", str)
Account = NewType("Account", str)

NATIVE_SYMBOL = AssetSymbol("ETH")
NATIVE_DECIMALS = 18
