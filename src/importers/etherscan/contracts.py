from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Protocol

from domain.base_types import WalletAddress
from domain.chain import AggregatedTx, RawTransaction
from domain.postings import CONTRACT_EXECUTION
from ledger_config import LedgerConfig
from services.etherscan_client import ContractSource, EtherscanAPIError

logger = logging.getLogger(__name__)

_WORD = 64

# selector -> (method name, argument types)
KNOWN_SELECTORS: dict[str, tuple[str, tuple[str, ...]]] = {
    "0x095ea7b3": ("approve", ("address", "uint256")),
    "0xa9059cbb": ("transfer", ("address", "uint256")),
    "0x23b872dd": ("transferFrom", ("address", "address", "uint256")),
}


@dataclass(frozen=True)
class DecodedCall:
    selector: str
    method: str | None = None
    args: tuple[str | int, ...] = ()


def decode_call(call_input: str) -> DecodedCall | None:
    """Decode the handful of ERC20 calls we narrate; others keep only the selector."""
    data = call_input.lower()
    if data.startswith("0x"):
        data = data[2:]
    if len(data) < 8:
        return None

    selector = f"0x{data[:8]}"
    known = KNOWN_SELECTORS.get(selector)
    if known is None:
        return DecodedCall(selector=selector)

    method, arg_types = known
    body = data[8:]
    if len(body) < _WORD * len(arg_types):
        logger.debug("Truncated %s call data: %s", method, call_input)
        return DecodedCall(selector=selector)

    args: list[str | int] = []
    for index, arg_type in enumerate(arg_types):
        word = body[index * _WORD : (index + 1) * _WORD]
        args.append(f"0x{word[-40:]}" if arg_type == "address" else int(word, 16))
    return DecodedCall(selector=selector, method=method, args=tuple(args))


class SourceCodeGateway(Protocol):
    async def get_source_code(self, address: str) -> ContractSource | None: ...


class ContractLabeler:
    """Names contracts behind contract-execution transactions.

    Lookups happen once per address; anything that cannot be resolved is
    labelled with its raw address.
    """

    def __init__(self, gateway: SourceCodeGateway, ledger_config: LedgerConfig) -> None:
        self.gateway = gateway
        self.ledger_config = ledger_config
        self.names: dict[WalletAddress, str] = {}

    async def resolve(self, transactions: Iterable[AggregatedTx]) -> None:
        for tx in transactions:
            raw = tx.transaction
            if not tx.is_contract_execution or not raw.to_address:
                continue
            if self.ledger_config.get_connection(raw.from_address) is None:
                continue
            await self._lookup(raw.to_address)
            call = decode_call(raw.input)
            if call is not None and call.method == "approve":
                await self._lookup(WalletAddress(str(call.args[0])))
        logger.info("Resolved %d contract labels", sum(1 for address, name in self.names.items() if name != address))

    def label(self, address: str) -> str:
        connection = self.ledger_config.get_connection(address)
        if connection is not None:
            return connection.account_prefix
        return self.names.get(WalletAddress(address.lower()), address)

    def describe(self, raw: RawTransaction) -> str | None:
        if not raw.to_address:
            return None
        target = self.label(raw.to_address)
        call = decode_call(raw.input)
        if call is None:
            return f"{CONTRACT_EXECUTION} on {target}"
        if call.method == "approve":
            return f"Approve {self.label(str(call.args[0]))} for {target}"
        return f"Call {call.method or call.selector} on {target}"

    async def _lookup(self, address: WalletAddress) -> None:
        if address in self.names or self.ledger_config.get_connection(address) is not None:
            return
        try:
            source = await self.gateway.get_source_code(address)
        except EtherscanAPIError as exc:
            logger.warning("Contract source lookup for %s failed: %s", address, exc)
            source = None
        else:
            if source is None:
                logger.warning("Contract %s is not verified", address)
        self.names[address] = source.name if source is not None else address


__all__ = ["ContractLabeler", "DecodedCall", "KNOWN_SELECTORS", "decode_call"]
