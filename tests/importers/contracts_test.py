from __future__ import annotations

from typing import cast

import pytest

from domain.chain import AggregatedTx, RawTransaction
from importers.etherscan.contracts import ContractLabeler, DecodedCall, SourceCodeGateway, decode_call
from ledger_config import LedgerConfig
from services.etherscan_client import ContractSource, EtherscanAPIError
from tests.helpers.chain_fixtures import ROUTER, SYM_CONTRACT, UNTRACKED, WALLET, StubEtherscanGateway, raw_tx

SPENDER_WORD = ROUTER[2:].rjust(64, "0")
APPROVE_INPUT = "0x095ea7b3" + SPENDER_WORD + "f" * 64


def _aggregated(**kwargs) -> AggregatedTx:
    return AggregatedTx(transaction=RawTransaction.model_validate(raw_tx("0x01", **kwargs)))


def test_decode_approve() -> None:
    call = decode_call(APPROVE_INPUT)

    assert call == DecodedCall(selector="0x095ea7b3", method="approve", args=(ROUTER, 2**256 - 1))


def test_decode_transfer_from() -> None:
    data = "0x23b872dd" + WALLET[2:].rjust(64, "0") + UNTRACKED[2:].rjust(64, "0") + hex(1000)[2:].rjust(64, "0")

    call = decode_call(data)

    assert call is not None
    assert call.method == "transferFrom"
    assert call.args == (WALLET, UNTRACKED, 1000)


def test_decode_unknown_and_empty_input() -> None:
    assert decode_call("0x7ff36ab5" + "0" * 64) == DecodedCall(selector="0x7ff36ab5")
    assert decode_call("0x") is None
    assert decode_call("") is None
    # Truncated arguments keep only the selector.
    assert decode_call("0xa9059cbb1234") == DecodedCall(selector="0xa9059cbb")


@pytest.mark.asyncio
async def test_labels_resolve_once_and_describe_calls(ledger_config: LedgerConfig) -> None:
    gateway = StubEtherscanGateway(
        sources={
            SYM_CONTRACT: ContractSource(address=SYM_CONTRACT, name="SymToken", abi="[]"),
            ROUTER: ContractSource(address=ROUTER, name="UniswapV2Router02", abi="[]"),
        }
    )
    labeler = ContractLabeler(cast(SourceCodeGateway, gateway), ledger_config)
    approve = _aggregated(to=SYM_CONTRACT, call_input=APPROVE_INPUT)
    again = _aggregated(to=SYM_CONTRACT, call_input="0x")

    await labeler.resolve([approve, again])

    assert gateway.calls.count(("getsourcecode", SYM_CONTRACT)) == 1
    assert labeler.describe(approve.transaction) == "Approve UniswapV2Router02 for SymToken"
    assert labeler.describe(again.transaction) == "Contract Execution on SymToken"
    swap = RawTransaction.model_validate(raw_tx("0x02", to=ROUTER, call_input="0x7ff36ab5" + "0" * 64))
    assert labeler.describe(swap) == "Call 0x7ff36ab5 on UniswapV2Router02"


@pytest.mark.asyncio
async def test_failed_lookups_fall_back_to_raw_address(ledger_config: LedgerConfig) -> None:
    gateway = StubEtherscanGateway(sources={ROUTER: EtherscanAPIError("rate limited"), UNTRACKED: None})
    labeler = ContractLabeler(cast(SourceCodeGateway, gateway), ledger_config)

    await labeler.resolve([_aggregated(to=ROUTER), _aggregated(to=UNTRACKED)])

    assert labeler.label(ROUTER) == ROUTER
    assert labeler.label(UNTRACKED) == UNTRACKED
    assert labeler.label(WALLET) == "W"


@pytest.mark.asyncio
async def test_only_contract_executions_from_tracked_wallets_are_resolved(ledger_config: LedgerConfig) -> None:
    gateway = StubEtherscanGateway()
    labeler = ContractLabeler(cast(SourceCodeGateway, gateway), ledger_config)

    await labeler.resolve(
        [
            _aggregated(to=ROUTER, value="5"),
            _aggregated(from_=UNTRACKED, to=ROUTER),
        ]
    )

    assert gateway.calls == []
