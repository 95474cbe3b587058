from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import requests

logger = logging.getLogger(__name__)

NO_TRANSACTIONS = "No transactions found"


class EtherscanAPIError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None, payload: Any | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


@dataclass(frozen=True)
class ContractSource:
    address: str
    name: str
    abi: str


def hex_to_decimal_string(value: Any) -> str:
    if value is None or value == "":
        return "0"
    text = str(value)
    if text.startswith(("0x", "0X")):
        return str(int(text, 16)) if len(text) > 2 else "0"
    return str(int(text))


class EtherscanClient:
    """Etherscan-compatible account and proxy API client.

    Response bodies are decoded with ``parse_float=Decimal`` and integer
    quantities are passed on as strings; nothing here goes through ``float``.
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.etherscan.io/api",
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        if not api_key:
            msg = "api_key must be provided"
            raise ValueError(msg)

        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    def get_transaction_list(self, address: str) -> list[dict[str, Any]]:
        return self._account_list("txlist", address)

    def get_token_transfer_list(self, address: str) -> list[dict[str, Any]]:
        return self._account_list("tokentx", address)

    def get_internal_transfer_list(self, address: str) -> list[dict[str, Any]]:
        return self._account_list("txlistinternal", address)

    def get_transaction(self, tx_hash: str) -> dict[str, Any]:
        """Fetch one transaction in the shape of a ``txlist`` entry.

        Combines ``eth_getTransactionByHash`` (sender, value, gas price) with
        ``eth_getTransactionReceipt`` (block, gas used, status). The proxy API
        has no timestamp, so ``timeStamp`` is left empty for the caller.
        """
        tx = self.get_transaction_by_hash(tx_hash)
        receipt = self.get_transaction_receipt(tx_hash)
        return self.merge_transaction(tx_hash, tx, receipt)

    def get_transaction_by_hash(self, tx_hash: str) -> dict[str, Any]:
        return self._proxy_result("eth_getTransactionByHash", tx_hash)

    def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any]:
        return self._proxy_result("eth_getTransactionReceipt", tx_hash)

    @staticmethod
    def merge_transaction(tx_hash: str, tx: dict[str, Any], receipt: dict[str, Any]) -> dict[str, Any]:
        status = receipt.get("status")
        return {
            "hash": tx.get("hash") or tx_hash,
            "from": tx.get("from") or "",
            "to": tx.get("to") or "",
            "value": hex_to_decimal_string(tx.get("value")),
            "gasPrice": hex_to_decimal_string(tx.get("gasPrice")),
            "gasUsed": hex_to_decimal_string(receipt.get("gasUsed")),
            "blockNumber": hex_to_decimal_string(receipt.get("blockNumber") or tx.get("blockNumber")),
            "input": tx.get("input") or "",
            "isError": "1" if status is not None and hex_to_decimal_string(status) == "0" else "0",
            "timeStamp": "",
        }

    def get_token_balance(self, contract_address: str, address: str, block_number: int) -> str:
        params = {
            "module": "account",
            "action": "tokenbalance",
            "contractaddress": contract_address,
            "address": address,
            "tag": hex(int(block_number)),
        }
        payload = self._request(params)
        return str(payload.get("result") or "0")

    def get_source_code(self, address: str) -> ContractSource | None:
        payload = self._request({"module": "contract", "action": "getsourcecode", "address": address})
        entries = payload.get("result") or []
        if not isinstance(entries, list) or not entries:
            return None
        entry = entries[0]
        name = str(entry.get("ContractName") or "")
        if not name:
            return None
        return ContractSource(address=address.lower(), name=name, abi=str(entry.get("ABI") or ""))

    def _account_list(self, action: str, address: str) -> list[dict[str, Any]]:
        params = {"module": "account", "action": action, "address": address, "sort": "asc"}
        payload = self._request(params)
        result = payload.get("result")
        if result is None:
            return []
        if not isinstance(result, list):
            raise EtherscanAPIError(f"Etherscan {action} returned unexpected result", payload=payload)
        logger.debug("Etherscan %s for %s returned %d entries", action, address, len(result))
        return result

    def _proxy_result(self, action: str, tx_hash: str) -> dict[str, Any]:
        payload = self._request({"module": "proxy", "action": action, "txhash": tx_hash})
        result = payload.get("result")
        if not isinstance(result, dict):
            raise EtherscanAPIError(f"Etherscan {action} found nothing for {tx_hash}", payload=payload)
        return result

    def _request(self, params: dict[str, Any]) -> dict[str, Any]:
        query = {**params, "apikey": self.api_key}
        try:
            response = self._session.request("GET", self.base_url, params=query, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as exc:
            resp = exc.response
            status_code = getattr(resp, "status_code", None)
            error_payload = resp.text if resp is not None else None
            raise EtherscanAPIError("Etherscan API request failed", status_code=status_code, payload=error_payload) from exc
        except requests.RequestException as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            raise EtherscanAPIError("Etherscan API request failed", status_code=status_code) from exc

        try:
            payload_raw = response.json(parse_float=Decimal)
        except ValueError as exc:
            raise EtherscanAPIError("Etherscan API returned invalid JSON", payload=response.text) from exc

        if not isinstance(payload_raw, dict):
            raise EtherscanAPIError("Etherscan API returned unexpected payload type", payload=payload_raw)

        payload: dict[str, Any] = payload_raw
        if "error" in payload:
            error = payload["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise EtherscanAPIError(message or "Etherscan API error", status_code=response.status_code, payload=payload)

        if str(payload.get("status", "1")) == "0":
            message = str(payload.get("message") or "")
            if message.startswith(NO_TRANSACTIONS):
                return {**payload, "result": []}
            result = payload.get("result")
            detail = result if isinstance(result, str) else message
            raise EtherscanAPIError(detail or "Etherscan API error", status_code=response.status_code, payload=payload)

        return payload


__all__ = ["ContractSource", "EtherscanAPIError", "EtherscanClient", "hex_to_decimal_string"]
