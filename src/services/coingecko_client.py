from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

import requests

logger = logging.getLogger(__name__)

# CoinGecko tracks pre-migration SAI-backed cTokens under their old id.
_LEGACY_COIN_IDS: dict[str, tuple[date, str]] = {
    "compound-sai": (date(2019, 12, 17), "cdai"),
}


class CoinGeckoAPIError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None, payload: Any | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


@dataclass(frozen=True)
class HistoryPrice:
    """Daily history snapshot for one coin.

    A provider-reported problem (unknown coin, no data for the day) is kept in
    ``error`` rather than raised, so one bad pair does not sink a batch.
    """

    coin_id: str
    date: date
    prices: dict[str, Decimal] = field(default_factory=dict)
    error: str | None = None

    def price_in(self, fiat: str) -> Decimal | None:
        return self.prices.get(fiat.lower())


def provider_coin_id(coin_id: str, on: date) -> str:
    legacy = _LEGACY_COIN_IDS.get(coin_id)
    if legacy is not None and on < legacy[0]:
        return legacy[1]
    return coin_id


class CoinGeckoClient:
    def __init__(
        self,
        *,
        base_url: str = "https://api.coingecko.com/api/v3",
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    def get_history_price(self, on: date, coin_id: str) -> HistoryPrice:
        actual_id = provider_coin_id(coin_id, on)
        logger.info("Fetching %s price at %s via coingecko", coin_id, on.isoformat())
        payload = self._request(
            f"/coins/{actual_id}/history",
            params={"date": on.strftime("%d-%m-%Y"), "localization": "false"},
            allow_error=True,
        )
        error = payload.get("error")
        if error:
            return HistoryPrice(coin_id=coin_id, date=on, error=str(error))

        market_data = payload.get("market_data")
        if not isinstance(market_data, dict):
            return HistoryPrice(coin_id=coin_id, date=on, error="no market data")

        current = market_data.get("current_price") or {}
        prices: dict[str, Decimal] = {}
        for fiat, raw in current.items():
            value = _to_decimal(raw)
            if value is not None:
                prices[str(fiat).lower()] = value
        return HistoryPrice(coin_id=coin_id, date=on, prices=prices)

    def get_current_prices(self, coin_ids: Iterable[str], fiat: str) -> dict[str, Decimal]:
        ids = sorted(set(coin_ids))
        if not ids:
            return {}
        currency = fiat.lower()
        payload = self._request("/simple/price", params={"ids": ",".join(ids), "vs_currencies": currency})
        prices: dict[str, Decimal] = {}
        for coin_id in ids:
            entry = payload.get(coin_id)
            value = _to_decimal(entry.get(currency)) if isinstance(entry, dict) else None
            if value is None:
                logger.warning("CoinGecko returned no %s price for %s", currency, coin_id)
                continue
            prices[coin_id] = value
        return prices

    def _request(self, path: str, *, params: dict[str, Any], allow_error: bool = False) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request("GET", url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as exc:
            resp = exc.response
            status_code = getattr(resp, "status_code", None)
            error_payload: Any | None = None
            if resp is not None:
                try:
                    error_payload = resp.json(parse_float=Decimal)
                except ValueError:
                    error_payload = resp.text
            # Unknown coins come back as 404 with {"error": "..."}; that is data for the caller.
            if allow_error and isinstance(error_payload, dict) and error_payload.get("error"):
                return error_payload
            raise CoinGeckoAPIError("CoinGecko API request failed", status_code=status_code, payload=error_payload) from exc
        except requests.RequestException as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            raise CoinGeckoAPIError("CoinGecko API request failed", status_code=status_code) from exc

        try:
            payload_raw = response.json(parse_float=Decimal)
        except ValueError as exc:
            raise CoinGeckoAPIError("CoinGecko API returned invalid JSON", payload=response.text) from exc

        if not isinstance(payload_raw, dict):
            raise CoinGeckoAPIError("CoinGecko API returned unexpected payload type", payload=payload_raw)
        return payload_raw


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


__all__ = ["CoinGeckoAPIError", "CoinGeckoClient", "HistoryPrice", "provider_coin_id"]
