from __future__ import annotations

import json
import logging
from datetime import date, datetime, time, timezone
from decimal import Decimal
from pathlib import Path
from typing import Protocol

from .price_types import PriceQuote

logger = logging.getLogger(__name__)


class PriceStore(Protocol):
    def write(self, quote: PriceQuote) -> None: ...

    def read(self, coin_id: str, fiat: str, moment: datetime) -> PriceQuote | None: ...

    def read_day(self, coin_id: str, fiat: str, day: date) -> PriceQuote | None: ...


class JsonlPriceStore(PriceStore):
    """Append-only JSONL price cache, one file per (coin id, fiat) pair."""

    def __init__(self, *, root_dir: Path) -> None:
        self.root_dir = root_dir

    def write(self, quote: PriceQuote) -> None:
        path = self._file_path(quote.coin_id, quote.fiat)
        path.parent.mkdir(parents=True, exist_ok=True)
        record = {
            "coin_id": quote.coin_id,
            "fiat": quote.fiat,
            "rate": str(quote.rate),
            "source": quote.source,
            "valid_from": quote.valid_from.isoformat(),
            "valid_to": quote.valid_to.isoformat(),
        }
        with path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(record))
            handle.write("\n")

    def read(self, coin_id: str, fiat: str, moment: datetime) -> PriceQuote | None:
        path = self._file_path(coin_id, fiat)
        if not path.exists():
            return None

        best: PriceQuote | None = None
        with path.open("r", encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if not line:
                    continue
                quote = self._parse(json.loads(line))
                if not quote.covers(moment):
                    continue
                # Narrowest window wins; later lines win ties.
                if best is None or (quote.valid_to - quote.valid_from) <= (best.valid_to - best.valid_from):
                    best = quote
        return best

    def read_day(self, coin_id: str, fiat: str, day: date) -> PriceQuote | None:
        return self.read(coin_id, fiat, datetime.combine(day, time(12), tzinfo=timezone.utc))

    @staticmethod
    def _parse(record: dict[str, str]) -> PriceQuote:
        return PriceQuote(
            coin_id=record["coin_id"],
            fiat=record["fiat"],
            rate=Decimal(record["rate"]),
            source=record.get("source", ""),
            valid_from=datetime.fromisoformat(record["valid_from"]),
            valid_to=datetime.fromisoformat(record["valid_to"]),
        )

    def _file_path(self, coin_id: str, fiat: str) -> Path:
        return self.root_dir / "prices" / f"{coin_id.lower()}-{fiat.upper()}.jsonl"


__all__ = ["JsonlPriceStore", "PriceStore"]
