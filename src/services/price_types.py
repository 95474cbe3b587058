from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal


@dataclass(frozen=True)
class PriceQuote:
    """Price of one coin in one fiat currency over a validity window."""

    coin_id: str
    fiat: str
    rate: Decimal
    source: str
    valid_from: datetime
    valid_to: datetime

    @classmethod
    def for_day(cls, *, coin_id: str, fiat: str, rate: Decimal, source: str, day: date) -> PriceQuote:
        start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        return cls(
            coin_id=coin_id,
            fiat=fiat.upper(),
            rate=rate,
            source=source,
            valid_from=start,
            valid_to=start + timedelta(days=1) - timedelta(microseconds=1),
        )

    def covers(self, moment: datetime) -> bool:
        return self.valid_from <= moment <= self.valid_to


__all__ = ["PriceQuote"]
