from __future__ import annotations

from decimal import Decimal, InvalidOperation, localcontext

# Enough significant digits for any uint256 base-unit value.
_PRECISION = 96


def scale_amount(raw: int | str | Decimal, decimals: int | str) -> Decimal:
    """Convert an integer base-unit value into a decimal display amount.

    ``raw`` usually arrives as a string-encoded integer straight from the
    provider; it is never routed through ``float``.
    """
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return Decimal(str(raw)).scaleb(-int(decimals))


def format_amount(value: Decimal) -> str:
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        normalized = value.normalize()
    # "f" keeps integral values like 1E+3 out of scientific notation.
    return f"{normalized:,f}"


def normalize_amount(raw: int | str | Decimal, decimals: int | str) -> str:
    return format_amount(scale_amount(raw, decimals))


def parse_amount(text: str) -> Decimal:
    cleaned = text.strip().replace(",", "")
    try:
        value = Decimal(cleaned)
    except InvalidOperation as exc:
        raise ValueError(f"Not a decimal amount: {text!r}") from exc
    if not value.is_finite():
        raise ValueError(f"Not a finite amount: {text!r}")
    return value


__all__ = ["format_amount", "normalize_amount", "parse_amount", "scale_amount"]
