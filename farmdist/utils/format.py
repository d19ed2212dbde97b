# farmdist/utils/format.py
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CURRENCY_PREFIX = "Rp."
_CENTS = Decimal("0.01")


def format_currency(amount) -> str:
    """
    Render an amount as Rupiah: thousands grouped with commas, exactly two
    decimals (half-up), prefixed "Rp.".

        format_currency(1234567.5) -> "Rp.1,234,567.50"
        format_currency(0)         -> "Rp.0.00"
    """
    if amount is None:
        amount = 0
    try:
        # str() first so floats like 0.1 round the way they print
        value = Decimal(str(amount)).quantize(_CENTS, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Not a monetary amount: {amount!r}") from exc
    return f"{CURRENCY_PREFIX}{value:,.2f}"


def round_money(amount) -> float:
    """Half-up to cents, returned as float for the Float money columns."""
    return float(Decimal(str(amount or 0)).quantize(_CENTS, rounding=ROUND_HALF_UP))
