"""Fixed-point conversion between user-facing USDC amounts and raw token units."""

from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

from ..config.tokens import STABLE_COIN
from .errors import InvalidAmount

AmountLike = Union[Decimal, int, float, str]

STABLE_DECIMALS = STABLE_COIN.decimals
_QUANTUM = Decimal(1).scaleb(-STABLE_DECIMALS)  # 0.000001


def to_decimal(amount: AmountLike) -> Decimal:
    """Coerce an amount to Decimal; floats go through str() to avoid binary noise."""
    if isinstance(amount, bool):
        raise InvalidAmount(f"Invalid amount: {amount!r}")
    if isinstance(amount, Decimal):
        return amount
    try:
        if isinstance(amount, float):
            return Decimal(repr(amount))
        return Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmount(f"Invalid amount: {amount!r}") from None


def parse_stable_amount(amount: AmountLike) -> int:
    """
    Convert a human USDC amount into raw units (x 10^6, floored).

    Raises InvalidAmount for non-finite, non-positive, or sub-unit amounts.
    """
    value = to_decimal(amount)
    if not value.is_finite():
        raise InvalidAmount(f"Amount must be finite, got {amount!r}")
    if value <= 0:
        raise InvalidAmount(f"Amount must be positive, got {amount!r}")
    try:
        raw = int(value.quantize(_QUANTUM, rounding=ROUND_DOWN).scaleb(STABLE_DECIMALS))
    except InvalidOperation:
        raise InvalidAmount(f"Amount {amount!r} is out of range") from None
    if raw <= 0:
        raise InvalidAmount(f"Amount {amount!r} is below the smallest USDC unit")
    return raw


def stable_to_decimal(raw: Union[int, str]) -> Decimal:
    """Raw USDC units -> exact Decimal amount."""
    return (Decimal(int(raw)) * _QUANTUM).quantize(_QUANTUM)


def format_stable_amount(raw: Union[int, str], places: Optional[int] = None) -> str:
    """
    Render raw USDC units.

    Without ``places`` the result is the exact canonical decimal
    ("50", "12.5", "0.000001"). With ``places`` it is rounded for display
    ("50.00").
    """
    value = stable_to_decimal(raw)
    if places is not None:
        return f"{value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP):f}"
    text = f"{value:f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


__all__ = [
    "AmountLike",
    "STABLE_DECIMALS",
    "to_decimal",
    "parse_stable_amount",
    "stable_to_decimal",
    "format_stable_amount",
]
