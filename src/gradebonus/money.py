"""Utilities for working with bonus amounts and factor values."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")
ZERO = Decimal("0")

AmountLike = Union[Decimal, int, float, str]


def to_factor(value: AmountLike) -> Decimal:
    """Convert ``value`` to an unquantized :class:`~decimal.Decimal`.

    Floats go through ``str`` so ``1.5`` becomes ``Decimal("1.5")`` rather than
    its binary expansion.
    """

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise TypeError("Booleans are not valid amounts.")
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not a decimal value: {value!r}") from exc
    else:
        raise TypeError(f"Unsupported amount type: {type(value)!r}")

    if not result.is_finite():
        raise ValueError(f"Amount must be finite: {value!r}")
    return result


def round2(value: Decimal) -> Decimal:
    """Round ``value`` to two places using half-up (monetary) rounding."""

    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: AmountLike) -> Decimal:
    """Convert ``value`` to a :class:`~decimal.Decimal` with two decimal places."""

    return round2(to_factor(value))


def require_non_negative(amount: Decimal) -> Decimal:
    if amount < ZERO:
        raise ValueError("Amount must be zero or greater.")
    return amount
