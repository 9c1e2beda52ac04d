"""Decimal conversions for on-chain fixed-point values."""
from __future__ import annotations

from decimal import Context, Decimal, InvalidOperation
from typing import Any

from .errors import InvalidAmount

U128_MASK = (1 << 128) - 1


def to_decimal(value: Any, field_name: str = "amount") -> Decimal:
    """Convert ``value`` to a finite Decimal without going through binary floats."""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(repr(value) if isinstance(value, float) else str(value))
        except (InvalidOperation, ValueError) as e:
            raise InvalidAmount(
                f"{field_name} must be a valid number", field=field_name, value=value
            ) from e
    if not result.is_finite():
        raise InvalidAmount(f"{field_name} must be finite", field=field_name, value=value)
    return result


def from_fixed_point(raw: int, decimals: int, context: Context | None = None) -> Decimal:
    """Scale an integer with ``decimals`` implied decimal places to a Decimal.

    The string constructor is exact, so u128 prices keep every digit.
    """
    if decimals < 0:
        raise ValueError("decimals must be non-negative")
    value = Decimal(f"{int(raw)}E-{decimals}")
    return value if context is None else context.plus(value)


def join_u256(low: int, high: int) -> int:
    """Combine the (low, high) felt pair Cairo uses for u256."""
    return (int(high) << 128) | (int(low) & U128_MASK)

