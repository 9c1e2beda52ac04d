"""Input validation shared by the risk functions and the liquidation scanner."""
from __future__ import annotations

import re
from decimal import Decimal
from typing import Any

from ..errors import InvalidAddress, InvalidAmount
from ..units import to_decimal

MAX_AMOUNT = Decimal("1e36")

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{1,64}$")


def to_non_negative(value: Any, field_name: str = "amount") -> Decimal:
    result = to_decimal(value, field_name)
    if result < 0:
        raise InvalidAmount(
            f"{field_name} must not be negative", field=field_name, value=value
        )
    return result


def validate_amount(value: Any, field_name: str = "amount") -> Decimal:
    """Amount of a user operation: strictly positive and at most 1e36."""
    result = to_decimal(value, field_name)
    if result <= 0:
        raise InvalidAmount(
            f"{field_name} must be greater than zero", field=field_name, value=value
        )
    if result > MAX_AMOUNT:
        raise InvalidAmount(
            f"{field_name} exceeds maximum allowed value",
            field=field_name,
            value=value,
            max_amount=str(MAX_AMOUNT),
        )
    return result


def validate_address(address: Any, field_name: str = "address") -> str:
    """Starknet addresses are 0x-prefixed hex strings of up to 64 digits."""
    if not isinstance(address, str) or not address:
        raise InvalidAddress(f"{field_name} must be a string", field=field_name)
    if not _ADDRESS_RE.match(address):
        raise InvalidAddress(
            f"{field_name} has invalid format", field=field_name, address=address
        )
    return address
