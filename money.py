from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from errors import InvalidInputError

AmountInput = Union[Decimal, int, float, str]

# Cent amounts are stored in signed 64-bit integer columns
MAX_CENTS = 2**63 - 1


def to_cents(value: AmountInput) -> int:
    if isinstance(value, bool):
        raise InvalidInputError("Balance must be a number")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = _decimal(str(value))
    elif isinstance(value, str):
        clean = value.strip().replace("€", "").replace("$", "").replace(" ", "")
        clean = clean.replace(",", ".")
        if clean.count(".") > 1:
            parts = clean.split(".")
            clean = "".join(parts[:-1]) + "." + parts[-1]
        amount = _decimal(clean)
    else:
        raise InvalidInputError("Balance must be a number")
    if not amount.is_finite():
        raise InvalidInputError("Balance must be a finite number")
    try:
        cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation as exc:
        raise InvalidInputError("Balance is out of range") from exc
    if abs(cents) > MAX_CENTS:
        raise InvalidInputError("Balance is out of range")
    return cents


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


def _decimal(raw: str) -> Decimal:
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        raise InvalidInputError("Balance must be a number") from exc
