"""
Money helpers.

Amounts travel through the service layer as Decimal with two fractional
digits and are stored as integer minor units (halalas) so the database
only ever does exact integer arithmetic.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from .validation import ValidationError


CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# 99,999,999.99 - keeps cents inside a signed 64-bit column with room to spare
MAX_AMOUNT = Decimal("99999999.99")


def parse_amount(value: Any, field: str = "amount", *, allow_none: bool = False) -> Decimal | None:
    """
    Parse client input into a Decimal with at most two fractional digits.

    Accepts Decimal, int, float (via its shortest repr) and numeric strings.
    Rejects booleans, NaN/Infinity, more than two decimals and values
    above MAX_AMOUNT. Sign is NOT checked here; the ledger owns that rule.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_none:
            return None
        raise ValidationError(f"{field} is required", field=field)

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field)

    try:
        if isinstance(value, Decimal):
            amount = value
        elif isinstance(value, float):
            amount = Decimal(repr(value))
        elif isinstance(value, (int, str)):
            amount = Decimal(str(value).strip())
        else:
            raise ValidationError(f"{field} must be a number", field=field)
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number", field=field)

    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number", field=field)

    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"{field} exceeds maximum of {MAX_AMOUNT}", field=field)

    if amount.as_tuple().exponent < -2 and amount != amount.quantize(CENT):
        raise ValidationError(f"{field} must have at most 2 decimal places", field=field)

    return amount.quantize(CENT)


def to_cents(amount: Decimal) -> int:
    quantized = amount.quantize(CENT)
    if quantized != amount:
        raise ValueError(f"{amount} is not representable in whole cents")
    return int(quantized * 100)


def from_cents(cents: int | None) -> Decimal:
    if cents is None:
        return ZERO
    return (Decimal(cents) / 100).quantize(CENT)


def format_amount(amount: Decimal) -> str:
    """Canonical wire format: plain string, exactly two decimals."""
    return f"{amount.quantize(CENT):f}"
