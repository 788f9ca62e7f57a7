# Overview: Pure ledger rules for an order's money: total, deposit, payments, remaining.

"""
Order Ledger Engine

Every monetary change to an order goes through these functions. They are
pure: no session, no app context, no clock. Callers pass a snapshot in
and persist whatever comes back.

INVARIANTS:
- remaining == total - deposit - sum(payments)
- remaining >= 0 after every mutation
- 0 <= deposit <= total, total > 0 at creation
- a payment may settle the balance exactly but never overshoot it

Negative results are never clamped. A negative remaining means the
caller applied something out of order and gets InvalidAmount.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from ..money import ZERO, from_cents, format_amount
from ..validation import (
    ExcessPayment,
    InvalidAmount,
    NonPositiveAmount,
    ValidationError,
)


@dataclass(frozen=True)
class OrderSnapshot:
    """Immutable view of the fields the ledger and lifecycle rules read."""
    id: int | None
    serial_number: str
    status: str
    total_amount: Decimal
    deposit_amount: Decimal
    remaining_amount: Decimal
    customer_name: str = ""
    customer_phone: str = ""
    completed_at: datetime | None = None
    delivered_at: datetime | None = None

    @classmethod
    def from_order(cls, order) -> "OrderSnapshot":
        return cls(
            id=order.id,
            serial_number=order.serial_number,
            status=order.status,
            total_amount=from_cents(order.total_cents),
            deposit_amount=from_cents(order.deposit_cents),
            remaining_amount=from_cents(order.remaining_cents),
            customer_name=order.customer_name,
            customer_phone=order.customer_phone,
            completed_at=order.completed_at,
            delivered_at=order.delivered_at,
        )


def compute_remaining(total: Decimal, deposit: Decimal, payments_sum: Decimal) -> Decimal:
    """
    total - deposit - payments_sum.

    Raises InvalidAmount when the result would be negative.
    """
    remaining = total - deposit - payments_sum
    if remaining < ZERO:
        raise InvalidAmount(
            f"Remaining balance would be negative ({format_amount(remaining)})",
            field="remainingAmount",
        )
    return remaining


def validate_order_creation(total: Decimal | None, deposit: Decimal | None) -> Decimal:
    """
    Validate the opening money of an order and return its remaining balance.

    All violated fields are reported in one ValidationError. A missing
    deposit is treated as zero.
    """
    errors: dict[str, str] = {}
    if deposit is None:
        deposit = ZERO

    if total is None:
        errors["totalAmount"] = "total amount is required"
    elif total <= ZERO:
        errors["totalAmount"] = "total amount must be greater than zero"

    if deposit < ZERO:
        errors["depositAmount"] = "deposit cannot be negative"
    elif total is not None and deposit > total:
        errors["depositAmount"] = "deposit cannot exceed the total amount"

    if errors:
        raise ValidationError("Invalid order amounts", errors=errors)

    return compute_remaining(total, deposit, ZERO)


def validate_payment(amount: Decimal, remaining: Decimal) -> None:
    """
    Raises:
        NonPositiveAmount: amount <= 0
        ExcessPayment: amount > remaining
    """
    if amount <= ZERO:
        raise NonPositiveAmount("Payment amount must be greater than zero", field="amount")
    if amount > remaining:
        raise ExcessPayment(
            f"Payment of {format_amount(amount)} exceeds the remaining balance of {format_amount(remaining)}",
            field="amount",
        )


def apply_payment(snapshot: OrderSnapshot, amount: Decimal) -> OrderSnapshot:
    """Return a new snapshot with the payment taken off the remaining balance."""
    validate_payment(amount, snapshot.remaining_amount)
    new_remaining = compute_remaining(snapshot.remaining_amount, ZERO, amount)
    return replace(snapshot, remaining_amount=new_remaining)


def has_outstanding_balance(snapshot: OrderSnapshot) -> bool:
    return snapshot.remaining_amount > ZERO


def payments_total(amounts: Iterable[Decimal]) -> Decimal:
    return sum(amounts, ZERO)


def ledger_summary(snapshot: OrderSnapshot, payments_sum: Decimal) -> dict:
    """
    Money overview for one order.

    Cross-checks the stored remaining balance against total, deposit and
    the recorded payments; a mismatch raises InvalidAmount rather than
    reporting numbers that disagree with each other.
    """
    expected = compute_remaining(snapshot.total_amount, snapshot.deposit_amount, payments_sum)
    if expected != snapshot.remaining_amount:
        raise InvalidAmount(
            f"Order {snapshot.serial_number} remaining balance {format_amount(snapshot.remaining_amount)} "
            f"does not match ledger {format_amount(expected)}",
            field="remainingAmount",
        )
    return {
        "total_amount": format_amount(snapshot.total_amount),
        "deposit_amount": format_amount(snapshot.deposit_amount),
        "paid_amount": format_amount(payments_sum),
        "remaining_amount": format_amount(snapshot.remaining_amount),
        "has_outstanding_balance": has_outstanding_balance(snapshot),
    }
