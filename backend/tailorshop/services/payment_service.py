# Overview: Service-layer operations for payment; encapsulates business logic and database work.

"""
Payment Service

Payments are immutable rows; each one takes money off the owning
order's remaining balance in the same transaction as its insert.

CONCURRENCY:
Two devices can post payments against the same order at once. Both may
pass the `amount <= remaining` check against the same snapshot, so the
decrement is NOT done as read-modify-write. insert_payment issues a
single conditional UPDATE:

    UPDATE orders
       SET remaining_cents = remaining_cents - :amount, version_id = version_id + 1
     WHERE id = :order_id AND remaining_cents >= :amount AND status != 'delivered'

Zero affected rows means another writer got there first; the payment row
is not inserted and ConflictError is raised. add_payment re-reads the
order and tries again, so the loser ends with either a success against
the fresh balance or ExcessPayment.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Order, Payment, User
from ..money import format_amount, parse_amount, to_cents
from ..time_utils import parse_iso_datetime, utcnow
from ..validation import NOTES_MAX_LENGTH, ConflictError, ValidationError, clean_text
from . import ledger_service, permission_service
from .concurrency import run_with_retry, storage_errors
from .lifecycle_service import OrderStatus
from .order_service import get_order


class PaymentNotAllowed(ValueError):
    """The order has been delivered; its ledger is closed."""


def insert_payment(
    order_id: int,
    amount: Decimal,
    notes: str | None = None,
    payment_date: datetime | None = None,
    created_by_user_id: int | None = None,
) -> Payment:
    """
    Decrement the balance if sufficient and record the payment, atomically.

    Raises ConflictError when the conditional decrement matches no row.
    """
    cents = to_cents(amount)
    now = utcnow()

    with storage_errors():
        stmt = (
            update(Order)
            .where(
                Order.id == order_id,
                Order.remaining_cents >= cents,
                Order.status != OrderStatus.DELIVERED.value,
            )
            .values(
                remaining_cents=Order.remaining_cents - cents,
                version_id=Order.version_id + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        if result.rowcount != 1:
            db.session.rollback()
            raise ConflictError("Order balance changed before the payment could be applied")

        payment = Payment(
            order_id=order_id,
            amount_cents=cents,
            payment_date=payment_date or now,
            notes=notes,
            created_by_user_id=created_by_user_id,
            created_at=now,
        )
        db.session.add(payment)
        db.session.commit()

    return payment


def add_payment(
    order_id: int,
    amount,
    actor: User,
    notes: str | None = None,
    payment_date: str | datetime | None = None,
) -> Payment:
    """
    Record a payment for `actor` (manager only).

    Raises:
        Forbidden
        OrderNotFoundError
        ValidationError / NonPositiveAmount / ExcessPayment
        PaymentNotAllowed: order already delivered
        ConflictError: still losing the race after the configured attempts
    """
    permission_service.require_permission(actor, "ADD_PAYMENT", resource=f"orders/{order_id}/payments")

    parsed = parse_amount(amount, "amount")
    notes = clean_text(notes, max_length=NOTES_MAX_LENGTH)
    if isinstance(payment_date, str):
        try:
            payment_date = parse_iso_datetime(payment_date)
        except ValueError:
            raise ValidationError("payment_date must be an ISO-8601 datetime", field="paymentDate")

    def _op():
        order = get_order(order_id)

        if order.status == OrderStatus.DELIVERED.value:
            raise PaymentNotAllowed("Cannot add a payment to a delivered order")

        snapshot = ledger_service.OrderSnapshot.from_order(order)
        after = ledger_service.apply_payment(snapshot, parsed)

        payment = insert_payment(
            order.id,
            parsed,
            notes=notes,
            payment_date=payment_date,
            created_by_user_id=actor.id,
        )
        current_app.logger.info(
            "Payment %s on order %s by %s; remaining %s",
            format_amount(parsed), snapshot.serial_number, actor.username,
            format_amount(after.remaining_amount),
        )
        return payment

    attempts = current_app.config.get("PAYMENT_CONFLICT_ATTEMPTS", 3)
    return run_with_retry(_op, attempts=attempts)


def list_payments_for_order(order_id: int) -> list[Payment]:
    return (
        db.session.query(Payment)
        .filter(Payment.order_id == order_id)
        .order_by(Payment.payment_date.desc(), Payment.id.desc())
        .all()
    )


def payments_sum(order_id: int) -> Decimal:
    return ledger_service.payments_total(p.amount for p in list_payments_for_order(order_id))


def get_payment_summary(order_id: int) -> dict:
    """Ledger view of the order, cross-checked against its payment rows."""
    order = get_order(order_id)
    snapshot = ledger_service.OrderSnapshot.from_order(order)
    summary = ledger_service.ledger_summary(snapshot, payments_sum(order_id))
    summary["order_id"] = order.id
    summary["payment_count"] = db.session.query(Payment).filter(Payment.order_id == order_id).count()
    return summary
