# Overview: Service-layer operations for orders; creation, lookup, listing and status changes.

"""
Order Service

Persistence for orders plus the two mutations that matter: creation
(opening ledger state) and status changes (lifecycle). Money and status
rules themselves live in ledger_service and lifecycle_service; this
module loads state, calls them, and writes the result.

Money fields are never writable through update_order_fields. The only
path that changes remaining_cents after creation is
payment_service.insert_payment.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Order, User
from ..money import format_amount, from_cents, parse_amount, to_cents
from ..time_utils import utcnow
from ..validation import (
    NAME_MAX_LENGTH,
    NOTES_MAX_LENGTH,
    SERIAL_MAX_LENGTH,
    ConflictError,
    ValidationError,
    clean_text,
    collect_customer_errors,
    is_valid_phone,
    validate_patch,
)
from . import ledger_service, lifecycle_service, notification_service, permission_service
from .concurrency import storage_errors
from .lifecycle_service import LifecycleError, OrderStatus, TransitionResult


WRITABLE_FIELDS = {"customer_name", "customer_phone", "notes"}

# Written only by change_status, after the lifecycle has approved the edge
LIFECYCLE_FIELDS = {"status", "completed_at", "delivered_at"}

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


class OrderNotFoundError(LookupError):
    pass


class ConfirmationRequired(LifecycleError):
    """Delivering with money still owed needs explicit confirmation."""

    def __init__(self, remaining):
        super().__init__(f"Order still owes {format_amount(remaining)}; confirm to deliver anyway")
        self.remaining = remaining


@dataclass
class StatusChange:
    order: Order
    result: TransitionResult
    customer_messages: list[dict]


# =============================================================================
# CREATION
# =============================================================================

def parse_order_payload(payload: dict) -> dict:
    """
    Validate an order form and return clean column values.

    Every invalid field is reported in one ValidationError, keyed by the
    client-facing field names (serialNumber, customerName, customerPhone,
    totalAmount, depositAmount).
    """
    errors = collect_customer_errors(payload)

    total = deposit = None
    try:
        total = parse_amount(payload.get("total_amount"), "totalAmount", allow_none=True)
    except ValidationError as exc:
        errors.update(exc.errors)
    try:
        deposit = parse_amount(payload.get("deposit_amount"), "depositAmount", allow_none=True)
    except ValidationError as exc:
        errors.update(exc.errors)

    # Range rules still run for whichever amount did parse
    remaining = None
    try:
        remaining = ledger_service.validate_order_creation(
            None if "totalAmount" in errors else total,
            None if "depositAmount" in errors else deposit,
        )
    except ValidationError as exc:
        for key, reason in exc.errors.items():
            errors.setdefault(key, reason)

    if errors:
        raise ValidationError("Invalid order", errors=errors)

    deposit = deposit if deposit is not None else from_cents(0)
    return {
        "serial_number": clean_text(payload.get("serial_number"), max_length=SERIAL_MAX_LENGTH),
        "customer_name": clean_text(payload.get("customer_name"), max_length=NAME_MAX_LENGTH),
        "customer_phone": clean_text(payload.get("customer_phone"), max_length=32),
        "notes": clean_text(payload.get("notes"), max_length=NOTES_MAX_LENGTH),
        "total_cents": to_cents(total),
        "deposit_cents": to_cents(deposit),
        "remaining_cents": to_cents(remaining),
    }


def insert_order(fields: dict, creator_id: int | None = None) -> Order:
    """
    Persist a validated order in status pending.

    Raises ConflictError(field=serialNumber) if the serial is taken.
    """
    serial = fields["serial_number"]
    if find_order_by_serial(serial):
        raise ConflictError(f"Serial number '{serial}' is already used", field="serialNumber")

    order = Order(
        **fields,
        status=OrderStatus.PENDING.value,
        creator_id=creator_id,
        created_at=utcnow(),
    )
    with storage_errors():
        try:
            db.session.add(order)
            db.session.commit()
        except IntegrityError as exc:
            # Lost the race against another insert with the same serial
            db.session.rollback()
            raise ConflictError(f"Serial number '{serial}' is already used", field="serialNumber") from exc
    return order


def create_order(payload: dict, actor: User) -> Order:
    permission_service.require_permission(actor, "CREATE_ORDER", resource="orders")
    fields = parse_order_payload(payload)
    order = insert_order(fields, creator_id=actor.id)
    current_app.logger.info(
        "Order %s created by %s: total=%s deposit=%s",
        order.serial_number, actor.username,
        format_amount(order.total_amount), format_amount(order.deposit_amount),
    )
    return order


# =============================================================================
# LOOKUPS
# =============================================================================

def find_order_by_id(order_id: int) -> Order | None:
    return db.session.get(Order, order_id, populate_existing=True)


def find_order_by_serial(serial_number: str) -> Order | None:
    serial = (serial_number or "").strip()
    if not serial:
        return None
    return db.session.query(Order).filter(Order.serial_number == serial).first()


def get_order(order_id: int) -> Order:
    order = find_order_by_id(order_id)
    if not order:
        raise OrderNotFoundError(f"Order {order_id} not found")
    return order


def get_order_by_serial(serial_number: str) -> Order:
    order = find_order_by_serial(serial_number)
    if not order:
        raise OrderNotFoundError(f"Order '{serial_number}' not found")
    return order


def list_orders(
    *,
    status: str | None = None,
    search: str | None = None,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> tuple[list[Order], int]:
    """
    Newest first. `search` matches serial, customer name or phone.

    Returns (orders, total_matching).
    """
    query = db.session.query(Order)
    if status:
        query = query.filter(Order.status == lifecycle_service.coerce_status(status).value)
    if search and search.strip():
        like = f"%{search.strip()}%"
        query = query.filter(or_(
            Order.serial_number.ilike(like),
            Order.customer_name.ilike(like),
            Order.customer_phone.ilike(like),
        ))

    total = query.count()
    limit = max(1, min(int(limit), MAX_PAGE_SIZE))
    offset = max(0, int(offset))
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return orders, total


def dashboard_stats(recent: int = 5) -> dict:
    """Counts per open status, money still owed across all orders, latest orders."""
    counts = dict(
        db.session.query(Order.status, func.count(Order.id)).group_by(Order.status).all()
    )
    outstanding = db.session.query(func.coalesce(func.sum(Order.remaining_cents), 0)).scalar()
    latest = (
        db.session.query(Order)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(recent)
        .all()
    )
    return {
        "pending_count": counts.get(OrderStatus.PENDING.value, 0),
        "stitched_count": counts.get(OrderStatus.STITCHED.value, 0),
        "delivered_count": counts.get(OrderStatus.DELIVERED.value, 0),
        "outstanding_amount": format_amount(from_cents(int(outstanding))),
        "recent_orders": [o.to_dict() for o in latest],
    }


# =============================================================================
# UPDATES
# =============================================================================

def update_order_fields(order_id: int, patch: dict) -> Order:
    """
    Apply a partial update to non-monetary fields.

    Uses the order's version column, so a concurrent writer turns into
    ConflictError instead of a silent overwrite.
    """
    return _apply_patch(get_order(order_id), patch, WRITABLE_FIELDS)


def _apply_patch(order: Order, patch: dict, allowed: set[str]) -> Order:
    patch = validate_patch(patch, allowed)

    errors: dict[str, str] = {}
    if "status" in patch:
        patch["status"] = lifecycle_service.coerce_status(patch["status"]).value
    if "customer_name" in patch:
        patch["customer_name"] = clean_text(patch["customer_name"], max_length=NAME_MAX_LENGTH)
        if not patch["customer_name"]:
            errors["customerName"] = "customer name is required"
    if "customer_phone" in patch:
        phone = clean_text(patch["customer_phone"], max_length=32)
        if not is_valid_phone(phone):
            errors["customerPhone"] = "customer phone must be a mobile number like 05XXXXXXXX"
        patch["customer_phone"] = phone
    if "notes" in patch:
        patch["notes"] = clean_text(patch["notes"], max_length=NOTES_MAX_LENGTH)
    for key in ("completed_at", "delivered_at"):
        if key in patch and patch[key] is not None and not isinstance(patch[key], datetime):
            errors[key] = "must be a datetime"
    if errors:
        raise ValidationError("Invalid order update", errors=errors)

    with storage_errors():
        for key, value in patch.items():
            setattr(order, key, value)
        db.session.commit()
    return order


def change_status(
    order_id: int,
    target: str,
    actor: User,
    *,
    confirm_outstanding: bool = False,
    now: datetime | None = None,
    resource: str | None = None,
) -> StatusChange:
    """
    Run a lifecycle transition for `actor` and persist it.

    Raises:
        OrderNotFoundError
        ValidationError: unknown status
        Forbidden: role may not take this edge (also logged to security_events)
        IllegalTransition
        ConfirmationRequired: delivering with a balance, not confirmed
        ConflictError: order changed underneath us
    """
    order = get_order(order_id)
    snapshot = ledger_service.OrderSnapshot.from_order(order)

    try:
        result = lifecycle_service.transition(snapshot, target, actor.role, now=now)
    except permission_service.Forbidden as exc:
        permission_service.log_security_event(
            user_id=actor.id,
            event_type="TRANSITION_DENIED",
            success=False,
            resource=resource or f"orders/{order_id}",
            action=f"{snapshot.status}->{target}",
            reason=str(exc),
        )
        current_app.logger.warning("User %s denied status change on order %s: %s", actor.username, order.serial_number, exc)
        raise

    if result.order.status == OrderStatus.DELIVERED.value and result.has_outstanding_balance and not confirm_outstanding:
        raise ConfirmationRequired(snapshot.remaining_amount)

    order = _apply_patch(order, result.patch, LIFECYCLE_FIELDS)
    current_app.logger.info(
        "Order %s moved %s -> %s by %s",
        order.serial_number, snapshot.status, order.status, actor.username,
    )

    # The transition is already committed; a delivery failure must not undo it
    try:
        messages = notification_service.dispatch_intents(order, result.intents)
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Notifications for order %s failed after move to %s", order.serial_number, order.status,
        )
        messages = []
    return StatusChange(order=order, result=result, customer_messages=messages)
