# Overview: Pure order status state machine with role gating and side-effect intents.

"""
Order Lifecycle Service

================================================================================
STATE MACHINE:
    pending -> stitched -> delivered

    pending:   order taken, cloth with the tailor
    stitched:  tailor finished, waiting for pickup (completed_at set)
    delivered: handed to the customer, terminal (delivered_at set)

RULES:
1. Cannot skip states (pending -> delivered is illegal)
2. Cannot move backwards or stay in place (no-op transitions are illegal)
3. pending -> stitched: tailor or manager
4. stitched -> delivered: manager only; allowed with an outstanding
   balance, but the result flags it so the caller can ask for confirmation
================================================================================

transition() decides and describes; it never writes to the database and
never sends a notification. The caller persists `patch` and hands
`intents` to notification_service.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from ..time_utils import utcnow
from ..validation import ValidationError
from .ledger_service import OrderSnapshot, has_outstanding_balance
from .permission_service import Forbidden, Role, coerce_role


class OrderStatus(str, Enum):
    PENDING = "pending"
    STITCHED = "stitched"
    DELIVERED = "delivered"


VALID_STATUSES = {s.value for s in OrderStatus}


class LifecycleError(ValueError):
    """Base class for lifecycle rule violations."""


class IllegalTransition(LifecycleError):
    """The requested edge is not in the transition table."""

    def __init__(self, from_status: str, to_status: str):
        super().__init__(f"Cannot move order from '{from_status}' to '{to_status}'")
        self.from_status = from_status
        self.to_status = to_status


# The single authorization table for status changes: edge -> roles allowed.
TRANSITIONS: dict[tuple[OrderStatus, OrderStatus], frozenset[Role]] = {
    (OrderStatus.PENDING, OrderStatus.STITCHED): frozenset({Role.TAILOR, Role.MANAGER}),
    (OrderStatus.STITCHED, OrderStatus.DELIVERED): frozenset({Role.MANAGER}),
}

CHANNEL_IN_APP = "in_app"
CHANNEL_CUSTOMER = "customer_message"


@dataclass(frozen=True)
class NotificationIntent:
    """
    Something the dispatcher should send after the transition is persisted.

    channel=in_app goes to every user holding `audience` role;
    channel=customer_message is a template suggestion for the customer.
    """
    channel: str
    template: str
    audience: str
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransitionResult:
    order: OrderSnapshot
    patch: dict
    has_outstanding_balance: bool
    intents: tuple[NotificationIntent, ...] = ()


def coerce_status(value: Any) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).strip().lower())
    except ValueError:
        raise ValidationError(
            f"Invalid status '{value}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}",
            field="status",
        )


def can_transition(from_status: Any, to_status: Any) -> bool:
    return (coerce_status(from_status), coerce_status(to_status)) in TRANSITIONS


def allowed_targets(status: Any, role: Any) -> list[str]:
    """Statuses this role may move an order to from `status`."""
    current = coerce_status(status)
    try:
        who = coerce_role(role)
    except Forbidden:
        return []
    return [
        to.value
        for (frm, to), roles in TRANSITIONS.items()
        if frm == current and who in roles
    ]


def _roles_into(target: OrderStatus) -> frozenset[Role]:
    roles: set[Role] = set()
    for (_, to), allowed in TRANSITIONS.items():
        if to == target:
            roles |= allowed
    return frozenset(roles)


def _intents_for(edge: tuple[OrderStatus, OrderStatus], snapshot: OrderSnapshot) -> tuple[NotificationIntent, ...]:
    params = {
        "customer_name": snapshot.customer_name,
        "serial_number": snapshot.serial_number,
    }
    if edge == (OrderStatus.PENDING, OrderStatus.STITCHED):
        return (
            NotificationIntent(CHANNEL_IN_APP, "order_ready", Role.MANAGER.value, params),
            NotificationIntent(CHANNEL_CUSTOMER, "order_ready", "customer", params),
        )
    if edge == (OrderStatus.STITCHED, OrderStatus.DELIVERED):
        return (
            NotificationIntent(CHANNEL_CUSTOMER, "review_request", "customer", {"customer_name": snapshot.customer_name}),
        )
    return ()


def transition(snapshot: OrderSnapshot, target: Any, role: Any, *, now: datetime | None = None) -> TransitionResult:
    """
    Move an order to `target` on behalf of `role`.

    Order of checks: role rights first (Forbidden), then the edge
    (IllegalTransition), then timestamps. Deterministic for a given
    snapshot, target, role and `now`.

    Raises:
        ValidationError: unknown target status
        Forbidden: role may not move orders into `target` (or take this edge)
        IllegalTransition: edge not in TRANSITIONS
    """
    to_status = coerce_status(target)
    from_status = coerce_status(snapshot.status)
    who = coerce_role(role)

    # A status no edge leads into (pending) is an illegal target for everyone
    roles_into = _roles_into(to_status)
    if roles_into and who not in roles_into:
        raise Forbidden(f"Role '{who.value}' cannot mark orders as {to_status.value}")

    edge = (from_status, to_status)
    if edge not in TRANSITIONS:
        raise IllegalTransition(from_status.value, to_status.value)
    if who not in TRANSITIONS[edge]:
        raise Forbidden(f"Role '{who.value}' cannot move orders from {from_status.value} to {to_status.value}")

    when = now or utcnow()
    patch: dict = {"status": to_status.value}
    if to_status == OrderStatus.STITCHED:
        patch["completed_at"] = when
    elif to_status == OrderStatus.DELIVERED:
        patch["delivered_at"] = when

    new_snapshot = replace(snapshot, **patch)
    return TransitionResult(
        order=new_snapshot,
        patch=patch,
        has_outstanding_balance=has_outstanding_balance(snapshot),
        intents=_intents_for(edge, snapshot),
    )
