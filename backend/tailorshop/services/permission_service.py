# Overview: Role-based permission checks and security event logging.

"""
Permission Checking and Security Event Logging

Two roles exist and they are fixed at provisioning:
- tailor:  sees orders, marks them stitched, reads own notifications
- manager: everything, including creating orders, payments and photos

Status changes are NOT authorized here; the transition table in
lifecycle_service is the only authority for which role may take which
edge. This module covers the remaining actions.

DESIGN PRINCIPLES:
- Fail closed: unknown roles get nothing
- Log denials only
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from ..extensions import db
from ..models import SecurityEvent, User
from ..time_utils import utcnow


class Role(str, Enum):
    TAILOR = "tailor"
    MANAGER = "manager"


VALID_ROLES = {r.value for r in Role}


class Forbidden(Exception):
    """Raised when a role lacks the right to perform an action."""


PERMISSION_DEFINITIONS = {
    "VIEW_ORDERS": "View orders, payments and measurement sheets",
    "CREATE_ORDER": "Create new orders",
    "ADD_PAYMENT": "Record payments against an order",
    "UPLOAD_ATTACHMENT": "Attach measurement-sheet photos",
    "MARK_STITCHED": "Move orders from pending to stitched",
    "MARK_DELIVERED": "Move orders from stitched to delivered",
    "VIEW_NOTIFICATIONS": "Read own notifications",
}

ROLE_PERMISSIONS: dict[Role, frozenset[str]] = {
    Role.TAILOR: frozenset({"VIEW_ORDERS", "MARK_STITCHED", "VIEW_NOTIFICATIONS"}),
    Role.MANAGER: frozenset(PERMISSION_DEFINITIONS),
}


def coerce_role(value: Any) -> Role:
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value).strip().lower())
    except ValueError:
        raise Forbidden(f"Unknown role '{value}'")


def get_role_permissions(role: Any) -> set[str]:
    try:
        return set(ROLE_PERMISSIONS[coerce_role(role)])
    except Forbidden:
        return set()


def role_has_permission(role: Any, permission_code: str) -> bool:
    return permission_code in get_role_permissions(role)


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
) -> SecurityEvent:
    """
    Append a security event.

    event_type examples: PERMISSION_DENIED, TRANSITION_DENIED, LOGIN_FAILED.
    """
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        occurred_at=utcnow(),
    )
    db.session.add(event)
    db.session.commit()
    return event


def require_permission(
    user: User,
    permission_code: str,
    resource: str | None = None,
    ip_address: str | None = None,
) -> None:
    """
    Raise Forbidden unless the user's role grants `permission_code`.

    Denials are written to security_events before raising.
    """
    if role_has_permission(user.role, permission_code):
        return

    log_security_event(
        user_id=user.id,
        event_type="PERMISSION_DENIED",
        success=False,
        resource=resource,
        action=permission_code,
        reason=f"Role '{user.role}' lacks {permission_code}",
        ip_address=ip_address,
    )
    raise Forbidden(f"Permission denied: {permission_code}")
