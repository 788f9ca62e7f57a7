# Overview: In-app notifications and dispatch of lifecycle notification intents.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Notification, Order
from ..time_utils import utcnow
from . import messaging_service
from .auth_service import list_users_by_role
from .lifecycle_service import CHANNEL_CUSTOMER, CHANNEL_IN_APP


class NotificationNotFoundError(LookupError):
    pass


IN_APP_TEMPLATES = {
    "order_ready": (
        "تم تجهيز طلب",
        "تم الانتهاء من خياطة طلب رقم {serial_number} للعميل {customer_name}",
    ),
}


def notify(user_id: int, title: str, message: str, *, order_id: int | None = None,
           commit: bool = True) -> Notification:
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        read=False,
        order_id=order_id,
        created_at=utcnow(),
    )
    db.session.add(notification)
    if commit:
        db.session.commit()
    return notification


def notify_role(role: str, title: str, message: str, *, order_id: int | None = None) -> list[Notification]:
    """One notification per active user holding `role`, committed together."""
    created = [
        notify(user.id, title, message, order_id=order_id, commit=False)
        for user in list_users_by_role(role)
    ]
    db.session.commit()
    return created


def dispatch_intents(order: Order, intents) -> list[dict]:
    """
    Carry out lifecycle intents for an already-persisted transition.

    In-app intents become notification rows. Customer intents are composed
    into WhatsApp suggestions and returned to the caller, which decides
    whether to open them.
    """
    suggestions: list[dict] = []
    for intent in intents:
        if intent.channel == CHANNEL_IN_APP:
            title, body = IN_APP_TEMPLATES[intent.template]
            sent = notify_role(intent.audience, title, body.format(**intent.params), order_id=order.id)
            current_app.logger.info(
                "Sent %s notification for order %s to %d %s(s)",
                intent.template, order.serial_number, len(sent), intent.audience,
            )
        elif intent.channel == CHANNEL_CUSTOMER:
            suggestions.append(
                messaging_service.customer_suggestion(order.customer_phone, intent.template, **intent.params)
            )
    return suggestions


def list_notifications(user_id: int, *, unread_only: bool = False, limit: int = 50, offset: int = 0) -> list[Notification]:
    query = db.session.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.read.is_(False))
    return (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )


def unread_count(user_id: int) -> int:
    return (
        db.session.query(Notification)
        .filter(Notification.user_id == user_id, Notification.read.is_(False))
        .count()
    )


def mark_as_read(notification_id: int, user_id: int) -> Notification:
    """
    Flip read to True. Other users' notifications look like missing ones.
    """
    notification = db.session.get(Notification, notification_id)
    if not notification or notification.user_id != user_id:
        raise NotificationNotFoundError(f"Notification {notification_id} not found")

    if not notification.read:
        notification.read = True
        db.session.commit()
    return notification


def mark_all_as_read(user_id: int) -> int:
    updated = (
        db.session.query(Notification)
        .filter(Notification.user_id == user_id, Notification.read.is_(False))
        .update({Notification.read: True}, synchronize_session=False)
    )
    db.session.commit()
    return updated
