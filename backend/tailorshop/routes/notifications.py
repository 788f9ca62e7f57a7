# Overview: Flask API routes for the signed-in user's in-app notifications.

# backend/tailorshop/routes/notifications.py
from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_permission
from ..services import notification_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
@require_permission("VIEW_NOTIFICATIONS")
def list_notifications_route():
    """
    Query params: unread=true, limit, offset
    """
    unread_only = request.args.get("unread", "").lower() in {"1", "true", "yes"}
    limit = max(1, min(request.args.get("limit", 50, type=int), 200))
    offset = max(0, request.args.get("offset", 0, type=int))

    user_id = g.current_user.id
    notifications = notification_service.list_notifications(
        user_id, unread_only=unread_only, limit=limit, offset=offset
    )
    return jsonify({
        "notifications": [n.to_dict() for n in notifications],
        "unread_count": notification_service.unread_count(user_id),
    }), 200


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
@require_permission("VIEW_NOTIFICATIONS")
def mark_read_route(notification_id: int):
    notification = notification_service.mark_as_read(notification_id, g.current_user.id)
    return jsonify({"notification": notification.to_dict()}), 200


@notifications_bp.post("/read-all")
@require_auth
@require_permission("VIEW_NOTIFICATIONS")
def mark_all_read_route():
    updated = notification_service.mark_all_as_read(g.current_user.id)
    return jsonify({"updated": updated}), 200
