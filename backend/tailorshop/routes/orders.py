# Overview: Flask API routes for orders; parses input and returns JSON responses.

# backend/tailorshop/routes/orders.py
"""
Order API Routes

DESIGN:
- Create orders with their opening ledger (total, deposit, remaining)
- Look up by id or by the serial written on the paper ticket
- Move orders through pending -> stitched -> delivered
- Dashboard counts and customer payment reminders

SECURITY:
- VIEW_ORDERS for every read
- CREATE_ORDER for creation and customer-detail edits
- Status changes are authorized by the lifecycle transition table only
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_permission
from ..money import format_amount
from ..services import (
    attachment_service,
    lifecycle_service,
    messaging_service,
    order_service,
    payment_service,
)
from ..services.order_service import ConfirmationRequired


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

EDITABLE_FIELDS = {"customer_name", "customer_phone", "notes"}


def _order_detail(order) -> dict:
    return {
        "order": order.to_dict(),
        "ledger": payment_service.get_payment_summary(order.id),
        "payments": [p.to_dict() for p in payment_service.list_payments_for_order(order.id)],
        "attachments": [a.to_dict() for a in attachment_service.list_attachments_for_order(order.id)],
        "allowed_transitions": lifecycle_service.allowed_targets(order.status, g.current_user.role),
    }


# =============================================================================
# LISTING AND CREATION
# =============================================================================

@orders_bp.get("")
@require_auth
@require_permission("VIEW_ORDERS")
def list_orders_route():
    """
    List orders, newest first.

    Query params: status, q (serial / name / phone), limit, offset
    """
    orders, total = order_service.list_orders(
        status=request.args.get("status") or None,
        search=request.args.get("q"),
        limit=request.args.get("limit", order_service.DEFAULT_PAGE_SIZE, type=int),
        offset=request.args.get("offset", 0, type=int),
    )
    return jsonify({
        "orders": [o.to_dict() for o in orders],
        "total": total,
    }), 200


@orders_bp.post("")
@require_auth
@require_permission("CREATE_ORDER")
def create_order_route():
    """
    Create an order in status pending.

    Request body:
    {
        "serial_number": "1024",
        "customer_name": "...",
        "customer_phone": "0501234567",
        "total_amount": "500.00",
        "deposit_amount": "100.00",   (optional, default 0)
        "notes": "..."                (optional)
    }

    Returns:
        201: Order created, remaining = total - deposit
        400: Invalid fields (every violation listed under "errors")
        409: Serial number already used
    """
    data = request.get_json(silent=True) or {}
    order = order_service.create_order(data, g.current_user)
    return jsonify({"order": order.to_dict()}), 201


@orders_bp.get("/stats")
@require_auth
@require_permission("VIEW_ORDERS")
def stats_route():
    return jsonify(order_service.dashboard_stats()), 200


# =============================================================================
# SINGLE ORDER
# =============================================================================

@orders_bp.get("/<int:order_id>")
@require_auth
@require_permission("VIEW_ORDERS")
def get_order_route(order_id: int):
    order = order_service.get_order(order_id)
    return jsonify(_order_detail(order)), 200


@orders_bp.get("/serial/<path:serial_number>")
@require_auth
@require_permission("VIEW_ORDERS")
def get_order_by_serial_route(serial_number: str):
    order = order_service.get_order_by_serial(serial_number)
    return jsonify(_order_detail(order)), 200


@orders_bp.patch("/<int:order_id>")
@require_auth
@require_permission("CREATE_ORDER")
def update_order_route(order_id: int):
    """
    Edit customer details or notes.

    Money and status are not editable here; status goes through
    POST /<id>/status and balances only change through payments.
    """
    data = request.get_json(silent=True) or {}
    blocked = sorted(set(data) - EDITABLE_FIELDS)
    if blocked:
        return jsonify({
            "error": "Fields not editable",
            "errors": {key: "not editable" for key in blocked},
        }), 400

    order = order_service.update_order_fields(order_id, data)
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.post("/<int:order_id>/status")
@require_auth
def change_status_route(order_id: int):
    """
    Move an order to a new status.

    Request body:
    {
        "status": "stitched" | "delivered",
        "confirm_outstanding": true   (required to deliver with a balance)
    }

    Returns:
        200: Order moved; "customer_messages" holds WhatsApp suggestions
        400: Unknown status
        403: Role may not take this transition
        409: Illegal transition, concurrent change, or balance needs confirmation
    """
    data = request.get_json(silent=True) or {}
    target = data.get("status")
    if not target:
        return jsonify({"error": "status is required", "errors": {"status": "required"}}), 400

    try:
        change = order_service.change_status(
            order_id,
            target,
            g.current_user,
            confirm_outstanding=data.get("confirm_outstanding") is True,
            resource=request.path,
        )
    except ConfirmationRequired as e:
        return jsonify({
            "error": str(e),
            "requires_confirmation": True,
            "remaining_amount": format_amount(e.remaining),
        }), 409

    return jsonify({
        "order": change.order.to_dict(),
        "has_outstanding_balance": change.result.has_outstanding_balance,
        "customer_messages": change.customer_messages,
    }), 200


@orders_bp.get("/<int:order_id>/reminder")
@require_auth
@require_permission("VIEW_ORDERS")
def payment_reminder_route(order_id: int):
    """Compose a WhatsApp payment reminder for an order that still owes money."""
    order = order_service.get_order(order_id)
    return jsonify(messaging_service.payment_reminder(order)), 200
