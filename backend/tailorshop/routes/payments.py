# Overview: Flask API routes for payments operations; parses input and returns JSON responses.

# backend/tailorshop/routes/payments.py
"""
Payment API Routes

DESIGN:
- Record a payment against an order's remaining balance
- List an order's payments with the ledger summary

SECURITY:
- ADD_PAYMENT required for recording payments (manager)
- VIEW_ORDERS required for reading them
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_permission
from ..services import payment_service, order_service


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/orders/<int:order_id>")
@require_auth
@require_permission("ADD_PAYMENT")
def add_payment_route(order_id: int):
    """
    Add a payment to an order.

    Request body:
    {
        "amount": "150.00",
        "notes": "cash at pickup",             (optional)
        "payment_date": "2026-03-01T10:00:00Z"  (optional, default now)
    }

    Returns:
        201: Payment recorded, with the updated order and ledger
        400: Non-positive or excess amount, bad date
        404: Order not found
        409: Order delivered or fully paid, or balance kept changing
    """
    data = request.get_json(silent=True) or {}
    payment = payment_service.add_payment(
        order_id,
        data.get("amount"),
        g.current_user,
        notes=data.get("notes"),
        payment_date=data.get("payment_date"),
    )
    order = order_service.get_order(order_id)
    return jsonify({
        "payment": payment.to_dict(),
        "order": order.to_dict(),
        "ledger": payment_service.get_payment_summary(order_id),
    }), 201


@payments_bp.get("/orders/<int:order_id>")
@require_auth
@require_permission("VIEW_ORDERS")
def list_payments_route(order_id: int):
    summary = payment_service.get_payment_summary(order_id)
    payments = payment_service.list_payments_for_order(order_id)
    return jsonify({
        "payments": [p.to_dict() for p in payments],
        "ledger": summary,
    }), 200
