# Overview: Flask API routes for measurement-sheet photos.

# backend/tailorshop/routes/attachments.py
"""
Attachment API Routes

Photos arrive either as a multipart upload (field "file") stored under
UPLOAD_FOLDER, or as JSON {"image_url": "..."} for images already held
in external storage.
"""

import os

from flask import Blueprint, request, jsonify, g, current_app, send_from_directory

from ..decorators import require_auth, require_permission
from ..services import attachment_service, order_service


attachments_bp = Blueprint("attachments", __name__, url_prefix="/api/attachments")
uploads_bp = Blueprint("uploads", __name__)


@attachments_bp.post("/orders/<int:order_id>")
@require_auth
@require_permission("UPLOAD_ATTACHMENT")
def add_attachment_route(order_id: int):
    """
    Returns:
        201: Attachment recorded
        400: Missing file, wrong type, too large, or bad URL
        404: Order not found
    """
    if request.files:
        attachment = attachment_service.upload_attachment(
            order_id, request.files.get("file"), g.current_user
        )
    else:
        data = request.get_json(silent=True) or {}
        attachment = attachment_service.attach_image_url(
            order_id, data.get("image_url"), g.current_user
        )
    return jsonify({"attachment": attachment.to_dict()}), 201


@attachments_bp.get("/orders/<int:order_id>")
@require_auth
@require_permission("VIEW_ORDERS")
def list_attachments_route(order_id: int):
    order = order_service.get_order(order_id)
    attachments = attachment_service.list_attachments_for_order(order.id)
    return jsonify({"attachments": [a.to_dict() for a in attachments]}), 200


@uploads_bp.get("/uploads/<path:filename>")
def serve_upload(filename: str):
    folder = os.path.abspath(current_app.config["UPLOAD_FOLDER"])
    return send_from_directory(folder, filename)
