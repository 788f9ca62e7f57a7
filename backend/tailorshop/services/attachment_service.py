# Overview: Measurement-sheet photos attached to orders.

from __future__ import annotations

import os
import secrets
import time
from urllib.parse import urlparse

from flask import current_app
from werkzeug.datastructures import FileStorage

from ..extensions import db
from ..models import Attachment, User
from ..time_utils import utcnow
from ..validation import ValidationError
from . import permission_service
from .concurrency import storage_errors
from .order_service import get_order


ALLOWED_EXTENSIONS = {"jpg": "jpeg", "jpeg": "jpeg", "png": "png", "webp": "webp"}
ALLOWED_MIMETYPES = {"image/jpeg", "image/png", "image/webp"}


def insert_attachment(order_id: int, image_url: str, uploaded_by_user_id: int | None = None) -> Attachment:
    attachment = Attachment(
        order_id=order_id,
        image_url=image_url,
        uploaded_by_user_id=uploaded_by_user_id,
        created_at=utcnow(),
    )
    with storage_errors():
        db.session.add(attachment)
        db.session.commit()
    return attachment


def _extension_for(file: FileStorage) -> str:
    filename = (file.filename or "").lower()
    ext = filename.rsplit(".", 1)[-1] if "." in filename else ""
    if ext not in ALLOWED_EXTENSIONS:
        raise ValidationError("Photo must be a .jpg, .png or .webp file", field="file")
    if file.mimetype and file.mimetype not in ALLOWED_MIMETYPES:
        raise ValidationError(f"Unsupported content type {file.mimetype}", field="file")
    return "jpg" if ALLOWED_EXTENSIONS[ext] == "jpeg" else ext


def upload_attachment(order_id: int, file: FileStorage, actor: User) -> Attachment:
    """
    Store an uploaded photo under UPLOAD_FOLDER and link it to the order.

    Files are named <order_id>_<epoch>_<random>.<ext>; the client's name is
    only used for its extension.
    """
    permission_service.require_permission(actor, "UPLOAD_ATTACHMENT", resource=f"orders/{order_id}/attachments")
    order = get_order(order_id)

    if file is None:
        raise ValidationError("file is required", field="file")
    ext = _extension_for(file)

    data = file.read()
    if not data:
        raise ValidationError("Uploaded file is empty", field="file")
    max_bytes = current_app.config["MAX_ATTACHMENT_BYTES"]
    if len(data) > max_bytes:
        raise ValidationError(f"Photo exceeds {max_bytes // 1024} KB", field="file")

    folder = current_app.config["UPLOAD_FOLDER"]
    os.makedirs(folder, exist_ok=True)
    name = f"{order.id}_{int(time.time())}_{secrets.token_hex(4)}.{ext}"
    path = os.path.join(folder, name)
    with open(path, "wb") as fh:
        fh.write(data)

    base = current_app.config["PUBLIC_UPLOAD_BASE_URL"].rstrip("/")
    try:
        attachment = insert_attachment(order.id, f"{base}/{name}", uploaded_by_user_id=actor.id)
    except Exception:
        # No row points at the file, so it must not stay on disk
        os.remove(path)
        raise
    current_app.logger.info("Stored measurement sheet %s for order %s", name, order.serial_number)
    return attachment


def attach_image_url(order_id: int, image_url: str, actor: User) -> Attachment:
    """Link a photo that already lives in external storage."""
    permission_service.require_permission(actor, "UPLOAD_ATTACHMENT", resource=f"orders/{order_id}/attachments")
    order = get_order(order_id)

    url = (image_url or "").strip()
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValidationError("image_url must be an http(s) URL", field="imageUrl")
    if len(url) > 512:
        raise ValidationError("image_url is too long", field="imageUrl")

    return insert_attachment(order.id, url, uploaded_by_user_id=actor.id)


def list_attachments_for_order(order_id: int) -> list[Attachment]:
    return (
        db.session.query(Attachment)
        .filter(Attachment.order_id == order_id)
        .order_by(Attachment.created_at.desc(), Attachment.id.desc())
        .all()
    )
