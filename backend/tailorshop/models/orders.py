from __future__ import annotations

from ..extensions import db
from ..money import from_cents, format_amount
from ..time_utils import to_utc_z


class Order(db.Model):
    """
    A customer's tailoring order.

    Money is stored in integer cents. remaining_cents is maintained by the
    payment path with a conditional decrement and never goes negative
    (enforced by a CHECK constraint as well).

    STATUS: pending -> stitched -> delivered (see lifecycle_service).
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("serial_number", name="uq_orders_serial_number"),
        db.CheckConstraint("total_cents > 0", name="ck_orders_total_positive"),
        db.CheckConstraint("deposit_cents >= 0 AND deposit_cents <= total_cents", name="ck_orders_deposit_range"),
        db.CheckConstraint("remaining_cents >= 0", name="ck_orders_remaining_non_negative"),
        db.CheckConstraint("status IN ('pending', 'stitched', 'delivered')", name="ck_orders_status"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-facing number written on the paper ticket; text, caller-assigned
    serial_number = db.Column(db.String(64), nullable=False)

    customer_name = db.Column(db.String(128), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=False, index=True)

    total_cents = db.Column(db.BigInteger, nullable=False)
    deposit_cents = db.Column(db.BigInteger, nullable=False, default=0)
    remaining_cents = db.Column(db.BigInteger, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    creator_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    creator = db.relationship("User", backref=db.backref("orders_created", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def total_amount(self):
        return from_cents(self.total_cents)

    @property
    def deposit_amount(self):
        return from_cents(self.deposit_cents)

    @property
    def remaining_amount(self):
        return from_cents(self.remaining_cents)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "serial_number": self.serial_number,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "total_amount": format_amount(self.total_amount),
            "deposit_amount": format_amount(self.deposit_amount),
            "remaining_amount": format_amount(self.remaining_amount),
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "creator_id": self.creator_id,
            "version_id": self.version_id,
        }


class Payment(db.Model):
    """
    A payment against an order's remaining balance.

    IMMUTABLE: rows are only ever inserted. Insertion and the matching
    decrement of orders.remaining_cents happen in one transaction.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    amount_cents = db.Column(db.BigInteger, nullable=False)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("payments", lazy=True, passive_deletes=True))
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])

    @property
    def amount(self):
        return from_cents(self.amount_cents)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount": format_amount(self.amount),
            "payment_date": to_utc_z(self.payment_date),
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class Attachment(db.Model):
    """Measurement-sheet photo linked to an order. Append-only."""
    __tablename__ = "attachments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    image_url = db.Column(db.String(512), nullable=False)
    uploaded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("attachments", lazy=True, passive_deletes=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "image_url": self.image_url,
            "uploaded_by_user_id": self.uploaded_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
