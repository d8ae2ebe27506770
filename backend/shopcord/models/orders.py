from __future__ import annotations

from ..extensions import db
from shopcord.time_utils import to_utc_z


ORDER_STATUSES = ("pending", "processing", "completed", "cancelled", "refunded")
PAYMENT_METHODS = ("stripe", "paypal", "bank_transfer", "points")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")


class Order(db.Model):
    """
    One checkout. Append-only: never deleted, only status/payment/notes change.

    INVARIANT: total_amount == sum(item.price * item.quantity), fixed at
    creation. Line prices are snapshots and do not follow later product edits.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.Index("ix_orders_discord_id", "discord_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user_accounts.id"), nullable=False, index=True)
    discord_id = db.Column(db.String(32), nullable=True)
    username = db.Column(db.String(100), nullable=False)

    total_amount = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_method = db.Column(db.String(16), nullable=False, index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_details = db.Column(db.JSON, nullable=False, default=dict)

    notes = db.Column(db.Text, nullable=False, default="")
    # Where the order came from: api or discord_button
    source = db.Column(db.String(32), nullable=False, default="api")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    # Set once, on first entry into completed
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("UserAccount", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        backref=db.backref("order", lazy=True),
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def reference(self) -> str:
        return f"#{self.id:06d}"

    def computed_total(self) -> int:
        return sum(item.price * item.quantity for item in self.items)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reference": self.reference,
            "user_id": self.user_id,
            "discord_id": self.discord_id,
            "username": self.username,
            "items": [item.to_dict() for item in self.items],
            "total_amount": self.total_amount,
            "status": self.status,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "payment_details": dict(self.payment_details or {}),
            "notes": self.notes,
            "source": self.source,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "version_id": self.version_id,
        }


class OrderItem(db.Model):
    """Denormalized line snapshot (name and price as charged)."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    # Nulled if the product is later deleted; name/price keep the history
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    @property
    def line_total(self) -> int:
        return self.price * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "name": self.name,
            "price": self.price,
            "quantity": self.quantity,
            "line_total": self.line_total,
        }
