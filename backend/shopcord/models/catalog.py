from __future__ import annotations

from ..extensions import db
from shopcord.time_utils import to_utc_z


PRODUCT_STATUSES = ("available", "hidden", "out_of_stock", "pre_order")
# Statuses a purchaser may buy from; out_of_stock is derived, never chosen.
PURCHASABLE_STATUSES = ("available", "pre_order")


class Category(db.Model):
    """
    Product grouping, also mapped to a Discord channel.

    Not touched by the purchase flow.
    """
    __tablename__ = "categories"
    __table_args__ = (
        db.Index("ix_categories_display_order", "display_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    emoji = db.Column(db.String(16), nullable=False, default="📦")
    description = db.Column(db.String(255), nullable=False, default="")
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_visible = db.Column(db.Boolean, nullable=False, default=True)
    channel_id = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def full_name(self) -> str:
        return f"{self.emoji} {self.name}"

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "emoji": self.emoji,
            "description": self.description,
            "display_order": self.display_order,
            "is_visible": self.is_visible,
            "channel_id": self.channel_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Sellable item with a mutable stock counter.

    STATUS: `out_of_stock` is derived from `stock` (or forced through
    `sold_out_override`); admins only ever set available / hidden / pre_order.
    The admin choice is kept in `listed_status` so a restock restores it.
    See catalog_service.derive_status.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_nonnegative"),
        db.CheckConstraint("price >= 0", name="ck_products_price_nonnegative"),
        db.Index("ix_products_category_status", "category_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")

    # Whole currency units (the shop sells in yen)
    price = db.Column(db.Integer, nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="available", index=True)
    # Admin-chosen status underneath a derived out_of_stock (available / hidden / pre_order)
    listed_status = db.Column(db.String(16), nullable=True)
    sold_out_override = db.Column(db.Boolean, nullable=False, default=False)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)
    images = db.Column(db.JSON, nullable=False, default=list)
    tags = db.Column(db.JSON, nullable=False, default=list)
    emoji = db.Column(db.String(16), nullable=True)
    channel_id = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))

    def is_purchasable(self) -> bool:
        return self.status in PURCHASABLE_STATUSES

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "stock": self.stock,
            "status": self.status,
            "listed_status": self.listed_status,
            "sold_out_override": self.sold_out_override,
            "category_id": self.category_id,
            "images": list(self.images or []),
            "tags": list(self.tags or []),
            "emoji": self.emoji,
            "channel_id": self.channel_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
