from __future__ import annotations

from ..extensions import db
from shopcord.time_utils import to_utc_z


class UserAccount(db.Model):
    """
    Shop identity: a Discord user or an email account.

    Created lazily on first interaction. `points` never goes negative; every
    debit goes through account_service.debit_points (conditional UPDATE).
    """
    __tablename__ = "user_accounts"
    __table_args__ = (
        db.CheckConstraint("points >= 0", name="ck_user_accounts_points_nonnegative"),
        db.CheckConstraint(
            "discord_id IS NOT NULL OR email IS NOT NULL",
            name="ck_user_accounts_identity",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    discord_id = db.Column(db.String(32), nullable=True, unique=True)
    email = db.Column(db.String(255), nullable=True, unique=True)
    username = db.Column(db.String(100), nullable=False)

    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    is_staff = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    points = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=False, default="")

    # SHA-256 of the bearer token; the plaintext is only shown once by the CLI
    api_token_hash = db.Column(db.String(64), nullable=True, unique=True)

    last_seen_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    cart_items = db.relationship(
        "CartItem",
        backref=db.backref("user", lazy=True),
        lazy=True,
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )

    @property
    def display_name(self) -> str:
        return self.username

    def __repr__(self) -> str:
        return f"<UserAccount id={self.id} discord_id={self.discord_id!r} points={self.points}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "discord_id": self.discord_id,
            "email": self.email,
            "username": self.username,
            "is_admin": self.is_admin,
            "is_staff": self.is_staff,
            "is_active": self.is_active,
            "points": self.points,
            "notes": self.notes,
            "last_seen_at": to_utc_z(self.last_seen_at) if self.last_seen_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CartItem(db.Model):
    """
    Pre-checkout staging line. Holds a reference to the product, not a copy.

    product_id is nulled when the product is deleted; cart reads must skip
    such lines (cart_service.get_cart_lines).
    """
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint("user_id", "product_id", name="uq_cart_items_user_product"),
        db.CheckConstraint("quantity >= 1", name="ck_cart_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user_accounts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "product": self.product.to_dict() if self.product else None,
        }
