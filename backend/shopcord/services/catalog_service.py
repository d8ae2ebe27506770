# Overview: Service-layer operations for categories and products; encapsulates business logic and database work.

"""
Catalog Service

STATUS DERIVATION (single source of truth):
- hidden is an admin choice and always wins.
- out_of_stock is derived: stock <= 0, or the explicit sold_out_override flag.
- otherwise the admin choice (listed_status: available or pre_order) shows through,
  so selling out and restocking a pre-order product keeps it a pre-order.

Every write path (admin update, stock set, purchase) calls apply_derived_status
so the stored status never disagrees with stock.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..models import CartItem, Category, OrderItem, Product
from ..errors import InUseError, NotFoundError, ValidationError
from ..validation import coerce_int
from .audit_service import append_audit_event


def listed_status(product: Product) -> str:
    """Admin-chosen status underneath a derived out_of_stock."""
    if product.listed_status:
        return product.listed_status
    if product.status in (None, "out_of_stock"):
        return "available"
    return product.status


def derive_status(product: Product) -> str:
    base = listed_status(product)
    if base == "hidden":
        return "hidden"
    if product.sold_out_override or product.stock <= 0:
        return "out_of_stock"
    return base


def apply_derived_status(product: Product, *, actor_user_id: int | None = None, note: str | None = None) -> bool:
    """Recompute product.status; audit and log when it changes. Does not commit."""
    product.listed_status = listed_status(product)
    old_status = product.status
    new_status = derive_status(product)
    if new_status == old_status:
        return False

    product.status = new_status
    append_audit_event(
        event_type="product.status_changed",
        entity_type="product",
        entity_id=product.id,
        actor_user_id=actor_user_id,
        from_value=old_status,
        to_value=new_status,
        note=note,
    )
    current_app.logger.info(
        "Product status changed: %s (id=%s) %s -> %s", product.name, product.id, old_status, new_status
    )
    return True


# ---------- Categories ----------

def list_categories(*, include_hidden: bool = False) -> list[Category]:
    q = db.session.query(Category)
    if not include_hidden:
        q = q.filter(Category.is_visible.is_(True))
    return q.order_by(Category.display_order.asc(), Category.name.asc()).all()


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError("Category not found")
    return category


def _ensure_unique_category_name(name: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Category).filter(func.lower(Category.name) == name.lower())
    if exclude_id is not None:
        q = q.filter(Category.id != exclude_id)
    if q.first() is not None:
        raise InUseError(f"Category '{name}' already exists")


def create_category(patch: dict) -> Category:
    _ensure_unique_category_name(patch["name"])
    category = Category(**patch)
    db.session.add(category)
    db.session.commit()
    current_app.logger.info("Category created: %s (id=%s)", category.name, category.id)
    return category


def update_category(category_id: int, patch: dict) -> Category:
    category = get_category(category_id)
    if "name" in patch:
        _ensure_unique_category_name(patch["name"], exclude_id=category.id)
    for key, value in patch.items():
        setattr(category, key, value)
    db.session.commit()
    current_app.logger.info("Category updated: %s (id=%s)", category.name, category.id)
    return category


def delete_category(category_id: int) -> None:
    category = get_category(category_id)
    product_count = db.session.query(Product).filter_by(category_id=category.id).count()
    if product_count:
        raise InUseError(
            f"Category still has {product_count} product(s); move or delete them first",
            details={"product_count": product_count},
        )
    db.session.delete(category)
    db.session.commit()
    current_app.logger.info("Category deleted: %s (id=%s)", category.name, category_id)


def reorder_categories(entries: list[dict]) -> list[Category]:
    """Bulk displayOrder update: [{"id": 1, "display_order": 0}, ...]."""
    if not isinstance(entries, list) or not entries:
        raise ValidationError("categories must be a non-empty list")

    updated = []
    for entry in entries:
        if not isinstance(entry, dict) or "id" not in entry or "display_order" not in entry:
            raise ValidationError("each entry needs id and display_order")
        category = get_category(coerce_int(entry["id"], "id"))
        order = coerce_int(entry["display_order"], "display_order")
        if order < 0:
            raise ValidationError("display_order must be >= 0")
        category.display_order = order
        updated.append(category)

    db.session.commit()
    return updated


# ---------- Products ----------

def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


def list_products(
    *,
    category_id: int | None = None,
    status: str | None = None,
    search: str | None = None,
    include_hidden: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    List products with optional filters and pagination.

    Hidden products and products of hidden categories are only included for staff.
    """
    q = db.session.query(Product)
    if not include_hidden:
        q = q.join(Category).filter(Product.status != "hidden", Category.is_visible.is_(True))
    if category_id is not None:
        q = q.filter(Product.category_id == category_id)
    if status:
        q = q.filter(Product.status == status)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(Product.name.ilike(like), Product.description.ilike(like)))

    q = q.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = q.all()
        return {"products": [p.to_dict() for p in products]}

    page = max(1, page)
    per_page = min(max(1, per_page or 20), 100)
    total = q.count()
    products = q.offset((page - 1) * per_page).limit(per_page).all()
    return {
        "products": [p.to_dict() for p in products],
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "pages": (total + per_page - 1) // per_page,
        },
    }


def list_purchasable_products(category_id: int) -> list[Product]:
    """Products a purchaser can pick from a category right now (in stock, not hidden)."""
    return (
        db.session.query(Product)
        .filter(
            Product.category_id == category_id,
            Product.status.in_(("available", "pre_order")),
            Product.stock > 0,
        )
        .order_by(Product.name.asc())
        .all()
    )


def _require_category(category_id) -> None:
    if db.session.get(Category, category_id) is None:
        raise ValidationError("Category does not exist")


def create_product(patch: dict, *, actor_user_id: int | None = None) -> Product:
    _require_category(patch["category_id"])

    product = Product(**patch)
    product.stock = product.stock or 0
    product.listed_status = product.status or "available"
    product.status = derive_status(product)

    db.session.add(product)
    db.session.flush()
    append_audit_event(
        event_type="product.stock_changed",
        entity_type="product",
        entity_id=product.id,
        actor_user_id=actor_user_id,
        from_value=0,
        to_value=product.stock,
        note="created",
    )
    db.session.commit()
    current_app.logger.info("Product created: %s (id=%s, stock=%s)", product.name, product.id, product.stock)
    return product


def update_product(product_id: int, patch: dict, *, actor_user_id: int | None = None) -> Product:
    product = get_product(product_id)
    if "category_id" in patch:
        _require_category(patch["category_id"])

    old_stock = product.stock
    for key, value in patch.items():
        setattr(product, key, value)
    if "status" in patch:
        product.listed_status = patch["status"]

    if product.stock != old_stock:
        append_audit_event(
            event_type="product.stock_changed",
            entity_type="product",
            entity_id=product.id,
            actor_user_id=actor_user_id,
            from_value=old_stock,
            to_value=product.stock,
            note="admin update",
        )
    apply_derived_status(product, actor_user_id=actor_user_id, note="admin update")
    db.session.commit()
    current_app.logger.info("Product updated: %s (id=%s)", product.name, product.id)
    return product


def set_stock(product_id: int, stock: int, *, actor_user_id: int | None = None) -> Product:
    if stock < 0:
        raise ValidationError("stock must be >= 0")

    product = get_product(product_id)
    old_stock = product.stock
    product.stock = stock

    append_audit_event(
        event_type="product.stock_changed",
        entity_type="product",
        entity_id=product.id,
        actor_user_id=actor_user_id,
        from_value=old_stock,
        to_value=stock,
        note="stock set",
    )
    apply_derived_status(product, actor_user_id=actor_user_id, note="stock set")
    db.session.commit()
    current_app.logger.info(
        "Product stock set: %s (id=%s) %s -> %s", product.name, product.id, old_stock, stock
    )
    return product


def delete_product(product_id: int) -> None:
    """
    Hard delete (admin only, never part of the purchase flow).

    Cart lines and order lines keep their rows with product_id nulled:
    orders stay readable through their snapshots, carts skip the dead line.
    """
    product = get_product(product_id)
    name = product.name
    db.session.query(CartItem).filter_by(product_id=product.id).update(
        {CartItem.product_id: None}, synchronize_session=False
    )
    db.session.query(OrderItem).filter_by(product_id=product.id).update(
        {OrderItem.product_id: None}, synchronize_session=False
    )
    db.session.delete(product)
    db.session.commit()
    db.session.expire_all()
    current_app.logger.info("Product deleted: %s (id=%s)", name, product_id)
