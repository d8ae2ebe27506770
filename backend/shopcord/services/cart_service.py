# Overview: Service-layer operations for the per-user cart.

"""
Cart Service

The cart is optimistic: nothing here checks stock or product status. Stock is
authoritative only at checkout (purchase_service re-validates every line).

NULL-FILTER INVARIANT: cart lines reference products; a deleted product leaves
a line with product_id NULL. Every read goes through get_cart_lines, which
skips those lines, so callers never see a dangling reference.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import CartItem, Product, UserAccount
from ..errors import NotFoundError
from ..validation import parse_quantity


def get_cart_lines(user: UserAccount) -> list[CartItem]:
    lines = (
        db.session.query(CartItem)
        .filter(CartItem.user_id == user.id)
        .order_by(CartItem.id.asc())
        .all()
    )
    return [line for line in lines if line.product_id is not None and line.product is not None]


def cart_summary(user: UserAccount) -> dict:
    """
    Cart payload for API and bot. total_amount only counts lines that could
    be bought right now (purchasable status), as a display hint.
    """
    lines = get_cart_lines(user)
    total = sum(
        line.product.price * line.quantity
        for line in lines
        if line.product.is_purchasable()
    )
    return {
        "cart": [line.to_dict() for line in lines],
        "total_amount": total,
        "item_count": len(lines),
    }


def _find_line(user: UserAccount, product_id: int) -> CartItem | None:
    return db.session.query(CartItem).filter_by(user_id=user.id, product_id=product_id).first()


def add_to_cart(user: UserAccount, product_id: int, quantity=1) -> CartItem:
    """Increment the existing line or append a new one."""
    quantity = parse_quantity(quantity)
    if db.session.get(Product, product_id) is None:
        raise NotFoundError("Product not found")

    line = _find_line(user, product_id)
    if line is not None:
        line.quantity += quantity
    else:
        line = CartItem(user_id=user.id, product_id=product_id, quantity=quantity)
        db.session.add(line)
    db.session.commit()
    current_app.logger.info(
        "Cart add: user=%s product=%s qty=%s (line now %s)", user.id, product_id, quantity, line.quantity
    )
    return line


def update_quantity(user: UserAccount, product_id: int, quantity) -> CartItem:
    quantity = parse_quantity(quantity)
    line = _find_line(user, product_id)
    if line is None:
        raise NotFoundError("Product is not in the cart")
    line.quantity = quantity
    db.session.commit()
    return line


def remove_from_cart(user: UserAccount, product_id: int) -> None:
    """Idempotent: removing an absent product is not an error."""
    db.session.query(CartItem).filter_by(user_id=user.id, product_id=product_id).delete(
        synchronize_session=False
    )
    db.session.commit()
    db.session.expire(user, ["cart_items"])


def clear_cart(user: UserAccount) -> None:
    """Idempotent. Also drops lines whose product was deleted."""
    db.session.query(CartItem).filter_by(user_id=user.id).delete(synchronize_session=False)
    db.session.commit()
    db.session.expire(user, ["cart_items"])


def remove_lines(user: UserAccount, product_ids) -> None:
    """Drop purchased lines after checkout. Does not commit."""
    ids = list(product_ids)
    if not ids:
        return
    db.session.query(CartItem).filter(
        CartItem.user_id == user.id, CartItem.product_id.in_(ids)
    ).delete(synchronize_session=False)
