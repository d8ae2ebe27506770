# Overview: The one purchase flow behind REST orders, cart checkout and Discord buttons.

"""
Purchase Service

Every entry point (POST /api/orders, cart checkout, the bot's confirm button)
builds a PurchaseRequest and calls purchase(). Nothing else creates orders.

PRECONDITIONS (checked in this order, first failure wins, nothing mutated):
1. product exists and is purchasable (hidden products are unavailable)
2. stock >= requested quantity
3. for points payments, balance >= order total

ON SUCCESS (one transaction):
- Order + snapshot lines inserted (payment_status paid for points, else pending)
- stock decremented with conditional UPDATEs; status re-derived (out_of_stock at 0)
- points debited with a conditional UPDATE (points payments)
- purchased cart lines removed (cart checkout / REST orders)
- audit events for the order, every stock change and the points debit

A concurrent buyer who wins the race makes our conditional UPDATE match no
row; that is reported as the same insufficient stock / points failure and the
whole transaction is rolled back.

purchase() never raises: expected failures come back as a PurchaseResult with
a readable reason; unexpected ones are logged, reported to the admin channel,
and returned as a generic failure.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..extensions import db
from ..models import (
    CartItem,
    Order,
    OrderItem,
    Product,
    UserAccount,
    PAYMENT_METHODS,
    PURCHASABLE_STATUSES,
)
from ..errors import ConflictError, NotFoundError, PermissionDeniedError, ShopError, ValidationError
from ..validation import coerce_int, parse_choice, parse_quantity
from ..time_utils import to_utc_z, utcnow
from ..bot.embeds import payment_instructions
from .audit_service import append_audit_event
from .account_service import debit_points
from .catalog_service import apply_derived_status
from .cart_service import get_cart_lines, remove_lines
from .concurrency import conditional_decrement
from . import notification_service


ORDER_SOURCES = ("api", "discord_button")

GENERIC_FAILURE = "Something went wrong while placing your order. Please try again later."


@dataclass(frozen=True)
class PurchaseLine:
    product_id: int
    quantity: int


@dataclass
class PurchaseRequest:
    user: UserAccount
    lines: list[PurchaseLine]
    payment_method: str
    source: str = "api"
    # Remove the purchased products from the user's cart on success
    from_cart: bool = False


@dataclass
class PurchaseResult:
    ok: bool
    order: Order | None = None
    reason: str | None = None
    code: str | None = None
    status_code: int = 201
    details: dict = field(default_factory=dict)
    instructions: str | None = None

    @classmethod
    def rejected(cls, exc: ShopError) -> "PurchaseResult":
        return cls(ok=False, reason=exc.message, code=exc.code, status_code=exc.status_code, details=exc.details)

    def to_dict(self) -> dict:
        if self.ok:
            return {"order": self.order.to_dict(), "instructions": self.instructions}
        body = {"error": self.reason, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


def _merge_lines(lines: list[PurchaseLine]) -> list[PurchaseLine]:
    """Collapse repeated products into one line, keeping first-seen order."""
    merged: dict[int, int] = {}
    for line in lines:
        merged[line.product_id] = merged.get(line.product_id, 0) + line.quantity
    return [PurchaseLine(product_id=pid, quantity=qty) for pid, qty in merged.items()]


def _check_preconditions(request: PurchaseRequest) -> list[tuple[Product, int]]:
    if not request.user.is_active:
        raise PermissionDeniedError("This account is disabled")
    if not request.lines:
        raise ValidationError("No items to purchase")
    parse_choice(request.payment_method, "paymentMethod", PAYMENT_METHODS)
    if request.source not in ORDER_SOURCES:
        raise ValidationError(f"Unknown order source {request.source!r}")

    resolved = []
    for line in _merge_lines(request.lines):
        quantity = parse_quantity(line.quantity)
        product = db.session.get(Product, line.product_id)
        if product is None:
            raise NotFoundError(
                "Product not found",
                details={"product_id": line.product_id},
                code="product_not_found",
            )
        if product.status not in PURCHASABLE_STATUSES and product.status != "out_of_stock":
            raise ConflictError(
                f"{product.name} is not available for purchase",
                details={"product_id": product.id},
                code="product_unavailable",
            )
        resolved.append((product, quantity))

    for product, quantity in resolved:
        if product.status == "out_of_stock" or product.stock < quantity:
            raise _insufficient_stock(product, quantity)

    if request.payment_method == "points":
        total = sum(product.price * quantity for product, quantity in resolved)
        if request.user.points < total:
            raise ConflictError(
                f"Insufficient points. Required: {total}, balance: {request.user.points}",
                details={"required": total, "balance": request.user.points},
                code="insufficient_points",
            )
    return resolved


def _insufficient_stock(product: Product, quantity: int) -> ConflictError:
    available = 0 if product.status == "out_of_stock" else product.stock
    return ConflictError(
        f"Insufficient stock for {product.name}. Requested: {quantity}, available: {available}",
        details={"product_id": product.id, "requested": quantity, "available": available},
        code="insufficient_stock",
    )


def _place_order(request: PurchaseRequest, resolved: list[tuple[Product, int]]) -> Order:
    user = request.user
    paid_with_points = request.payment_method == "points"
    now = utcnow()

    order = Order(
        user_id=user.id,
        discord_id=user.discord_id,
        username=user.display_name,
        total_amount=sum(product.price * quantity for product, quantity in resolved),
        status="pending",
        payment_method=request.payment_method,
        payment_status="paid" if paid_with_points else "pending",
        payment_details={"method": request.payment_method, "paidAt": to_utc_z(now)} if paid_with_points
        else {"method": request.payment_method},
        source=request.source,
        notes="",
    )
    for product, quantity in resolved:
        order.items.append(OrderItem(product_id=product.id, name=product.name, price=product.price, quantity=quantity))
    db.session.add(order)
    db.session.flush()

    for product, quantity in resolved:
        old_stock = product.stock
        if not conditional_decrement(Product, product.id, "stock", quantity):
            db.session.refresh(product)
            raise _insufficient_stock(product, quantity)
        db.session.refresh(product, attribute_names=["stock"])
        append_audit_event(
            event_type="product.stock_changed",
            entity_type="product",
            entity_id=product.id,
            actor_user_id=user.id,
            from_value=old_stock,
            to_value=product.stock,
            note=f"order {order.reference}",
            payload={"order_id": order.id, "delta": -quantity},
        )
        apply_derived_status(product, actor_user_id=user.id, note=f"order {order.reference}")

    if paid_with_points:
        debit_points(user, order.total_amount, actor_user_id=user.id, reason=f"order {order.reference}", order_id=order.id)

    if request.from_cart:
        remove_lines(user, [product.id for product, _ in resolved])

    append_audit_event(
        event_type="order.created",
        entity_type="order",
        entity_id=order.id,
        actor_user_id=user.id,
        to_value=order.status,
        payload={
            "total_amount": order.total_amount,
            "payment_method": order.payment_method,
            "payment_status": order.payment_status,
            "source": order.source,
        },
    )
    return order


def purchase(request: PurchaseRequest) -> PurchaseResult:
    """Run one purchase end to end. Never raises."""
    user = request.user
    try:
        resolved = _check_preconditions(request)
        order = _place_order(request, resolved)
        db.session.commit()
    except ShopError as exc:
        db.session.rollback()
        current_app.logger.info("Purchase rejected for %s (id=%s): %s", user.display_name, user.id, exc.message)
        return PurchaseResult.rejected(exc)
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception("Purchase failed for %s (id=%s)", user.display_name, user.id)
        notification_service.notify_failure(f"Purchase by {user.display_name} (id={user.id})", exc)
        return PurchaseResult(ok=False, reason=GENERIC_FAILURE, code="internal_error", status_code=500)

    current_app.logger.info(
        "Order created: %s by %s (id=%s) total=%s method=%s source=%s",
        order.reference, user.display_name, user.id, order.total_amount, order.payment_method, order.source,
    )
    notification_service.notify_order_created(order)
    return PurchaseResult(ok=True, order=order, instructions=payment_instructions(order))


def buy_product(user: UserAccount, product_id: int, quantity: int, payment_method: str, *, source: str) -> PurchaseResult:
    """Single-product purchase (Discord confirm button)."""
    return purchase(PurchaseRequest(
        user=user,
        lines=[PurchaseLine(product_id=product_id, quantity=quantity)],
        payment_method=payment_method,
        source=source,
    ))


def _requested_lines(items) -> list[PurchaseLine]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")
    lines = []
    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object with productId and quantity")
        lines.append(PurchaseLine(
            product_id=coerce_int(raw.get("productId", raw.get("product_id")), "productId"),
            quantity=parse_quantity(raw.get("quantity")),
        ))
    return lines


def checkout_cart(user: UserAccount, payment_method: str, items=None, *, source: str = "api") -> PurchaseResult:
    """
    Buy from the cart.

    items=None buys every line at its cart quantity. Otherwise items is a list
    of {productId, quantity}; each product must already be in the cart and
    the requested quantity is used.
    """
    try:
        cart_lines: list[CartItem] = get_cart_lines(user)
        if items is None:
            if not cart_lines:
                raise ValidationError("Cart is empty")
            lines = [PurchaseLine(product_id=line.product_id, quantity=line.quantity) for line in cart_lines]
        else:
            lines = _requested_lines(items)
            in_cart = {line.product_id for line in cart_lines}
            missing = [line.product_id for line in lines if line.product_id not in in_cart]
            if missing:
                raise ValidationError("Items must be in your cart", details={"product_ids": missing})
    except ShopError as exc:
        return PurchaseResult.rejected(exc)

    return purchase(PurchaseRequest(
        user=user,
        lines=lines,
        payment_method=payment_method,
        source=source,
        from_cart=True,
    ))
