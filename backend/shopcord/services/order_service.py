# Overview: Service-layer operations for orders after creation: status machine, payment status, notes, queries.

"""
Order Service

STATUS MACHINE (authoritative):
    pending    -> processing | cancelled
    processing -> completed  | cancelled
    completed  -> refunded
    cancelled, refunded: terminal

- Re-submitting the current status is a no-op (no audit, no DM, no timestamp).
- completed_at is set once, on the first entry into completed.
- Status changes do not restock products or refund points; staff handle
  those through stock and points endpoints.

Writes go through run_with_retry; Order.version_id detects concurrent edits.
Notifications are sent after commit and never fail the request.
"""

from __future__ import annotations

import math

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Order, UserAccount, ORDER_STATUSES, PAYMENT_METHODS, PAYMENT_STATUSES
from ..errors import InvalidTransitionError, NotFoundError, PermissionDeniedError, ValidationError
from ..validation import parse_choice
from ..time_utils import STATS_PERIODS, period_start, to_utc_z, utcnow
from .audit_service import append_audit_event
from .account_service import credit_points, is_staff
from .concurrency import run_with_retry
from . import notification_service


TRANSITIONS = {
    "pending": {"processing", "cancelled"},
    "processing": {"completed", "cancelled"},
    "completed": {"refunded"},
    "cancelled": set(),
    "refunded": set(),
}

RESERVED_PAYMENT_KEYS = ("method", "paidAt", "updatedAt")

SORTABLE_FIELDS = {
    "createdAt": Order.created_at,
    "created_at": Order.created_at,
    "updatedAt": Order.updated_at,
    "totalAmount": Order.total_amount,
    "total_amount": Order.total_amount,
    "status": Order.status,
    "id": Order.id,
}


def can_transition(old_status: str, new_status: str) -> bool:
    return new_status in TRANSITIONS.get(old_status, set())


def get_order(order_id: int, *, viewer: UserAccount | None = None) -> Order:
    """Fetch an order; when a viewer is given, only the owner or staff may see it."""
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    if viewer is not None and order.user_id != viewer.id and not is_staff(viewer):
        raise PermissionDeniedError("You can only view your own orders")
    return order


def update_status(order_id: int, new_status: str, *, actor: UserAccount | None = None) -> Order:
    new_status = parse_choice(new_status, "status", ORDER_STATUSES)
    actor_id = actor.id if actor else None
    changed = {}

    def _apply():
        changed.clear()
        order = get_order(order_id)
        old_status = order.status
        if new_status == old_status:
            return order
        if not can_transition(old_status, new_status):
            raise InvalidTransitionError(
                f"Cannot change order status from {old_status} to {new_status}",
                details={"from": old_status, "to": new_status},
            )

        order.status = new_status
        if new_status == "completed" and order.completed_at is None:
            order.completed_at = utcnow()
        append_audit_event(
            event_type="order.status_changed",
            entity_type="order",
            entity_id=order.id,
            actor_user_id=actor_id,
            from_value=old_status,
            to_value=new_status,
        )
        db.session.commit()
        changed["old"] = old_status
        return order

    try:
        order = run_with_retry(_apply)
    except Exception:
        db.session.rollback()
        raise

    if changed:
        current_app.logger.info(
            "Order status changed: %s %s -> %s (actor=%s)", order.reference, changed["old"], new_status, actor_id
        )
        notification_service.notify_status_changed(order, changed["old"], new_status)
    return order


def update_payment_status(
    order_id: int,
    payment_status: str,
    *,
    payment_details: dict | None = None,
    actor: UserAccount | None = None,
) -> Order:
    """
    Staff-confirmed payment status change.

    The first move of a non-points order into paid credits the purchaser
    floor(total * POINTS_REWARD_RATE) points.
    """
    payment_status = parse_choice(payment_status, "paymentStatus", PAYMENT_STATUSES)
    if payment_details is not None and not isinstance(payment_details, dict):
        raise ValidationError("paymentDetails must be an object")
    # method, paidAt and updatedAt are server-owned
    client_details = {
        key: value for key, value in (payment_details or {}).items() if key not in RESERVED_PAYMENT_KEYS
    }
    actor_id = actor.id if actor else None
    changed = {}

    def _apply():
        changed.clear()
        order = get_order(order_id)
        old_status = order.payment_status
        if payment_status == old_status and not client_details:
            return order

        details = dict(order.payment_details or {})
        first_paid = payment_status == "paid" and "paidAt" not in details
        details.update(client_details)
        details["updatedAt"] = to_utc_z(utcnow())
        if payment_status == "paid" and old_status != "paid":
            details.setdefault("paidAt", details["updatedAt"])
        # New dict so the JSON column is flagged dirty
        order.payment_details = details

        if payment_status != old_status:
            order.payment_status = payment_status
            append_audit_event(
                event_type="order.payment_status_changed",
                entity_type="order",
                entity_id=order.id,
                actor_user_id=actor_id,
                from_value=old_status,
                to_value=payment_status,
            )
            changed["old"] = old_status

        if first_paid and order.payment_method != "points":
            reward = math.floor(order.total_amount * current_app.config["POINTS_REWARD_RATE"])
            if reward > 0:
                credit_points(order.user, reward, actor_user_id=actor_id, reason=f"reward for order {order.reference}", order_id=order.id)
                changed["reward"] = reward

        db.session.commit()
        return order

    try:
        order = run_with_retry(_apply)
    except Exception:
        db.session.rollback()
        raise

    if "old" in changed:
        current_app.logger.info(
            "Payment status changed: %s %s -> %s (actor=%s)", order.reference, changed["old"], payment_status, actor_id
        )
        notification_service.notify_payment_changed(order, changed["old"], payment_status)
    if "reward" in changed:
        current_app.logger.info("Reward points credited: %s +%s", order.reference, changed["reward"])
    return order


def update_notes(order_id: int, notes) -> Order:
    if notes is None:
        notes = ""
    if not isinstance(notes, str):
        raise ValidationError("notes must be a string")
    if len(notes) > 2000:
        raise ValidationError("notes cannot exceed 2000 characters")

    def _apply():
        order = get_order(order_id)
        order.notes = notes
        db.session.commit()
        return order

    return run_with_retry(_apply)


def _paginate(q, page: int, limit: int) -> tuple[list[Order], dict]:
    page = max(1, page)
    limit = min(max(1, limit), 100)
    total = q.count()
    orders = q.offset((page - 1) * limit).limit(limit).all()
    return orders, {
        "total": total,
        "page": page,
        "per_page": limit,
        "pages": (total + limit - 1) // limit,
    }


def list_orders(
    *,
    status: str | None = None,
    payment_status: str | None = None,
    payment_method: str | None = None,
    user_id: int | None = None,
    sort: str = "createdAt",
    order: str = "desc",
    page: int = 1,
    limit: int = 20,
) -> dict:
    q = db.session.query(Order)
    if status:
        q = q.filter(Order.status == parse_choice(status, "status", ORDER_STATUSES))
    if payment_status:
        q = q.filter(Order.payment_status == parse_choice(payment_status, "paymentStatus", PAYMENT_STATUSES))
    if payment_method:
        q = q.filter(Order.payment_method == parse_choice(payment_method, "paymentMethod", PAYMENT_METHODS))
    if user_id is not None:
        q = q.filter(Order.user_id == user_id)

    column = SORTABLE_FIELDS.get(sort)
    if column is None:
        raise ValidationError(f"sort must be one of: {', '.join(SORTABLE_FIELDS)}")
    direction = column.asc() if order == "asc" else column.desc()
    q = q.order_by(direction, Order.id.desc())

    orders, pagination = _paginate(q, page, limit)
    return {"orders": [o.to_dict() for o in orders], "pagination": pagination}


def list_my_orders(user: UserAccount, *, status: str | None = None, page: int = 1, limit: int = 10) -> dict:
    return list_orders(user_id=user.id, status=status, page=page, limit=limit)


def order_stats(period: str = "month") -> dict:
    """Counts and paid revenue since the start of the period (day/week/month/year)."""
    if period not in STATS_PERIODS:
        period = "month"
    since = period_start(period)
    in_period = Order.created_at >= since

    def _count(*criteria) -> int:
        return db.session.query(func.count(Order.id)).filter(in_period, *criteria).scalar() or 0

    sales = (
        db.session.query(func.coalesce(func.sum(Order.total_amount), 0))
        .filter(in_period, Order.payment_status == "paid")
        .scalar()
    )
    by_method = (
        db.session.query(Order.payment_method, func.count(Order.id), func.sum(Order.total_amount))
        .filter(in_period, Order.payment_status == "paid")
        .group_by(Order.payment_method)
        .order_by(Order.payment_method.asc())
        .all()
    )

    return {
        "period": period,
        "since": to_utc_z(since),
        "total": {
            "orders": _count(),
            "completed": _count(Order.status == "completed"),
            "pending": _count(Order.status == "pending"),
            "paid": _count(Order.payment_status == "paid"),
            "pendingPayments": _count(Order.payment_status == "pending"),
            "sales": int(sales or 0),
        },
        "paymentMethods": [
            {"method": method, "count": count, "total": int(total or 0)}
            for method, count, total in by_method
        ],
    }
