# Overview: Flask API routes for orders; parses input and returns JSON responses.

"""
Order routes.

POST /api/orders runs the shared purchase flow; the requested items must
already be in the caller's cart and are removed from it on success.
Status, payment and notes changes are staff-only.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ShopError, ValidationError
from ..services import order_service
from ..services.purchase_service import checkout_cart
from ..decorators import require_auth, require_staff

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_auth
@require_staff
def list_orders():
    """
    Query params:
    - status, paymentStatus, paymentMethod, userId (optional filters)
    - sort: createdAt | updatedAt | totalAmount | status | id (default createdAt)
    - order: asc | desc (default desc)
    - page, limit (default 1, 20)
    """
    try:
        return order_service.list_orders(
            status=request.args.get("status"),
            payment_status=request.args.get("paymentStatus"),
            payment_method=request.args.get("paymentMethod"),
            user_id=request.args.get("userId", type=int),
            sort=request.args.get("sort", "createdAt"),
            order=request.args.get("order", "desc"),
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", 20, type=int),
        )
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.get("/my")
@require_auth
def my_orders():
    try:
        return order_service.list_my_orders(
            g.current_user,
            status=request.args.get("status"),
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", 10, type=int),
        )
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.get("/stats")
@require_auth
@require_staff
def stats():
    return order_service.order_stats(request.args.get("period", "month"))


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order(order_id: int):
    try:
        order = order_service.get_order(order_id, viewer=g.current_user)
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code
    return order.to_dict()


@orders_bp.post("")
@require_auth
def create_order():
    """
    Body: {"items": [{"productId": int, "quantity": int}], "paymentMethod": str}

    201 {"order", "instructions"} on success, 4xx {"error", "code"} when a
    precondition fails (no stock or points are touched in that case).
    """
    payload = request.get_json(silent=True) or {}
    result = checkout_cart(
        g.current_user,
        payload.get("paymentMethod"),
        items=payload.get("items") or [],
        source="api",
    )
    return jsonify(result.to_dict()), result.status_code


@orders_bp.put("/<int:order_id>/status")
@require_auth
@require_staff
def update_status(order_id: int):
    """Body: {"status": str}. Same status again is a no-op; invalid transitions 409."""
    payload = request.get_json(silent=True) or {}
    try:
        order = order_service.update_status(order_id, payload.get("status"), actor=g.current_user)
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500
    return {"success": True, "order": order.to_dict()}


@orders_bp.put("/<int:order_id>/payment")
@require_auth
@require_staff
def update_payment(order_id: int):
    """Body: {"paymentStatus": str, "paymentDetails": {...}?}"""
    payload = request.get_json(silent=True) or {}
    try:
        order = order_service.update_payment_status(
            order_id,
            payload.get("paymentStatus"),
            payment_details=payload.get("paymentDetails"),
            actor=g.current_user,
        )
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update payment status")
        return jsonify({"error": "Internal server error"}), 500
    return {"success": True, "order": order.to_dict()}


@orders_bp.put("/<int:order_id>/notes")
@require_auth
@require_staff
def update_notes(order_id: int):
    """Body: {"notes": str | null}. null clears the notes; a missing key is rejected."""
    payload = request.get_json(silent=True) or {}
    try:
        if "notes" not in payload:
            raise ValidationError("notes is required")
        order = order_service.update_notes(order_id, payload.get("notes"))
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code
    return {"success": True, "order": order.to_dict()}
