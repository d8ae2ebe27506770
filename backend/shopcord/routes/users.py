# Overview: Flask API routes for accounts, carts, roles and point balances.

"""
User routes.

/me and /cart* act on the caller (g.current_user). Listing and viewing other
accounts needs staff; role and points changes need admin.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ShopError, ValidationError
from ..validation import coerce_int
from ..services import account_service, cart_service, order_service
from ..services.purchase_service import checkout_cart
from ..decorators import require_auth, require_staff, require_admin

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _parse_bool(value, field: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValidationError(f"{field} must be a boolean")


@users_bp.get("/me")
@require_auth
def me():
    user = g.current_user
    return {
        "user": user.to_dict(),
        "roles": {
            "admin": account_service.is_admin(user),
            "staff": account_service.is_staff(user),
        },
    }


# ---------- Cart ----------

@users_bp.get("/cart")
@require_auth
def get_cart():
    return cart_service.cart_summary(g.current_user)


@users_bp.post("/cart")
@require_auth
def add_to_cart():
    """Body: {"productId": int, "quantity": int = 1}"""
    payload = request.get_json(silent=True) or {}
    try:
        product_id = coerce_int(payload.get("productId"), "productId")
        cart_service.add_to_cart(g.current_user, product_id, payload.get("quantity", 1))
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code
    return cart_service.cart_summary(g.current_user)


@users_bp.put("/cart/<int:product_id>")
@require_auth
def update_cart_line(product_id: int):
    """Body: {"quantity": int >= 1}"""
    payload = request.get_json(silent=True) or {}
    try:
        cart_service.update_quantity(g.current_user, product_id, payload.get("quantity"))
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code
    return cart_service.cart_summary(g.current_user)


@users_bp.delete("/cart/<int:product_id>")
@require_auth
def remove_cart_line(product_id: int):
    cart_service.remove_from_cart(g.current_user, product_id)
    return cart_service.cart_summary(g.current_user)


@users_bp.delete("/cart")
@require_auth
def clear_cart():
    cart_service.clear_cart(g.current_user)
    return cart_service.cart_summary(g.current_user)


@users_bp.post("/cart/checkout")
@require_auth
def checkout():
    """Body: {"paymentMethod": str}. Buys every cart line at its cart quantity."""
    payload = request.get_json(silent=True) or {}
    result = checkout_cart(g.current_user, payload.get("paymentMethod"), source="api")
    return jsonify(result.to_dict()), result.status_code


# ---------- Staff / admin ----------

@users_bp.get("")
@require_auth
@require_staff
def list_users():
    return account_service.list_users(
        search=request.args.get("search"),
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("limit", 20, type=int),
    )


@users_bp.get("/<int:user_id>")
@require_auth
@require_staff
def get_user(user_id: int):
    try:
        user = account_service.get_user(user_id)
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code
    recent = order_service.list_orders(user_id=user.id, limit=5)
    return {"user": user.to_dict(), "recent_orders": recent["orders"]}


@users_bp.put("/<int:user_id>/role")
@require_auth
@require_admin
def update_role(user_id: int):
    """Body: {"isAdmin": bool?, "isStaff": bool?}. Admins cannot change their own roles."""
    payload = request.get_json(silent=True) or {}
    if "isAdmin" not in payload and "isStaff" not in payload:
        return {"error": "Specify isAdmin and/or isStaff", "code": "validation_error"}, 400
    if user_id == g.current_user.id:
        return {"error": "You cannot change your own roles", "code": "permission_denied"}, 403

    try:
        user = account_service.set_roles(
            user_id,
            is_admin=_parse_bool(payload["isAdmin"], "isAdmin") if "isAdmin" in payload else None,
            is_staff=_parse_bool(payload["isStaff"], "isStaff") if "isStaff" in payload else None,
        )
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code
    return {"success": True, "user": user.to_dict()}


@users_bp.put("/<int:user_id>/points")
@require_auth
@require_admin
def update_points(user_id: int):
    """Body: {"points": int >= 0, "action": "add"|"subtract"|"set", "reason": str?}"""
    payload = request.get_json(silent=True) or {}
    try:
        result = account_service.adjust_points(
            user_id,
            action=payload.get("action", "add"),
            points=coerce_int(payload.get("points"), "points"),
            reason=payload.get("reason"),
            actor_user_id=g.current_user.id,
        )
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust points")
        return jsonify({"error": "Internal server error"}), 500

    return {
        "success": True,
        "user": result["user"].to_dict(),
        "previousPoints": result["previous"],
        "currentPoints": result["current"],
        "action": result["action"],
    }


@users_bp.get("/<int:user_id>/orders")
@require_auth
@require_staff
def user_orders(user_id: int):
    try:
        account_service.get_user(user_id)
        return order_service.list_orders(
            user_id=user_id,
            status=request.args.get("status"),
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", 10, type=int),
        )
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code
