# Overview: Flask API routes for products; parses input and returns JSON responses.

"""
Product routes.

Reads are public; hidden products and products of hidden categories are only
listed for staff. Writes require admin. `status` accepts available / hidden /
pre_order; out_of_stock is derived from stock on every write.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..models import Product
from ..errors import ShopError
from ..validation import (
    PRODUCT_POLICY,
    validate_payload,
    enforce_rules_product,
    coerce_int,
)
from ..services import catalog_service
from ..services.account_service import is_staff
from ..decorators import require_auth, require_admin
from .categories import optional_viewer

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    Query params:
    - category: int (optional)
    - status: str (optional)
    - search: str (optional) - matches name or description
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    return catalog_service.list_products(
        category_id=request.args.get("category", type=int),
        status=request.args.get("status"),
        search=request.args.get("search"),
        include_hidden=is_staff(optional_viewer()),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code
    if product.status == "hidden" and not is_staff(optional_viewer()):
        return {"error": "Product not found", "code": "not_found"}, 404
    return product.to_dict()


@products_bp.post("")
@require_auth
@require_admin
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = catalog_service.create_product(patch, actor_user_id=g.current_user.id)
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500
    return product.to_dict(), 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_admin
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        product = catalog_service.update_product(product_id, patch, actor_user_id=g.current_user.id)
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500
    return product.to_dict()


@products_bp.put("/<int:product_id>/stock")
@require_auth
@require_admin
def set_stock_route(product_id: int):
    """Body: {"stock": int}. Re-derives status (out_of_stock at 0)."""
    payload = request.get_json(silent=True) or {}
    try:
        patch = {"stock": coerce_int(payload.get("stock"), "stock")}
        enforce_rules_product(patch)
        product = catalog_service.set_stock(product_id, patch["stock"], actor_user_id=g.current_user.id)
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set stock")
        return jsonify({"error": "Internal server error"}), 500
    return product.to_dict()


@products_bp.delete("/<int:product_id>")
@require_auth
@require_admin
def delete_product_route(product_id: int):
    try:
        catalog_service.delete_product(product_id)
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code
    return {"ok": True}
