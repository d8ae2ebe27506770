# Overview: Flask API routes for categories; parses input and returns JSON responses.

"""
Category routes.

Reads are public (visible categories only; staff may pass all=1).
Writes require admin.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..models import Category
from ..errors import ShopError
from ..validation import CATEGORY_POLICY, validate_payload, enforce_rules_category
from ..services import catalog_service
from ..services.account_service import get_user_by_token, is_staff
from ..decorators import require_auth, require_admin

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


def optional_viewer():
    """Resolve the Bearer token if one is sent; public routes work without it."""
    auth_header = request.headers.get("Authorization") or ""
    if not auth_header.startswith("Bearer "):
        return None
    user = get_user_by_token(auth_header.split(" ", 1)[1].strip())
    return user if user is not None and user.is_active else None


@categories_bp.get("")
def list_categories():
    include_hidden = request.args.get("all") in ("1", "true") and is_staff(optional_viewer())
    categories = catalog_service.list_categories(include_hidden=include_hidden)
    return {"categories": [c.to_dict() for c in categories]}


@categories_bp.get("/<int:category_id>")
def get_category(category_id: int):
    try:
        category = catalog_service.get_category(category_id)
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code
    if not category.is_visible and not is_staff(optional_viewer()):
        return {"error": "Category not found", "code": "not_found"}, 404
    return category.to_dict()


@categories_bp.get("/<int:category_id>/products")
def list_category_products(category_id: int):
    viewer = optional_viewer()
    try:
        category = catalog_service.get_category(category_id)
        if not category.is_visible and not is_staff(viewer):
            return {"error": "Category not found", "code": "not_found"}, 404
        result = catalog_service.list_products(category_id=category.id, include_hidden=is_staff(viewer))
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code
    return {"category": category.to_dict(), **result}


@categories_bp.post("")
@require_auth
@require_admin
def create_category():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        enforce_rules_category(patch)
        category = catalog_service.create_category(patch)
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500
    return category.to_dict(), 201


@categories_bp.put("/<int:category_id>")
@require_auth
@require_admin
def update_category(category_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
        enforce_rules_category(patch)
        category = catalog_service.update_category(category_id, patch)
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update category")
        return jsonify({"error": "Internal server error"}), 500
    return category.to_dict()


@categories_bp.delete("/<int:category_id>")
@require_auth
@require_admin
def delete_category(category_id: int):
    try:
        catalog_service.delete_category(category_id)
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code
    current_app.logger.info("Category %s deleted by user %s", category_id, g.current_user.id)
    return {"ok": True}


@categories_bp.put("/order")
@require_auth
@require_admin
def reorder_categories():
    """Body: {"categories": [{"id": 1, "display_order": 0}, ...]}"""
    payload = request.get_json(silent=True) or {}
    try:
        categories = catalog_service.reorder_categories(payload.get("categories"))
    except ShopError as e:
        return jsonify(e.to_dict()), e.status_code
    return {"categories": [c.to_dict() for c in categories]}
