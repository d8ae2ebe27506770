# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import account_service


def require_auth(f):
    """
    Require a valid Bearer API token.

    Sets g.current_user to the resolved UserAccount.

    Returns 401 if:
    - No Authorization header
    - Unknown token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        user = account_service.get_user_by_token(token)

        if user is None:
            return jsonify({"error": "Invalid token"}), 401
        if not user.is_active:
            return jsonify({"error": "Account is disabled"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_staff(f):
    """Staff or admin only. Must be stacked under @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not account_service.is_staff(g.current_user):
            return jsonify({"error": "Staff access required"}), 403
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Admin flag or ADMIN_DISCORD_IDS membership. Must be stacked under @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not account_service.is_admin(g.current_user):
            return jsonify({"error": "Admin access required"}), 403
        return f(*args, **kwargs)

    return decorated_function
