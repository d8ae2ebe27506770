# backend/shopcord/routes/system.py
"""
System health endpoint.

Reports database reachability and whether Discord notifications are wired to
the REST API or only logged.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Order, Product, UserAccount
from ..services.notification_service import DiscordRestNotifier, get_notifier
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        details = {
            "products": db.session.query(Product).count(),
            "users": db.session.query(UserAccount).count(),
            "orders": db.session.query(Order).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2), "details": details}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Database error"}


def check_notifier_health() -> dict:
    notifier = get_notifier()
    if isinstance(notifier, DiscordRestNotifier):
        return {
            "status": "healthy",
            "mode": "discord",
            "admin_channel_configured": bool(current_app.config.get("ADMIN_CHANNEL_ID")),
        }
    return {"status": "degraded", "mode": "log", "warning": "DISCORD_BOT_TOKEN not set"}


@system_bp.get("/api/health")
def health():
    """
    Health check.

    Returns 503 when the database is unreachable; a log-only notifier is
    reported as degraded but still 200.
    """
    checks = {
        "database": check_database_health(),
        "notifications": check_notifier_health(),
    }
    if checks["database"]["status"] == "unhealthy":
        overall, code = "unhealthy", 503
    elif any(c["status"] != "healthy" for c in checks.values()):
        overall, code = "degraded", 200
    else:
        overall, code = "healthy", 200

    return {"status": overall, "timestamp": to_utc_z(utcnow()), "checks": checks}, code
