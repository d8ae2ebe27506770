# Overview: Read-only access to the audit trail for staff.

from flask import Blueprint, request

from ..services.audit_service import list_audit_events
from ..decorators import require_auth, require_staff

audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")


@audit_bp.get("")
@require_auth
@require_staff
def list_events():
    """Query params: entity_type, entity_id, event_type, limit (default 100, max 500)."""
    events = list_audit_events(
        entity_type=request.args.get("entity_type"),
        entity_id=request.args.get("entity_id", type=int),
        event_type=request.args.get("event_type"),
        limit=request.args.get("limit", 100, type=int),
    )
    return {"events": [e.to_dict() for e in events]}
