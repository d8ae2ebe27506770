from __future__ import annotations

from ..extensions import db
from shopcord.time_utils import to_utc_z


class AuditEvent(db.Model):
    """
    Append-only audit log of state transitions.

    Written in the same DB transaction as the change it records. Rows are
    never updated or deleted.

    EVENT TYPES:
    - order.created
    - order.status_changed
    - order.payment_status_changed
    - product.stock_changed
    - product.status_changed
    - account.points_changed
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("user_accounts.id"), nullable=True, index=True)

    from_value = db.Column(db.String(64), nullable=True)
    to_value = db.Column(db.String(64), nullable=True)
    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.JSON, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_user_id": self.actor_user_id,
            "from_value": self.from_value,
            "to_value": self.to_value,
            "note": self.note,
            "payload": self.payload,
            "occurred_at": to_utc_z(self.occurred_at),
        }
