"""
Order status machine tests.

Verifies:
- Allowed transitions and terminal states
- Re-submitting the current status is a no-op
- completed_at is set exactly once
- Every real transition DMs the purchaser and is audited
- Status changes leave stock and points alone
"""

import pytest

from shopcord.errors import InvalidTransitionError, ValidationError
from shopcord.models import AuditEvent, Order, Product, UserAccount
from shopcord.services import order_service
from shopcord.services.purchase_service import buy_product


@pytest.fixture
def order(db_session, customer, product, notifier):
    result = buy_product(customer, product.id, 2, "bank_transfer", source="api")
    assert result.ok
    notifier.direct_messages.clear()
    notifier.channel_posts.clear()
    return result.order


class TestTransitions:

    @pytest.mark.parametrize("path", [
        ["processing", "completed"],
        ["processing", "completed", "refunded"],
        ["cancelled"],
        ["processing", "cancelled"],
    ])
    def test_allowed_paths(self, db_session, order, staff, path):
        for status in path:
            order_service.update_status(order.id, status, actor=staff)
        assert db_session.get(Order, order.id).status == path[-1]

    @pytest.mark.parametrize("path,bad", [
        ([], "completed"),
        ([], "refunded"),
        (["cancelled"], "pending"),
        (["cancelled"], "processing"),
        (["processing", "completed", "refunded"], "completed"),
        (["processing"], "pending"),
    ])
    def test_rejected_transitions(self, db_session, order, staff, path, bad):
        for status in path:
            order_service.update_status(order.id, status, actor=staff)

        with pytest.raises(InvalidTransitionError):
            order_service.update_status(order.id, bad, actor=staff)
        assert db_session.get(Order, order.id).status == (path[-1] if path else "pending")

    def test_unknown_status(self, db_session, order, staff):
        with pytest.raises(ValidationError):
            order_service.update_status(order.id, "shipped", actor=staff)


class TestIdempotence:

    def test_completed_twice_is_noop(self, db_session, order, staff, notifier):
        order_service.update_status(order.id, "processing", actor=staff)
        order_service.update_status(order.id, "completed", actor=staff)
        completed_at = db_session.get(Order, order.id).completed_at
        assert completed_at is not None
        dm_count = len(notifier.direct_messages)

        order_service.update_status(order.id, "completed", actor=staff)

        refreshed = db_session.get(Order, order.id)
        assert refreshed.status == "completed"
        assert refreshed.completed_at == completed_at
        assert len(notifier.direct_messages) == dm_count
        events = db_session.query(AuditEvent).filter_by(
            event_type="order.status_changed", entity_id=order.id, to_value="completed"
        ).count()
        assert events == 1

    def test_completed_at_unset_until_completed(self, db_session, order, staff):
        order_service.update_status(order.id, "processing", actor=staff)
        assert db_session.get(Order, order.id).completed_at is None


class TestSideEffects:

    def test_cancel_notifies_purchaser_and_is_terminal(self, db_session, order, staff, notifier):
        order_service.update_status(order.id, "cancelled", actor=staff)

        assert len(notifier.direct_messages) == 1
        dm = notifier.direct_messages[0]
        assert dm["discord_id"] == "1001"
        assert "Cancelled" in dm["embeds"][0]["description"]

        for status in ("pending", "processing", "completed", "refunded"):
            with pytest.raises(InvalidTransitionError):
                order_service.update_status(order.id, status, actor=staff)

    def test_cancel_does_not_restock(self, db_session, order, product, staff):
        order_service.update_status(order.id, "cancelled", actor=staff)
        assert db_session.get(Product, product.id).stock == 3

    def test_transition_is_audited_with_actor(self, db_session, order, staff):
        order_service.update_status(order.id, "processing", actor=staff)

        event = db_session.query(AuditEvent).filter_by(event_type="order.status_changed").one()
        assert (event.from_value, event.to_value, event.actor_user_id) == ("pending", "processing", staff.id)

    def test_dm_failure_does_not_block_transition(self, db_session, order, staff, notifier):
        notifier.fail = True
        order_service.update_status(order.id, "processing", actor=staff)
        assert db_session.get(Order, order.id).status == "processing"

    def test_points_refund_is_not_automatic(self, db_session, customer, product, staff):
        result = buy_product(customer, product.id, 1, "points", source="api")
        order_service.update_status(result.order.id, "cancelled", actor=staff)
        assert db_session.get(UserAccount, customer.id).points == 2000


class TestStatusRoutes:

    def test_customer_cannot_change_status(self, client, order, customer_headers):
        resp = client.put(f"/api/orders/{order.id}/status", json={"status": "processing"}, headers=customer_headers)
        assert resp.status_code == 403

    def test_staff_changes_status(self, client, order, staff_headers):
        resp = client.put(f"/api/orders/{order.id}/status", json={"status": "processing"}, headers=staff_headers)
        assert resp.status_code == 200
        assert resp.json["order"]["status"] == "processing"

    def test_invalid_transition_is_409(self, client, order, staff_headers):
        resp = client.put(f"/api/orders/{order.id}/status", json={"status": "refunded"}, headers=staff_headers)
        assert resp.status_code == 409
        assert resp.json["code"] == "invalid_transition"

    def test_unknown_order_is_404(self, client, db_session, staff_headers):
        resp = client.put("/api/orders/999/status", json={"status": "processing"}, headers=staff_headers)
        assert resp.status_code == 404
