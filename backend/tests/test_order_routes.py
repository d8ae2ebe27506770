"""
Order and account route tests.

Verifies:
- POST /api/orders runs the purchase flow for items already in the cart
- Order visibility: owner or staff only
- Staff listing filters, stats and the audit trail
- Account endpoints: /me, role changes, point adjustments
"""

import pytest

from shopcord.models import Order, Product, UserAccount
from shopcord.services import cart_service
from shopcord.services.purchase_service import buy_product


def _place(client, headers, product_id, quantity, method="bank_transfer"):
    client.post("/api/users/cart", json={"productId": product_id, "quantity": quantity}, headers=headers)
    return client.post(
        "/api/orders",
        json={"items": [{"productId": product_id, "quantity": quantity}], "paymentMethod": method},
        headers=headers,
    )


class TestCreateOrder:

    def test_points_scenario(self, client, db_session, customer, customer_headers, product):
        resp = _place(client, customer_headers, product.id, 2, method="points")

        assert resp.status_code == 201
        assert resp.json["order"]["total_amount"] == 2000
        assert resp.json["order"]["payment_status"] == "paid"
        assert resp.json["order"]["source"] == "api"
        assert db_session.get(Product, product.id).stock == 3
        assert db_session.get(UserAccount, customer.id).points == 1000

    def test_insufficient_stock(self, client, db_session, customer_headers, product):
        resp = _place(client, customer_headers, product.id, 10)

        assert resp.status_code == 400
        assert resp.json["code"] == "insufficient_stock"
        assert resp.json["details"]["available"] == 5
        assert db_session.get(Product, product.id).stock == 5

    def test_item_not_in_cart(self, client, customer_headers, product):
        resp = client.post(
            "/api/orders",
            json={"items": [{"productId": product.id, "quantity": 1}], "paymentMethod": "paypal"},
            headers=customer_headers,
        )
        assert resp.status_code == 400

    def test_missing_items(self, client, customer_headers, product):
        resp = client.post("/api/orders", json={"paymentMethod": "paypal"}, headers=customer_headers)
        assert resp.status_code == 400

    def test_bank_transfer_instructions(self, client, customer_headers, product):
        resp = _place(client, customer_headers, product.id, 1)

        assert resp.status_code == 201
        assert resp.json["order"]["payment_status"] == "pending"
        assert "Example Bank 1234567" in resp.json["instructions"]
        assert resp.json["order"]["reference"] in resp.json["instructions"]


class TestOrderReads:

    def test_owner_and_staff_can_view(self, client, customer, customer_headers, staff_headers, product):
        order = buy_product(customer, product.id, 1, "paypal", source="api").order

        assert client.get(f"/api/orders/{order.id}", headers=customer_headers).status_code == 200
        assert client.get(f"/api/orders/{order.id}", headers=staff_headers).status_code == 200

    def test_other_customer_forbidden(self, client, customer, other_headers, product):
        order = buy_product(customer, product.id, 1, "paypal", source="api").order
        assert client.get(f"/api/orders/{order.id}", headers=other_headers).status_code == 403

    def test_my_orders(self, client, customer, other_customer, customer_headers, product):
        buy_product(customer, product.id, 1, "paypal", source="api")
        buy_product(other_customer, product.id, 1, "paypal", source="api")

        resp = client.get("/api/orders/my", headers=customer_headers)

        assert resp.status_code == 200
        assert [o["username"] for o in resp.json["orders"]] == ["buyer"]

    def test_staff_list_filters(self, client, customer, staff_headers, product, cheap_product):
        buy_product(customer, product.id, 1, "paypal", source="api")
        buy_product(customer, cheap_product.id, 1, "points", source="api")

        resp = client.get("/api/orders?paymentStatus=paid", headers=staff_headers)
        assert [o["payment_method"] for o in resp.json["orders"]] == ["points"]

        resp = client.get("/api/orders?sort=totalAmount&order=asc", headers=staff_headers)
        assert [o["total_amount"] for o in resp.json["orders"]] == [100, 1000]
        assert resp.json["pagination"]["total"] == 2

    def test_bad_filter(self, client, db_session, staff_headers):
        assert client.get("/api/orders?status=lost", headers=staff_headers).status_code == 400
        assert client.get("/api/orders?sort=password", headers=staff_headers).status_code == 400

    def test_customer_cannot_list_all(self, client, customer_headers):
        assert client.get("/api/orders", headers=customer_headers).status_code == 403

    def test_stats(self, client, customer, staff_headers, product, cheap_product):
        buy_product(customer, product.id, 2, "bank_transfer", source="api")
        buy_product(customer, cheap_product.id, 3, "points", source="api")

        resp = client.get("/api/orders/stats?period=day", headers=staff_headers)

        assert resp.status_code == 200
        assert resp.json["period"] == "day"
        assert resp.json["total"]["orders"] == 2
        assert resp.json["total"]["paid"] == 1
        assert resp.json["total"]["pendingPayments"] == 1
        assert resp.json["total"]["sales"] == 300
        assert resp.json["paymentMethods"] == [{"method": "points", "count": 1, "total": 300}]

    def test_stats_unknown_period_falls_back_to_month(self, client, db_session, staff_headers):
        resp = client.get("/api/orders/stats?period=decade", headers=staff_headers)
        assert resp.json["period"] == "month"

    def test_notes(self, client, customer, staff_headers, product):
        order = buy_product(customer, product.id, 1, "paypal", source="api").order

        resp = client.put(f"/api/orders/{order.id}/notes", json={"notes": "gift wrap"}, headers=staff_headers)

        assert resp.status_code == 200
        assert resp.json["order"]["notes"] == "gift wrap"

    def test_notes_key_required(self, client, customer, staff_headers, product):
        order = buy_product(customer, product.id, 1, "paypal", source="api").order
        client.put(f"/api/orders/{order.id}/notes", json={"notes": "gift wrap"}, headers=staff_headers)

        resp = client.put(f"/api/orders/{order.id}/notes", json={}, headers=staff_headers)

        assert resp.status_code == 400
        assert resp.json["error"] == "notes is required"
        assert client.get(f"/api/orders/{order.id}", headers=staff_headers).json["notes"] == "gift wrap"

    def test_audit_trail(self, client, customer, staff_headers, product):
        order = buy_product(customer, product.id, 1, "paypal", source="api").order

        resp = client.get(f"/api/audit?entity_type=order&entity_id={order.id}", headers=staff_headers)

        assert [e["event_type"] for e in resp.json["events"]] == ["order.created"]


class TestAccounts:

    def test_me(self, client, customer_headers):
        resp = client.get("/api/users/me", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json["user"]["points"] == 3000
        assert resp.json["roles"] == {"admin": False, "staff": False}

    def test_bad_token(self, client, db_session):
        resp = client.get("/api/users/me", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    def test_disabled_account(self, client, db_session, customer, customer_headers):
        customer.is_active = False
        db_session.commit()
        assert client.get("/api/users/me", headers=customer_headers).status_code == 401

    @pytest.mark.parametrize("action,points,expected", [
        ("add", 500, 3500),
        ("subtract", 1000, 2000),
        ("set", 42, 42),
    ])
    def test_adjust_points(self, client, customer, admin_headers, action, points, expected):
        resp = client.put(
            f"/api/users/{customer.id}/points",
            json={"action": action, "points": points, "reason": "support"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["previousPoints"] == 3000
        assert resp.json["currentPoints"] == expected

    def test_subtract_below_zero_rejected(self, client, db_session, customer, admin_headers):
        resp = client.put(
            f"/api/users/{customer.id}/points",
            json={"action": "subtract", "points": 5000},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert resp.json["code"] == "insufficient_points"
        assert db_session.get(UserAccount, customer.id).points == 3000

    def test_staff_cannot_adjust_points(self, client, customer, staff_headers):
        resp = client.put(f"/api/users/{customer.id}/points", json={"action": "add", "points": 1}, headers=staff_headers)
        assert resp.status_code == 403

    def test_role_change(self, client, customer, admin_headers):
        resp = client.put(f"/api/users/{customer.id}/role", json={"isStaff": True}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["user"]["is_staff"] is True

    def test_cannot_change_own_role(self, client, admin, admin_headers):
        resp = client.put(f"/api/users/{admin.id}/role", json={"isAdmin": False}, headers=admin_headers)
        assert resp.status_code == 403

    def test_staff_user_lookup(self, client, customer, staff_headers, product):
        buy_product(customer, product.id, 1, "paypal", source="api")

        resp = client.get(f"/api/users/{customer.id}", headers=staff_headers)
        assert resp.status_code == 200
        assert len(resp.json["recent_orders"]) == 1

        resp = client.get(f"/api/users/{customer.id}/orders", headers=staff_headers)
        assert resp.json["pagination"]["total"] == 1

    def test_user_search(self, client, customer, other_customer, staff_headers):
        resp = client.get("/api/users?search=buy", headers=staff_headers)
        assert [u["username"] for u in resp.json["users"]] == ["buyer"]
