"""
Purchase flow tests.

Verifies:
- Stock and points arithmetic on success
- Rejections leave stock, points and orders untouched
- Precondition order (availability, then stock, then points)
- Derived out_of_stock status
- Order total is a snapshot that survives later price edits
- Notifications go out on success only and never break a purchase
"""

import pytest

from shopcord.models import AuditEvent, Order, Product, UserAccount
from shopcord.services import catalog_service, purchase_service
from shopcord.services.purchase_service import PurchaseLine, PurchaseRequest, buy_product, purchase

from conftest import ADMIN_CHANNEL


def _order_count(db_session):
    return db_session.query(Order).count()


class TestPointsPurchase:

    def test_points_purchase_debits_stock_and_points(self, db_session, customer, product):
        result = buy_product(customer, product.id, 2, "points", source="discord_button")

        assert result.ok, result.reason
        assert result.status_code == 201
        assert result.order.total_amount == 2000
        assert result.order.payment_status == "paid"
        assert result.order.status == "pending"
        assert db_session.get(Product, product.id).stock == 3
        assert db_session.get(UserAccount, customer.id).points == 1000

    def test_points_shortfall_rejected_without_mutation(self, db_session, customer, product):
        customer.points = 1500
        db_session.commit()

        result = buy_product(customer, product.id, 2, "points", source="api")

        assert not result.ok
        assert result.code == "insufficient_points"
        assert "Required: 2000" in result.reason
        assert db_session.get(Product, product.id).stock == 5
        assert db_session.get(UserAccount, customer.id).points == 1500
        assert _order_count(db_session) == 0

    def test_points_order_is_stamped_paid(self, db_session, customer, product):
        result = buy_product(customer, product.id, 1, "points", source="api")
        assert "paidAt" in result.order.payment_details


class TestStockRules:

    def test_quantity_above_stock_rejected(self, db_session, customer, product):
        result = buy_product(customer, product.id, 10, "bank_transfer", source="api")

        assert not result.ok
        assert result.code == "insufficient_stock"
        assert "Insufficient stock" in result.reason
        assert result.status_code == 400
        assert db_session.get(Product, product.id).stock == 5
        assert _order_count(db_session) == 0

    def test_selling_last_unit_flips_to_out_of_stock(self, db_session, customer, product):
        result = buy_product(customer, product.id, 5, "bank_transfer", source="api")

        assert result.ok
        refreshed = db_session.get(Product, product.id)
        assert refreshed.stock == 0
        assert refreshed.status == "out_of_stock"

        flips = db_session.query(AuditEvent).filter_by(
            event_type="product.status_changed", entity_id=product.id
        ).all()
        assert [(e.from_value, e.to_value) for e in flips] == [("available", "out_of_stock")]

    def test_out_of_stock_product_reports_insufficient_stock(self, db_session, customer, product):
        buy_product(customer, product.id, 5, "bank_transfer", source="api")

        result = buy_product(customer, product.id, 1, "bank_transfer", source="api")

        assert not result.ok
        assert result.code == "insufficient_stock"

    def test_sold_out_override_blocks_purchase(self, db_session, customer, product):
        product.sold_out_override = True
        product.status = "out_of_stock"
        db_session.commit()

        result = buy_product(customer, product.id, 1, "stripe", source="api")

        assert not result.ok
        assert result.code == "insufficient_stock"
        assert db_session.get(Product, product.id).stock == 5

    def test_pre_order_status_kept_while_stock_remains(self, db_session, customer, product):
        product.status = "pre_order"
        db_session.commit()

        result = buy_product(customer, product.id, 2, "paypal", source="api")

        assert result.ok
        assert db_session.get(Product, product.id).status == "pre_order"

    def test_pre_order_survives_sell_out_and_restock(self, db_session, customer, product):
        product.status = "pre_order"
        product.stock = 1
        db_session.commit()

        assert buy_product(customer, product.id, 1, "points", source="api").ok
        assert db_session.get(Product, product.id).status == "out_of_stock"

        catalog_service.set_stock(product.id, 10)

        refreshed = db_session.get(Product, product.id)
        assert refreshed.status == "pre_order"
        assert refreshed.listed_status == "pre_order"

    def test_admin_status_change_replaces_listing(self, db_session, customer, product):
        catalog_service.update_product(product.id, {"status": "pre_order", "stock": 0})
        assert db_session.get(Product, product.id).status == "out_of_stock"

        catalog_service.update_product(product.id, {"status": "available", "stock": 3})

        assert db_session.get(Product, product.id).status == "available"


class TestAvailability:

    def test_hidden_product_unavailable(self, db_session, customer, hidden_product):
        result = buy_product(customer, hidden_product.id, 1, "bank_transfer", source="api")

        assert not result.ok
        assert result.code == "product_unavailable"
        assert db_session.get(Product, hidden_product.id).stock == 10

    def test_missing_product_is_404(self, db_session, customer):
        result = buy_product(customer, 9999, 1, "bank_transfer", source="api")

        assert not result.ok
        assert result.status_code == 404
        assert result.code == "product_not_found"

    def test_availability_checked_before_stock(self, db_session, customer, hidden_product):
        result = buy_product(customer, hidden_product.id, 500, "bank_transfer", source="api")
        assert result.code == "product_unavailable"

    def test_stock_checked_before_points(self, db_session, customer, product):
        customer.points = 0
        db_session.commit()

        result = buy_product(customer, product.id, 10, "points", source="api")

        assert result.code == "insufficient_stock"

    def test_disabled_account_rejected(self, db_session, customer, product):
        customer.is_active = False
        db_session.commit()

        result = buy_product(customer, product.id, 1, "bank_transfer", source="api")

        assert not result.ok
        assert result.status_code == 403

    @pytest.mark.parametrize("quantity", [0, -1, 1001])
    def test_quantity_bounds(self, db_session, customer, product, quantity):
        result = buy_product(customer, product.id, quantity, "bank_transfer", source="api")

        assert not result.ok
        assert result.code == "validation_error"

    def test_unknown_payment_method(self, db_session, customer, product):
        result = buy_product(customer, product.id, 1, "cash", source="api")

        assert not result.ok
        assert result.code == "validation_error"
        assert db_session.get(Product, product.id).stock == 5


class TestOrderSnapshot:

    def test_total_survives_price_change(self, db_session, customer, product):
        result = buy_product(customer, product.id, 2, "bank_transfer", source="api")
        order_id = result.order.id

        product.price = 5000
        db_session.commit()

        order = db_session.get(Order, order_id)
        assert order.total_amount == 2000
        assert order.items[0].price == 1000
        assert order.computed_total() == order.total_amount

    def test_multi_line_purchase(self, db_session, customer, product, cheap_product):
        result = purchase(PurchaseRequest(
            user=customer,
            lines=[
                PurchaseLine(product_id=product.id, quantity=1),
                PurchaseLine(product_id=cheap_product.id, quantity=3),
                PurchaseLine(product_id=cheap_product.id, quantity=2),
            ],
            payment_method="bank_transfer",
        ))

        assert result.ok
        assert result.order.total_amount == 1000 + 5 * 100
        assert sorted(i.quantity for i in result.order.items) == [1, 5]
        assert db_session.get(Product, cheap_product.id).stock == 45

    def test_one_failing_line_rolls_back_everything(self, db_session, customer, product, cheap_product):
        result = purchase(PurchaseRequest(
            user=customer,
            lines=[
                PurchaseLine(product_id=cheap_product.id, quantity=1),
                PurchaseLine(product_id=product.id, quantity=6),
            ],
            payment_method="bank_transfer",
        ))

        assert not result.ok
        assert db_session.get(Product, cheap_product.id).stock == 50
        assert _order_count(db_session) == 0


class TestLostRace:

    def test_conditional_decrement_failure_rolls_back(self, db_session, customer, product, monkeypatch):
        # Another buyer took the stock between our check and our UPDATE
        monkeypatch.setattr(purchase_service, "conditional_decrement", lambda *args, **kwargs: False)

        result = buy_product(customer, product.id, 2, "points", source="api")

        assert not result.ok
        assert result.code == "insufficient_stock"
        assert _order_count(db_session) == 0
        assert db_session.get(UserAccount, customer.id).points == 3000


class TestPurchaseNotifications:

    def test_success_sends_receipt_and_admin_alert(self, db_session, customer, product, notifier):
        result = buy_product(customer, product.id, 1, "bank_transfer", source="discord_button")

        assert [m["discord_id"] for m in notifier.direct_messages] == ["1001"]
        receipt = notifier.direct_messages[0]["embeds"][0]
        assert result.order.reference in receipt["title"]
        next_step = [f for f in receipt["fields"] if f["name"] == "Next step"][0]["value"]
        assert "Example Bank 1234567" in next_step

        assert [p["channel_id"] for p in notifier.channel_posts] == [ADMIN_CHANNEL]

    def test_card_payment_links_to_payment_page(self, db_session, customer, product):
        result = buy_product(customer, product.id, 1, "stripe", source="api")

        assert result.instructions == f"Complete your payment here: https://shop.example.com/payment/{result.order.id}"

    def test_rejection_sends_nothing(self, db_session, customer, product, notifier):
        buy_product(customer, product.id, 10, "bank_transfer", source="api")

        assert notifier.direct_messages == []
        assert notifier.channel_posts == []

    def test_delivery_failure_does_not_fail_purchase(self, db_session, customer, product, notifier):
        notifier.fail = True

        result = buy_product(customer, product.id, 1, "bank_transfer", source="api")

        assert result.ok
        assert db_session.get(Product, product.id).stock == 4

    def test_unexpected_error_is_generic_and_reported(self, db_session, customer, product, notifier, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(purchase_service, "remove_lines", boom)
        result = purchase(PurchaseRequest(
            user=customer,
            lines=[PurchaseLine(product_id=product.id, quantity=1)],
            payment_method="bank_transfer",
            from_cart=True,
        ))

        assert not result.ok
        assert result.status_code == 500
        assert "disk on fire" not in result.reason
        assert db_session.get(Product, product.id).stock == 5
        assert _order_count(db_session) == 0
        assert notifier.channel_posts[0]["channel_id"] == ADMIN_CHANNEL
        assert "disk on fire" in notifier.channel_posts[0]["embeds"][0]["description"]
