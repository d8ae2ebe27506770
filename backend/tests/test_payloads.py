"""
Component payload codec tests.

Verifies:
- Wire format is <action>:<fields...> in declaration order
- Decoding coerces types and re-runs validation
- Malformed, unknown, oversized or tampered IDs raise PayloadError
"""

import pytest

from shopcord.bot import payloads
from shopcord.bot.payloads import PayloadError, decode, encode


class TestEncode:

    def test_wire_format(self):
        assert encode(payloads.ChooseQuantity(product_id=12, quantity=3)) == "qty:12:3"
        assert encode(payloads.ConfirmPurchase(product_id=7, quantity=2, method="bank_transfer")) == "confirm:7:2:bank_transfer"
        assert encode(payloads.BrowseCategories()) == "back"

    def test_decode_returns_typed_payload(self):
        payload = decode("pay:7:2:points")
        assert payload == payloads.ChoosePayment(product_id=7, quantity=2, method="points")
        assert isinstance(payload.quantity, int)

    @pytest.mark.parametrize("payload", [
        payloads.BrowseCategories(),
        payloads.CategorySelect(),
        payloads.ShowCategory(category_id=4),
        payloads.ProductSelect(),
        payloads.ShowProduct(product_id=9),
        payloads.AskQuantity(product_id=9),
        payloads.QuantityModal(product_id=9),
        payloads.CancelPurchase(),
        payloads.AddToCart(product_id=9),
        payloads.ViewOrder(order_id=31),
        payloads.UpdateOrderStatus(order_id=31, status="completed"),
    ])
    def test_every_action_decodes_to_itself(self, payload):
        assert decode(encode(payload)) == payload

    def test_invalid_construction_rejected(self):
        with pytest.raises(PayloadError):
            payloads.ChooseQuantity(product_id=1, quantity=0)
        with pytest.raises(PayloadError):
            payloads.ChoosePayment(product_id=1, quantity=1, method="cash")


class TestDecodeRejects:

    @pytest.mark.parametrize("custom_id", [
        "",
        "buy_quantity_2_15",
        "qty:12",
        "qty:12:3:4",
        "qty:abc:3",
        "qty:12:-1",
        "qty:12:0",
        "pay:1:1:bitcoin",
        "order_status:5:shipped",
        "category:",
        "qty:1:²",
        "product:١٢",
        "x" * 101,
    ])
    def test_malformed(self, custom_id):
        with pytest.raises(PayloadError):
            decode(custom_id)

    def test_payload_error_is_validation_error(self):
        from shopcord.errors import ValidationError
        assert issubclass(PayloadError, ValidationError)

    def test_unregistered_object(self):
        with pytest.raises(PayloadError):
            encode(object())
