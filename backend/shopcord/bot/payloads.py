# Overview: Typed component payloads for Discord buttons, selects and modals.

"""
Component custom IDs carry the state between interaction steps. Each payload
is a frozen dataclass tagged by an action name; the wire form is

    <action>:<field1>:<field2>...

in field declaration order. decode() looks the action up, checks the field
count, coerces each field to its declared type and runs the dataclass
validation, so handlers only ever see well-formed payloads.

Discord caps custom IDs at 100 characters.
"""

from dataclasses import dataclass, fields

from ..errors import ValidationError
from ..models.orders import ORDER_STATUSES, PAYMENT_METHODS


SEPARATOR = ":"
MAX_CUSTOM_ID_LENGTH = 100

_REGISTRY: dict = {}


class PayloadError(ValidationError):
    code = "invalid_payload"


def payload(action: str):
    """Register a dataclass under an action tag."""
    def decorator(cls):
        if action in _REGISTRY:
            raise RuntimeError(f"duplicate payload action {action!r}")
        cls.action = action
        _REGISTRY[action] = cls
        return cls
    return decorator


def _positive(name: str, value: int) -> None:
    if value < 1:
        raise PayloadError(f"{name} must be >= 1")


@payload("back")
@dataclass(frozen=True)
class BrowseCategories:
    pass


@payload("category_menu")
@dataclass(frozen=True)
class CategorySelect:
    """Select menu; the chosen category id arrives in the interaction values."""


@payload("category")
@dataclass(frozen=True)
class ShowCategory:
    category_id: int

    def __post_init__(self):
        _positive("category_id", self.category_id)


@payload("product_menu")
@dataclass(frozen=True)
class ProductSelect:
    """Select menu; the chosen product id arrives in the interaction values."""


@payload("product")
@dataclass(frozen=True)
class ShowProduct:
    product_id: int

    def __post_init__(self):
        _positive("product_id", self.product_id)


@payload("qty")
@dataclass(frozen=True)
class ChooseQuantity:
    product_id: int
    quantity: int

    def __post_init__(self):
        _positive("product_id", self.product_id)
        _positive("quantity", self.quantity)


@payload("qty_custom")
@dataclass(frozen=True)
class AskQuantity:
    product_id: int

    def __post_init__(self):
        _positive("product_id", self.product_id)


@payload("qty_modal")
@dataclass(frozen=True)
class QuantityModal:
    product_id: int

    def __post_init__(self):
        _positive("product_id", self.product_id)


@payload("pay")
@dataclass(frozen=True)
class ChoosePayment:
    product_id: int
    quantity: int
    method: str

    def __post_init__(self):
        _positive("product_id", self.product_id)
        _positive("quantity", self.quantity)
        if self.method not in PAYMENT_METHODS:
            raise PayloadError(f"unknown payment method {self.method!r}")


@payload("confirm")
@dataclass(frozen=True)
class ConfirmPurchase:
    product_id: int
    quantity: int
    method: str

    def __post_init__(self):
        _positive("product_id", self.product_id)
        _positive("quantity", self.quantity)
        if self.method not in PAYMENT_METHODS:
            raise PayloadError(f"unknown payment method {self.method!r}")


@payload("cancel")
@dataclass(frozen=True)
class CancelPurchase:
    pass


@payload("cart_add")
@dataclass(frozen=True)
class AddToCart:
    product_id: int

    def __post_init__(self):
        _positive("product_id", self.product_id)


@payload("view_order")
@dataclass(frozen=True)
class ViewOrder:
    order_id: int

    def __post_init__(self):
        _positive("order_id", self.order_id)


@payload("order_status")
@dataclass(frozen=True)
class UpdateOrderStatus:
    order_id: int
    status: str

    def __post_init__(self):
        _positive("order_id", self.order_id)
        if self.status not in ORDER_STATUSES:
            raise PayloadError(f"unknown order status {self.status!r}")


def encode(obj) -> str:
    action = getattr(type(obj), "action", None)
    if action is None or _REGISTRY.get(action) is not type(obj):
        raise PayloadError(f"{type(obj).__name__} is not a registered payload")

    parts = [action]
    for f in fields(obj):
        value = str(getattr(obj, f.name))
        if SEPARATOR in value:
            raise PayloadError(f"{f.name} may not contain {SEPARATOR!r}")
        parts.append(value)

    custom_id = SEPARATOR.join(parts)
    if len(custom_id) > MAX_CUSTOM_ID_LENGTH:
        raise PayloadError("custom id too long")
    return custom_id


def _coerce(field_type, name: str, raw: str):
    if field_type is int:
        if not (raw.isascii() and raw.isdigit()):
            raise PayloadError(f"{name} must be a positive integer")
        return int(raw)
    return raw


def decode(custom_id: str):
    if not custom_id or len(custom_id) > MAX_CUSTOM_ID_LENGTH:
        raise PayloadError("malformed custom id")

    action, *raw_fields = custom_id.split(SEPARATOR)
    cls = _REGISTRY.get(action)
    if cls is None:
        raise PayloadError(f"unknown action {action!r}")

    declared = fields(cls)
    if len(raw_fields) != len(declared):
        raise PayloadError(f"{action} expects {len(declared)} field(s), got {len(raw_fields)}")

    values = {f.name: _coerce(f.type, f.name, raw) for f, raw in zip(declared, raw_fields)}
    return cls(**values)
