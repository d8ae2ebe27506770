from .catalog import Category, Product, PRODUCT_STATUSES, PURCHASABLE_STATUSES
from .accounts import UserAccount, CartItem
from .orders import Order, OrderItem, ORDER_STATUSES, PAYMENT_METHODS, PAYMENT_STATUSES
from .audit import AuditEvent

__all__ = [
    'Category', 'Product', 'PRODUCT_STATUSES', 'PURCHASABLE_STATUSES',
    'UserAccount', 'CartItem',
    'Order', 'OrderItem', 'ORDER_STATUSES', 'PAYMENT_METHODS', 'PAYMENT_STATUSES',
    'AuditEvent',
]
