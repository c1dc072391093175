from .auth import User, SessionToken
from .menu import Category, MenuItem, ItemVariant, Addon, CategoryAddon, ItemAddon
from .customers import Customer
from .orders import Order, OrderLine, OrderLineAddon, OrderStatusHistory, DocumentSequence
from .settings import Setting

__all__ = [
    'User', 'SessionToken',
    'Category', 'MenuItem', 'ItemVariant', 'Addon', 'CategoryAddon', 'ItemAddon',
    'Customer',
    'Order', 'OrderLine', 'OrderLineAddon', 'OrderStatusHistory', 'DocumentSequence',
    'Setting',
]
