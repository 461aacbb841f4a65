from .auth import User, SessionToken
from .catalog import Product, ProductVariant, City, ShippingMethod, ShippingMethodCityPrice
from .promotions import DiscountCode
from .settings import StoreSettings
from .orders import Order, OrderItem, Payment, IdempotencyRecord

__all__ = [
    'User', 'SessionToken',
    'Product', 'ProductVariant', 'City', 'ShippingMethod', 'ShippingMethodCityPrice',
    'DiscountCode',
    'StoreSettings',
    'Order', 'OrderItem', 'Payment', 'IdempotencyRecord',
]
