# ------ cartflow/model/__init__.py ------

from .customer import Customer, Address, CodeSequence, Role
from .product import Product
from .cart import Cart, CartItem
from .coupon import Coupon, DiscountType
from .order import Order, OrderItem, OrderStatus, ORDER_TRANSITIONS
from .payment import Payment, PaymentStatus

__all__ = [
    "Customer",
    "Address",
    "CodeSequence",
    "Role",
    "Product",
    "Cart",
    "CartItem",
    "Coupon",
    "DiscountType",
    "Order",
    "OrderItem",
    "OrderStatus",
    "ORDER_TRANSITIONS",
    "Payment",
    "PaymentStatus",
]
