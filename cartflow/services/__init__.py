from .uow import unit_of_work
from .inventory_service import InventoryLedger
from .cart_service import CartService
from .coupon_service import CouponService, CouponResult, CouponRejection
from .code_service import CustomerCodeGenerator, CustomerService, format_order_code, assign_order_code
from .order_service import OrderService

__all__ = [
    "unit_of_work",
    "InventoryLedger",
    "CartService",
    "CouponService",
    "CouponResult",
    "CouponRejection",
    "CustomerCodeGenerator",
    "CustomerService",
    "format_order_code",
    "assign_order_code",
    "OrderService",
]
