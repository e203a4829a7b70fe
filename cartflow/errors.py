"""Typed failures raised by the cart/order core.

Every error carries a stable ``code`` and an ``http_status`` hint so the
presentation layer (not part of this package) can render it without
inspecting messages. Coupon rejections are *not* errors; see
``cartflow.services.coupon_service.CouponResult``.
"""


class CartflowError(Exception):
    """Base class for all cartflow failures."""

    code = "CARTFLOW_ERROR"
    http_status = 500

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": {k: v for k, v in self.details.items() if v is not None},
        }


# --- 400-level -----------------------------------------------------------

class NotFoundError(CartflowError):
    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, resource: str, identifier, message: str | None = None):
        super().__init__(
            message or f"{resource} '{identifier}' not found",
            resource=resource, identifier=identifier,
        )
        self.resource = resource
        self.identifier = identifier


class ValidationError(CartflowError):
    code = "VALIDATION_ERROR"
    http_status = 422

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, field=field)
        self.field = field


class EmptyCartError(ValidationError):
    code = "EMPTY_CART"

    def __init__(self, message: str = "Cannot create an order from an empty cart.", cart_id=None):
        super().__init__(message)
        self.details["cart_id"] = cart_id
        self.cart_id = cart_id


class OutOfStockError(CartflowError):
    code = "OUT_OF_STOCK"
    http_status = 409

    def __init__(self, product_id, product_name: str | None, available: int, requested: int):
        super().__init__(
            f"Not enough stock for product: {product_name or product_id}",
            product_id=product_id, available=available, requested=requested,
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class ConflictError(CartflowError):
    code = "CONFLICT"
    http_status = 409


# --- 500-level -----------------------------------------------------------

class DatabaseError(CartflowError):
    code = "DATABASE_ERROR"
    http_status = 503

    def __init__(self, message: str, operation: str):
        super().__init__(f"Database {operation} failed: {message}", operation=operation)
        self.operation = operation
