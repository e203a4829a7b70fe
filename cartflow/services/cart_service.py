"""Cart aggregate: one basket per customer whose lines hold ledger stock.

Stock is reserved when a line is added, given back on remove/clear and never
given back on order conversion. Each public method is a single unit of work
and locks the cart row first, which serializes it against conversion of the
same cart.
"""

from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..errors import NotFoundError, OutOfStockError, ValidationError
from ..extensions import db
from ..model import Cart, CartItem, Customer
from .inventory_service import InventoryLedger
from .uow import unit_of_work

logger = structlog.get_logger(__name__)


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def recalc_cart(cart: Cart):
    """Recompute ``cart.total_amount`` from the live lines and touch ``updated_at``.

    total = round_half_up(sum(unit_price * (1 - discount/100) * quantity))
    """
    cart.total_amount = cart.computed_total_dec()
    cart.updated_at = _utcnow()
    return cart.total_amount


def _quantity(value, field="quantity") -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", field=field)


class CartService:
    def __init__(self, session=None, ledger: InventoryLedger | None = None):
        self.session = session or db.session
        self.ledger = ledger or InventoryLedger(self.session)

    # ---- lookup -----------------------------------------------------------

    def _find_cart(self, customer_id, lock=False) -> Cart | None:
        stmt = select(Cart).where(Cart.customer_id == customer_id)
        if lock:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def _cart_for(self, customer_id, lock=True) -> Cart:
        cart = self._find_cart(customer_id, lock=lock)
        if cart is not None:
            return cart

        if self.session.get(Customer, customer_id) is None:
            raise NotFoundError("Customer", customer_id)

        logger.info("No cart found, creating one", customer_id=customer_id)
        try:
            # a concurrent first access may insert the same customer's cart
            with self.session.begin_nested():
                cart = Cart(customer_id=customer_id, total_amount=0)
                self.session.add(cart)
        except IntegrityError:
            cart = self._find_cart(customer_id, lock=lock)
            if cart is None:
                raise
        else:
            logger.info("New cart created", cart_id=cart.id, customer_id=customer_id)
        return cart

    def _item_for(self, cart: Cart, product_id) -> CartItem:
        item = cart.find_item(product_id)
        if item is None:
            logger.error("Cart item not found", cart_id=cart.id, product_id=product_id)
            raise NotFoundError("CartItem", product_id, f"Product '{product_id}' not found in cart")
        return item

    def get_or_create_cart(self, customer_id) -> Cart:
        with unit_of_work(self.session, "get_or_create_cart"):
            cart = self._cart_for(customer_id, lock=False)
        return cart

    def get_cart(self, customer_id) -> Cart:
        cart = self._find_cart(customer_id)
        if cart is None:
            raise NotFoundError("Cart", customer_id, f"No cart for customer '{customer_id}'")
        return cart

    def get_cart_by_id(self, cart_id) -> Cart:
        cart = self.session.get(Cart, cart_id)
        if cart is None:
            raise NotFoundError("Cart", cart_id)
        return cart

    def list_carts(self):
        return list(self.session.execute(select(Cart).order_by(Cart.id.asc())).scalars())

    def recalculate(self, cart: Cart) -> Cart:
        with unit_of_work(self.session, "recalculate"):
            recalc_cart(cart)
        return cart

    # ---- mutations --------------------------------------------------------

    def add_product_to_cart(self, customer_id, product_id, quantity) -> Cart:
        quantity = _quantity(quantity)
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero.", field="quantity")

        logger.info("Adding product to cart", customer_id=customer_id, product_id=product_id, quantity=quantity)
        with unit_of_work(self.session, "add_product_to_cart"):
            cart = self._cart_for(customer_id)
            product = self.ledger.reserve(product_id, quantity)

            item = cart.find_item(product.id)
            if item:
                logger.debug("Product already in cart", product_id=product.id,
                             old_quantity=item.quantity, new_quantity=item.quantity + quantity)
                item.quantity += quantity
            else:
                item = CartItem(product=product, quantity=quantity, price=product.price)
                cart.items.append(item)

            recalc_cart(cart)
            logger.info("Product added to cart", cart_id=cart.id, product_id=product.id,
                        total=str(cart.total_amount))
        return cart

    def update_product_quantity(self, customer_id, product_id, new_quantity) -> Cart:
        new_quantity = _quantity(new_quantity, "new_quantity")
        if new_quantity < 0:
            raise ValidationError("Quantity cannot be negative.", field="new_quantity")
        if new_quantity == 0:
            logger.info("New quantity is 0, removing product", customer_id=customer_id, product_id=product_id)
            return self.remove_product_from_cart(customer_id, product_id)

        with unit_of_work(self.session, "update_product_quantity"):
            cart = self._cart_for(customer_id)
            item = self._item_for(cart, product_id)
            diff = new_quantity - item.quantity

            if diff > 0:
                # only the extra units need to be available; the rest is already held
                try:
                    product = self.ledger.reserve(product_id, diff)
                except OutOfStockError:
                    logger.warning("Requested quantity exceeds available stock",
                                   product_id=product_id, requested=new_quantity, held=item.quantity)
                    raise
            elif diff < 0:
                product = self.ledger.release(product_id, -diff)
            else:
                product = self.ledger.get_product(product_id)

            item.quantity = new_quantity
            item.price = product.price
            recalc_cart(cart)
            logger.info("Cart quantity updated", cart_id=cart.id, product_id=product_id,
                        quantity=new_quantity, diff=diff, total=str(cart.total_amount))
        return cart

    def remove_product_from_cart(self, customer_id, product_id) -> Cart:
        with unit_of_work(self.session, "remove_product_from_cart"):
            cart = self._cart_for(customer_id)
            item = self._item_for(cart, product_id)

            self.ledger.release(item.product_id, item.quantity)
            cart.items.remove(item)
            recalc_cart(cart)
            logger.info("Product removed from cart", cart_id=cart.id, product_id=product_id,
                        restored=item.quantity)
        return cart

    def clear_cart(self, customer_id) -> Cart:
        with unit_of_work(self.session, "clear_cart"):
            cart = self._cart_for(customer_id)
            for item in list(cart.items):
                self.ledger.release(item.product_id, item.quantity)
                cart.items.remove(item)
            recalc_cart(cart)
            logger.info("Cart cleared", cart_id=cart.id)
        return cart
