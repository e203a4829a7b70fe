"""Order assembler: turns reserved cart lines into immutable orders.

Cart conversion consumes stock that was already reserved when the lines were
added, so it never touches the ledger; only orders built straight from
products (``place_order``) and order edits/deletions move stock.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

import structlog
from sqlalchemy import select

from ..errors import ConflictError, EmptyCartError, NotFoundError, ValidationError
from ..extensions import db
from ..model import (
    ORDER_TRANSITIONS,
    Address,
    Cart,
    Customer,
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentStatus,
    Product,
)
from ..utils.money import D, percent_of, round_money
from .cart_service import recalc_cart
from .code_service import assign_order_code
from .inventory_service import InventoryLedger
from .uow import unit_of_work

logger = structlog.get_logger(__name__)


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class LineSnapshot:
    product: Product
    quantity: int

    @property
    def price(self) -> Decimal:
        return round_money(self.product.price)

    @property
    def discount_percentage(self) -> Decimal:
        return D(self.product.discount_percentage)

    @property
    def item_total(self) -> Decimal:
        return round_money(self.price * self.quantity)

    @property
    def item_discounted(self) -> Decimal:
        return self.item_total - percent_of(self.item_total, self.discount_percentage)

    def to_order_item(self) -> OrderItem:
        return OrderItem(
            product_id=self.product.id,
            product_name=self.product.name,
            price=self.price,
            discount_percentage=self.discount_percentage,
            discounted_price=self.item_discounted,
            quantity=self.quantity,
        )


def fill_order(order: Order, lines) -> Order:
    """Attach snapshots of ``lines`` to ``order`` and set its three totals."""
    total = Decimal("0.00")
    discounted = Decimal("0.00")
    for line in lines:
        order.items.append(line.to_order_item())
        total += line.item_total
        discounted += line.item_discounted
    order.total_amount = round_money(total)
    order.discounted_amount = round_money(discounted)
    order.discount_amount = round_money(total - discounted)
    return order


def _parse_selection(selected_items):
    """Normalize ``[{product_id, quantity?}]`` (or bare ids) to ``[(product_id, quantity|None)]``.

    Entries naming the same product are merged by summing their quantities;
    a repeated product without an explicit quantity is ambiguous and rejected.
    """
    if not selected_items:
        raise ValidationError("Order must contain at least one item.", field="items")
    merged = {}
    for entry in selected_items:
        if isinstance(entry, dict):
            product_id = entry.get("product_id")
            quantity = entry.get("quantity")
        else:
            product_id, quantity = entry, None
        if product_id is None:
            raise ValidationError("product_id is required", field="product_id")
        if quantity is not None:
            try:
                quantity = int(quantity)
            except (TypeError, ValueError):
                raise ValidationError("quantity must be an integer", field="quantity")
            if quantity <= 0:
                raise ValidationError("Quantity must be greater than zero.", field="quantity")
        if product_id in merged:
            held = merged[product_id]
            if held is None or quantity is None:
                raise ValidationError(
                    f"Product '{product_id}' is selected more than once without a quantity",
                    field="items",
                )
            quantity += held
        merged[product_id] = quantity
    return list(merged.items())


class OrderService:
    def __init__(self, session=None, ledger: InventoryLedger | None = None):
        self.session = session or db.session
        self.ledger = ledger or InventoryLedger(self.session)

    # ---- lookup -----------------------------------------------------------

    def get_order(self, order_id) -> Order:
        order = self.session.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    def get_order_by_code(self, order_code) -> Order:
        order = self.session.execute(
            select(Order).where(Order.order_code == order_code)
        ).scalar_one_or_none()
        if order is None:
            raise NotFoundError("Order", order_code)
        return order

    def list_orders(self, customer_id=None, status=None):
        stmt = select(Order).order_by(Order.order_date.desc(), Order.id.desc())
        if customer_id is not None:
            stmt = stmt.where(Order.customer_id == customer_id)
        if status:
            stmt = stmt.where(Order.status == self._status(status).value)
        return list(self.session.execute(stmt).scalars())

    def _lock_cart(self, cart_id) -> Cart:
        cart = self.session.execute(
            select(Cart).where(Cart.id == cart_id).with_for_update()
        ).scalar_one_or_none()
        if cart is None:
            raise NotFoundError("Cart", cart_id)
        return cart

    def _lock_customer_cart(self, customer_id) -> Cart:
        cart = self.session.execute(
            select(Cart).where(Cart.customer_id == customer_id).with_for_update()
        ).scalar_one_or_none()
        if cart is None:
            raise NotFoundError("Cart", customer_id, f"No cart for customer '{customer_id}'")
        return cart

    def _address(self, address_id) -> Address | None:
        if address_id is None:
            return None
        address = self.session.get(Address, address_id)
        if address is None:
            logger.error("Address not found", address_id=address_id)
            raise NotFoundError("Address", address_id)
        return address

    def _new_order(self, customer_id, address=None) -> Order:
        return Order(
            customer_id=customer_id,
            shipping_address=address,
            order_date=_utcnow(),
            status=OrderStatus.PENDING.value,
        )

    def _persist(self, order: Order) -> Order:
        self.session.add(order)
        self.session.flush()
        assign_order_code(self.session, order)
        return order

    # ---- cart conversion --------------------------------------------------

    def create_order_from_cart(self, cart_id) -> Order:
        logger.info("Creating order from cart", cart_id=cart_id)
        with unit_of_work(self.session, "create_order_from_cart"):
            cart = self._lock_cart(cart_id)
            if not cart.items:
                logger.warning("Cannot create an order from an empty cart", cart_id=cart_id)
                raise EmptyCartError(cart_id=cart_id)

            lines, converted = [], []
            for item in cart.items:
                product = item.product
                if product is None or not product.active:
                    logger.warning("Skipping unavailable product", cart_id=cart_id, product_id=item.product_id)
                    continue
                lines.append(LineSnapshot(product, item.quantity))
                converted.append(item)

            if not lines:
                logger.error("No available products in cart", cart_id=cart_id)
                raise EmptyCartError("No available products in cart to place an order.", cart_id=cart_id)

            order = fill_order(self._new_order(cart.customer_id), lines)
            self._persist(order)

            # reservations are now committed to the order: no stock goes back
            for item in converted:
                cart.items.remove(item)
            recalc_cart(cart)
            logger.info("Order created from cart", order_id=order.id, order_code=order.order_code,
                        cart_id=cart_id, converted=len(converted), remaining_total=str(cart.total_amount))
        return order

    def save_partial_order(self, customer_id, selected_items, address_id=None) -> Order:
        selection = _parse_selection(selected_items)
        logger.info("Saving partial order", customer_id=customer_id, items=len(selection))

        with unit_of_work(self.session, "save_partial_order"):
            cart = self._lock_customer_cart(customer_id)
            address = self._address(address_id)

            lines, consumed = [], []
            for product_id, quantity in selection:
                item = cart.find_item(product_id)
                if item is None:
                    logger.error("Product not found in cart", product_id=product_id, customer_id=customer_id)
                    raise NotFoundError("CartItem", product_id, f"Product '{product_id}' not found in cart")
                quantity = item.quantity if quantity is None else quantity
                if quantity > item.quantity:
                    raise ValidationError(
                        f"Only {item.quantity} unit(s) of product '{product_id}' are reserved in the cart",
                        field="quantity",
                    )
                product = item.product
                if product is None or not product.active:
                    logger.warning("Skipping unavailable product", customer_id=customer_id, product_id=product_id)
                    continue
                lines.append(LineSnapshot(product, quantity))
                consumed.append((item, quantity))

            if not lines:
                raise EmptyCartError("No available products in cart to place an order.", cart_id=cart.id)

            order = fill_order(self._new_order(customer_id, address), lines)
            self._persist(order)

            for item, quantity in consumed:
                if quantity == item.quantity:
                    cart.items.remove(item)
                else:
                    # the rest of the line stays reserved in the cart
                    item.quantity -= quantity
            recalc_cart(cart)
            logger.info("Partial order created", order_id=order.id, order_code=order.order_code,
                        customer_id=customer_id)
        return order

    # ---- direct orders ----------------------------------------------------

    def _reserve_lines(self, selection):
        lines = []
        for product_id, quantity in selection:
            if quantity is None:
                raise ValidationError("quantity is required", field="quantity")
            product = self.ledger.reserve(product_id, quantity)
            lines.append(LineSnapshot(product, quantity))
        return lines

    def place_order(self, customer_id, items, address_id=None) -> Order:
        """Order built straight from products, reserving stock from the ledger."""
        selection = _parse_selection(items)
        with unit_of_work(self.session, "place_order"):
            if self.session.get(Customer, customer_id) is None:
                raise NotFoundError("Customer", customer_id)
            address = self._address(address_id)
            lines = self._reserve_lines(selection)
            order = fill_order(self._new_order(customer_id, address), lines)
            self._persist(order)
            logger.info("Order placed", order_id=order.id, order_code=order.order_code, customer_id=customer_id)
        return order

    # ---- edits ------------------------------------------------------------

    @staticmethod
    def _status(value) -> OrderStatus:
        try:
            return OrderStatus(str(getattr(value, "value", value)).upper())
        except ValueError:
            raise ValidationError(f"unknown order status '{value}'", field="status")

    def _restore_items(self, order: Order):
        for item in order.items:
            if item.product_id is not None:
                self.ledger.release(item.product_id, item.quantity)
                logger.debug("Restored stock from order", order_id=order.id,
                             product_id=item.product_id, quantity=item.quantity)

    def update_order(self, order_id, status=None, address_id=None, items=None) -> Order:
        with unit_of_work(self.session, "update_order"):
            order = self.session.execute(
                select(Order).where(Order.id == order_id).with_for_update()
            ).scalar_one_or_none()
            if order is None:
                raise NotFoundError("Order", order_id)

            if items is not None:
                if order.status != OrderStatus.PENDING.value:
                    raise ConflictError("Only pending orders can change items", order_id=order.id,
                                        status=order.status)
                selection = _parse_selection(items)
                # restore-then-reserve so the old units count as available again
                self._restore_items(order)
                order.items.clear()
                self.session.flush()
                fill_order(order, self._reserve_lines(selection))

            if address_id is not None:
                order.shipping_address = self._address(address_id)

            if status is not None:
                self._transition(order, self._status(status))

            logger.info("Order updated", order_id=order.id, status=order.status)
        return order

    def _transition(self, order: Order, new_status: OrderStatus):
        current = OrderStatus(order.status)
        if new_status == current:
            return
        if new_status not in ORDER_TRANSITIONS[current]:
            raise ConflictError(
                f"Cannot move order from {current.value} to {new_status.value}",
                order_id=order.id,
            )
        logger.info("Order status changed", order_id=order.id, old=current.value, new=new_status.value)
        order.status = new_status.value
        if new_status == OrderStatus.CANCELLED:
            self._restore_items(order)
        elif new_status == OrderStatus.DELIVERED:
            self._complete_payment(order)

    def _complete_payment(self, order: Order):
        # only the oldest open payment is settled; later ones keep their status
        payment = next(
            (p for p in order.payments if p.status != PaymentStatus.COMPLETED.value),
            None,
        )
        if payment is None:
            logger.warning("No open payment for delivered order", order_id=order.id)
            return
        payment.status = PaymentStatus.COMPLETED.value
        logger.info("Payment completed on delivery", order_id=order.id, payment_id=payment.id)

    def cancel_order(self, order_id) -> Order:
        """Cancel and give the stock back; delivered orders cannot be cancelled."""
        return self.update_order(order_id, status=OrderStatus.CANCELLED)

    def delete_order(self, order_id):
        logger.info("Deleting order", order_id=order_id)
        with unit_of_work(self.session, "delete_order"):
            order = self.get_order(order_id)
            if order.status != OrderStatus.CANCELLED.value:
                self._restore_items(order)
            self.session.delete(order)
            logger.info("Order deleted", order_id=order_id)

    def record_payment(self, order_id, amount=None, method="cod") -> Payment:
        with unit_of_work(self.session, "record_payment"):
            order = self.get_order(order_id)
            amount = order.discounted_amount if amount is None else round_money(amount)
            if D(amount) <= 0:
                raise ValidationError("amount must be > 0", field="amount")
            payment = Payment(amount=amount, payment_method=method, status=PaymentStatus.PENDING.value)
            order.payments.append(payment)
            self.session.flush()
            logger.info("Payment recorded", order_id=order.id, payment_id=payment.id, amount=str(amount))
        return payment
