"""Inventory ledger: the authoritative ``Product.stock_quantity`` counter.

Every change to a stock level goes through a compare-and-update statement
issued while the product row is locked, so two concurrent reservations can
never both pass the availability check.
"""

import structlog
from sqlalchemy import select, update

from ..errors import NotFoundError, OutOfStockError, ValidationError
from ..extensions import db
from ..model import Product
from ..utils.money import D
from .uow import unit_of_work

logger = structlog.get_logger(__name__)


def _positive_quantity(quantity, field: str = "quantity") -> int:
    try:
        q = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", field=field)
    if q <= 0:
        raise ValidationError("Quantity must be greater than zero.", field=field)
    return q


class InventoryLedger:
    def __init__(self, session=None):
        self.session = session or db.session

    # ---- row access -------------------------------------------------------

    def get_product(self, product_id) -> Product:
        product = self.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    def lock_product(self, product_id) -> Product:
        """Load the product row with ``SELECT ... FOR UPDATE``."""
        product = self.session.execute(
            select(Product).where(Product.id == product_id).with_for_update()
        ).scalar_one_or_none()
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    def available(self, product_id) -> int:
        return self.get_product(product_id).stock_quantity

    # ---- ledger movements -------------------------------------------------

    def reserve(self, product_id, quantity) -> Product:
        """Take ``quantity`` units out of the ledger.

        Raises ``OutOfStockError`` when the row (as seen by the database, not
        by a possibly stale in-session copy) holds fewer units.
        """
        quantity = _positive_quantity(quantity)
        product = self.lock_product(product_id)
        if not product.active:
            raise ValidationError("Product is not available for purchase.", field="product_id")

        result = self.session.execute(
            update(Product)
            .where(Product.id == product.id, Product.stock_quantity >= quantity)
            .values(stock_quantity=Product.stock_quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        self.session.refresh(product)
        if result.rowcount != 1:
            logger.warning(
                "Insufficient stock",
                product_id=product.id, available=product.stock_quantity, requested=quantity,
            )
            raise OutOfStockError(product.id, product.name, product.stock_quantity, quantity)

        logger.debug("Stock reserved", product_id=product.id, quantity=quantity, remaining=product.stock_quantity)
        return product

    def release(self, product_id, quantity) -> Product:
        """Give ``quantity`` units back to the ledger (remove / clear / order deletion)."""
        quantity = _positive_quantity(quantity)
        product = self.lock_product(product_id)
        self.session.execute(
            update(Product)
            .where(Product.id == product.id)
            .values(stock_quantity=Product.stock_quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        self.session.refresh(product)
        logger.debug("Stock released", product_id=product.id, quantity=quantity, remaining=product.stock_quantity)
        return product

    # ---- catalog glue -----------------------------------------------------

    def create_product(self, name, price, stock_quantity=0, discount_percentage=0,
                       description=None, active=True) -> Product:
        name = (name or "").strip()
        if not name:
            raise ValidationError("name is required", field="name")
        price = D(price)
        if price < 0:
            raise ValidationError("price must be >= 0", field="price")
        stock_quantity = int(stock_quantity or 0)
        if stock_quantity < 0:
            raise ValidationError("stock_quantity must be >= 0", field="stock_quantity")
        pct = self._valid_percentage(discount_percentage)

        with unit_of_work(self.session, "create_product"):
            product = Product(
                name=name,
                description=description,
                price=price,
                stock_quantity=stock_quantity,
                discount_percentage=pct,
                active=bool(active),
            )
            self.session.add(product)
            self.session.flush()
            logger.info("Product created", product_id=product.id, stock=stock_quantity)
        return product

    def restock(self, product_id, quantity) -> Product:
        with unit_of_work(self.session, "restock"):
            product = self.release(product_id, quantity)
            logger.info("Product restocked", product_id=product.id, quantity=int(quantity),
                        stock=product.stock_quantity)
        return product

    def set_discount(self, product_id, discount_percentage) -> Product:
        pct = self._valid_percentage(discount_percentage)
        with unit_of_work(self.session, "set_discount"):
            product = self.lock_product(product_id)
            product.discount_percentage = pct
        return product

    def set_active(self, product_id, active: bool) -> Product:
        with unit_of_work(self.session, "set_active"):
            product = self.lock_product(product_id)
            product.active = bool(active)
            logger.info("Product availability changed", product_id=product.id, active=product.active)
        return product

    def list_products(self, active=None):
        stmt = select(Product).order_by(Product.id.asc())
        if active is not None:
            stmt = stmt.where(Product.active == bool(active))
        return list(self.session.execute(stmt).scalars())

    @staticmethod
    def _valid_percentage(value):
        pct = D(value)
        if pct < 0 or pct > 100:
            raise ValidationError("discount_percentage must be between 0 and 100", field="discount_percentage")
        return pct
