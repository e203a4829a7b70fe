# cartflow/cli.py
import functools

import click

from .errors import CartflowError
from .model import Customer
from .services import CartService, CouponService, CustomerService, InventoryLedger, OrderService


def _fail_on_error(fn):
    # typed failures become a one-line message and exit code 1
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except CartflowError as e:
            raise click.ClickException(f"{e.code}: {e.message}")
    return wrapper


def _customer_id(ref):
    """Accept a numeric id or a customer code such as CH001."""
    if str(ref).isdigit():
        return int(ref)
    customer = Customer.query.filter_by(customer_code=ref).first()
    if customer is None:
        raise click.ClickException(f"Unknown customer '{ref}'")
    return customer.id


@click.command("create-customer")
@click.option("--username", required=True)
@click.option("--email")
@click.option("--role", default="customer", show_default=True)
@_fail_on_error
def create_customer(username, email, role):
    c = CustomerService().register_customer(username, email=email, role=role)
    click.echo(f"Customer created: {c.id} {c.customer_code} {c.username}")


@click.command("create-product")
@click.option("--name", required=True)
@click.option("--price", required=True)
@click.option("--stock", "stock_quantity", type=int, default=0, show_default=True)
@click.option("--discount", "discount_percentage", default="0", show_default=True)
@click.option("--description")
@_fail_on_error
def create_product(name, price, stock_quantity, discount_percentage, description):
    p = InventoryLedger().create_product(
        name, price, stock_quantity=stock_quantity,
        discount_percentage=discount_percentage, description=description,
    )
    click.echo(f"Product created: {p.id} {p.name} price={p.price} stock={p.stock_quantity}")


@click.command("create-coupon")
@click.option("--code", required=True)
@click.option("--type", "discount_type", type=click.Choice(["PERCENTAGE", "FIXED_AMOUNT"], case_sensitive=False),
              default="PERCENTAGE", show_default=True)
@click.option("--value", "discount_value", required=True)
@click.option("--min-cart-value")
@click.option("--usage-limit", type=int)
@click.option("--start-date")
@click.option("--end-date")
@_fail_on_error
def create_coupon(code, discount_type, discount_value, min_cart_value, usage_limit, start_date, end_date):
    data = {"code": code, "discount_type": discount_type, "discount_value": discount_value}
    optional = {
        "min_cart_value": min_cart_value, "usage_limit": usage_limit,
        "start_date": start_date, "end_date": end_date,
    }
    data.update({k: v for k, v in optional.items() if v is not None})
    c = CouponService().create_coupon(**data)
    click.echo(f"Coupon created: {c.id} {c.code} {c.discount_type} {c.discount_value}")


@click.command("add-to-cart")
@click.option("--customer", "customer_ref", required=True, help="customer id or code")
@click.option("--product", "product_id", type=int, required=True)
@click.option("--quantity", type=int, default=1, show_default=True)
@_fail_on_error
def add_to_cart(customer_ref, product_id, quantity):
    cart = CartService().add_product_to_cart(_customer_id(customer_ref), product_id, quantity)
    click.echo(f"Cart {cart.id}: {len(cart.items)} line(s), total {cart.total_amount}")


@click.command("show-cart")
@click.option("--customer", "customer_ref", required=True, help="customer id or code")
@_fail_on_error
def show_cart(customer_ref):
    cart = CartService().get_cart(_customer_id(customer_ref))
    for line in cart.as_api()["items"]:
        flag = "" if line["available"] else " (unavailable)"
        click.echo(f"{line['product_id']:>5}  {line['product_name']}  x{line['quantity']}  {line['line_total']}{flag}")
    click.echo(f"Total: {cart.total_amount}")


@click.command("checkout")
@click.option("--customer", "customer_ref", required=True, help="customer id or code")
@_fail_on_error
def checkout(customer_ref):
    cart = CartService().get_cart(_customer_id(customer_ref))
    order = OrderService().create_order_from_cart(cart.id)
    click.echo(
        f"Order created: {order.order_code} total={order.total_amount} "
        f"discount={order.discount_amount} pay={order.discounted_amount}"
    )


@click.command("apply-coupon")
@click.option("--code", required=True)
@click.option("--total", "cart_total", required=True)
@_fail_on_error
def apply_coupon(code, cart_total):
    result = CouponService().validate_and_apply_coupon(code, cart_total)
    click.echo(f"{result.message} discount={result.discount_amount}")


def register_cli(app):
    for command in (create_customer, create_product, create_coupon, add_to_cart, show_cart, checkout, apply_coupon):
        app.cli.add_command(command)
