# Overview: Flask CLI command groups for bootstrap, stock maintenance and quotation handling.

# backend/lotledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: python -m flask --app lotledger <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask --app lotledger system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask --app lotledger system seed-demo
#   Create demo products, lots at different costs and one pending quotation.
#
# Inventory:
# - python -m flask --app lotledger inventory receive --product-id 1 --quantity 10 --unit-cost-cents 1000
#   Receive stock as a new FIFO lot (optionally --received-at, --lot-code, --supplier-ref).
# - python -m flask --app lotledger inventory withdraw --product-id 1 --quantity 2 --reason WASTE
#   Take stock out without a sale (INTERNAL_USE or WASTE), oldest lots first.
# - python -m flask --app lotledger inventory check
#   Report products whose stock_on_hand disagrees with their active lots (exit 1 on drift).
# - python -m flask --app lotledger inventory recalc-cost
#   Re-derive every product's current cost from its oldest lot with stock.
#
# Quotations:
# - python -m flask --app lotledger quotations confirm 12 --actor cashier-1
#   Convert a pending quotation into a sale, consuming lots FIFO.
# - python -m flask --app lotledger quotations cancel 12
#   Cancel a pending quotation (no stock effect).

from datetime import timedelta

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import Product
from .records import STOCK_EXIT_REASONS
from .services import inventory_service, quotation_service, receive_service, stock_exit_service
from .time_utils import utcnow
from .validation import ValidationError


def _fail(exc: Exception) -> None:
    details = getattr(exc, "details", None)
    message = f"FAIL {exc}"
    if details:
        message += f" {details}"
    raise click.ClickException(message)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask --app lotledger system seed-demo' for sample data.")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """
    Seed demo data: two products with lots at rising costs and one quotation.

    Idempotent on SKU: existing demo products are left alone.
    """
    now = utcnow()
    demo = [
        # sku, name, price, [(days ago, qty, unit cost)]
        ("DEMO-COFFEE", "Coffee beans 1kg", 2500, [(10, 3, 1000), (5, 10, 1200)]),
        ("DEMO-MUG", "Ceramic mug", 900, [(7, 20, 300)]),
    ]

    product_ids = []
    for sku, name, price, lots in demo:
        product = db.session.query(Product).filter_by(sku=sku).first()
        if product is not None:
            click.echo(f"SKIP {sku} already exists (ID: {product.id})")
            product_ids.append(product.id)
            continue

        product = Product(sku=sku, name=name, price_cents=price, stock_on_hand=0, current_cost_cents=0)
        db.session.add(product)
        db.session.commit()
        product_ids.append(product.id)

        for days_ago, quantity, cost in lots:
            receive_service.receive_lot(
                product.id,
                quantity,
                cost,
                received_at=now - timedelta(days=days_ago),
                lot_code=f"{sku}-{days_ago}D",
                actor="seed-demo",
            )
        click.echo(f"PASS Created {sku} (ID: {product.id}) with {len(lots)} lot(s)")

    quotation = quotation_service.create_quotation(
        customer_name="Demo customer",
        lines=[
            {"product_id": product_ids[0], "quantity": 5},
            {"product_id": product_ids[1], "quantity": 2},
        ],
        actor="seed-demo",
    )
    click.echo(f"PASS Created pending quotation {quotation.id} (total {quotation.total_cents} cents)")


@click.group('inventory')
def inventory_group():
    """Lot receiving and stock maintenance."""


@inventory_group.command('receive')
@click.option('--product-id', type=int, required=True, help='Product ID')
@click.option('--quantity', type=int, required=True, help='Units received')
@click.option('--unit-cost-cents', type=int, required=True, help='Purchase cost per unit, in cents')
@click.option('--received-at', default=None, help='ISO-8601 receipt time (default: now)')
@click.option('--lot-code', default=None, help='Supplier batch code')
@click.option('--supplier-ref', default=None, help='PO or invoice reference')
@with_appcontext
def receive_cli(product_id, quantity, unit_cost_cents, received_at, lot_code, supplier_ref):
    """Receive stock as a new lot."""
    try:
        lot = receive_service.receive_lot(
            product_id,
            quantity,
            unit_cost_cents,
            received_at=received_at,
            lot_code=lot_code,
            supplier_ref=supplier_ref,
            actor="cli",
        )
    except (LedgerError, ValidationError) as exc:
        _fail(exc)

    summary = inventory_service.get_stock_summary(product_id)
    click.echo(
        f"PASS Lot {lot.id}: {lot.quantity_received} units @ {lot.unit_cost_cents} cents. "
        f"Stock now {summary['stock_on_hand']}, cost {summary['current_cost_cents']} cents"
    )


@inventory_group.command('withdraw')
@click.option('--product-id', type=int, required=True, help='Product ID')
@click.option('--quantity', type=int, required=True, help='Units to take out')
@click.option('--reason', type=click.Choice(STOCK_EXIT_REASONS, case_sensitive=False), required=True)
@click.option('--note', default=None, help='Free text stored on the movements')
@click.option('--actor', default='cli', show_default=True)
@with_appcontext
def withdraw_cli(product_id, quantity, reason, note, actor):
    """Withdraw stock for internal use or waste, consuming lots FIFO."""
    try:
        summary = stock_exit_service.withdraw_stock(
            product_id,
            quantity,
            reason,
            note=note,
            actor=actor,
            attempts=current_app.config["CONFIRM_RETRY_ATTEMPTS"],
            backoff_base=current_app.config["CONFIRM_RETRY_BACKOFF"],
        )
    except (LedgerError, ValidationError) as exc:
        _fail(exc)

    click.echo(
        f"PASS Withdrew {summary.quantity} units as {summary.reason} "
        f"(cost {summary.cost_total_cents} cents, {len(summary.movement_ids)} lot movement(s)). "
        f"Stock now {summary.stock_on_hand}, cost {summary.current_cost_cents} cents"
    )


@inventory_group.command('check')
@with_appcontext
def check_cli():
    """Compare product stock with the sum of active lots."""
    drift = inventory_service.check_stock_consistency()
    if not drift:
        click.echo("PASS Stock matches lots for every product")
        return

    click.echo(f"{'Product':<10} {'SKU':<20} {'On hand':>10} {'In lots':>10} {'Diff':>8}")
    click.echo("-" * 62)
    for row in drift:
        click.echo(
            f"{row['product_id']:<10} {row['sku']:<20} {row['stock_on_hand']:>10} "
            f"{row['lot_stock']:>10} {row['difference']:>8}"
        )
    raise click.ClickException(f"Stock drift on {len(drift)} product(s)")


@inventory_group.command('recalc-cost')
@with_appcontext
def recalc_cost_cli():
    """Recalculate every product's current cost from its lots."""
    try:
        costs = inventory_service.recalculate_all_costs()
    except LedgerError as exc:
        _fail(exc)
    for product_id, cost in costs.items():
        click.echo(f"  product {product_id}: {cost} cents")
    click.echo(f"PASS Recalculated {len(costs)} product(s)")


@click.group('quotations')
def quotations_group():
    """Quotation confirmation and cancellation."""


@quotations_group.command('confirm')
@click.argument('quotation_id', type=int)
@click.option('--actor', default='cli', show_default=True, help='Recorded on lot movements and the sale')
@with_appcontext
def confirm_cli(quotation_id, actor):
    """Confirm a pending quotation into a sale."""
    try:
        summary = quotation_service.confirm_quotation(
            quotation_id,
            actor=actor,
            attempts=current_app.config["CONFIRM_RETRY_ATTEMPTS"],
            backoff_base=current_app.config["CONFIRM_RETRY_BACKOFF"],
        )
    except (LedgerError, ValidationError) as exc:
        _fail(exc)

    click.echo(
        f"PASS Quotation {quotation_id} -> sale {summary.sale_id}: total {summary.total_cents}, "
        f"cost {summary.cost_total_cents}, profit {summary.profit_cents} "
        f"({len(summary.movement_ids)} lot movement(s))"
    )


@quotations_group.command('cancel')
@click.argument('quotation_id', type=int)
@click.option('--actor', default='cli', show_default=True)
@with_appcontext
def cancel_cli(quotation_id, actor):
    """Cancel a pending quotation."""
    try:
        quotation_service.cancel_quotation(quotation_id, actor=actor)
    except LedgerError as exc:
        _fail(exc)
    click.echo(f"PASS Quotation {quotation_id} cancelled")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(quotations_group)
