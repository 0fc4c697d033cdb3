# Overview: Flask CLI command group for bootstrap and stock inspection.

# backend/stockcore/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask stock <command> [options]
#
# - python -m flask stock init-db
#   Create all tables that do not exist yet (use `flask db upgrade` for migrations).
# - python -m flask stock audit [--product-id 1]
#   Compare every product's quantity with the sum of its ledger entries.
#   Exits with status 1 if any product disagrees.
# - python -m flask stock low-stock
#   List active products at or below their minimum quantity.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import InventoryError
from .services.ledger_service import audit_all_stock, audit_product_stock
from .services.stock_service import list_low_stock_products


@click.group('stock')
def stock_group():
    """Stock bootstrap and inspection commands."""


@stock_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables for the current database URL."""
    db.create_all()
    click.echo("PASS Database tables created")


@stock_group.command('audit')
@click.option('--product-id', type=int, help='Audit a single product')
@with_appcontext
def audit_stock(product_id):
    """
    Cross-check the Product Stock Store against the Stock Ledger.

    Any mismatch means a quantity changed without its ledger entry.
    """
    try:
        rows = [audit_product_stock(product_id)] if product_id else audit_all_stock()
    except InventoryError as e:
        raise click.ClickException(e.message)

    mismatches = 0
    for row in rows:
        status = "PASS" if row["consistent"] else "FAIL"
        if not row["consistent"]:
            mismatches += 1
        click.echo(
            f"{status} {row['sku']:<20} store={row['store_quantity']:<8} ledger={row['ledger_quantity']}"
        )

    click.echo(f"\n{len(rows)} product(s) checked, {mismatches} mismatch(es)")
    if mismatches:
        click.get_current_context().exit(1)


@stock_group.command('low-stock')
@with_appcontext
def low_stock():
    """List active products at or below min_quantity."""
    products = list_low_stock_products()
    if not products:
        click.echo("No products below their minimum quantity")
        return

    click.echo(f"{'SKU':<20} {'Name':<30} {'Qty':>6} {'Min':>6}")
    click.echo("-" * 66)
    for p in products:
        click.echo(f"{p.sku:<20} {p.name[:30]:<30} {p.quantity:>6} {p.min_quantity:>6}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(stock_group)
