# Overview: Flask CLI command groups for bootstrap, inspection, and ledger reconciliation.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create missing tables and write default settings (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo --days 14
#   Create demo products with backfilled receipts and daily sales.
#
# Inspection:
# - python -m flask products list [--all]
# - python -m flask stock show 1
# - python -m flask stock forecast [--days 14]
#   Ranked depletion forecast (default window: last full week).
#
# Reconciliation:
# - python -m flask ledger verify [--product-id 1]
#   Compare stored batch quantities with the ledger. Exit code 1 on mismatch.

import click
from datetime import timedelta
from flask.cli import with_appcontext

from .extensions import db
from .models import Product
from .services import batch_service, forecast_service, products_service, settings_service, stock_service
from .services.forecast_service import ForecastWindow
from .services.ledger_service import verify_ledger_consistency
from .validation import ConflictError
from .time_utils import utcnow


def _money(cents: int) -> str:
    return f"{cents / 100:,.2f}"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create tables if missing and persist default settings."""
    db.create_all()
    settings = settings_service.get_settings()
    click.echo("PASS Schema ready")
    for key, value in settings.items():
        click.echo(f"  {key} = {value}")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the ledger!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


DEMO_PRODUCTS = [
    # name, category, unit, shelf_life_days, threshold, qty, cost_cents, daily_sale
    ("Whole Milk", "INGREDIENT", "L", 10, 10, 60, 120, 3),
    ("Espresso Beans", "INGREDIENT", "kg", 180, 5, 25, 1850, 1),
    ("Paper Cups", "NON_INGREDIENT", "pcs", None, 200, 1000, 8, 45),
]


@system_group.command('seed-demo')
@click.option('--days', type=int, default=14, show_default=True, help='Days of backfilled history')
@with_appcontext
def seed_demo(days):
    """Create demo products, receipts `days` ago and one sale per day since."""
    now = utcnow()
    start = now - timedelta(days=days)

    for name, category, unit, shelf, threshold, qty, cost, daily in DEMO_PRODUCTS:
        try:
            product = products_service.create_product(
                name=name,
                category=category,
                unit=unit,
                shelf_life_days=shelf,
                low_stock_threshold=threshold,
            )
        except ConflictError:
            click.echo(f"SKIP {name} already exists")
            continue

        batch = batch_service.receive_batch(
            product_id=product.id,
            initial_quantity=qty,
            unit_cost_cents=cost,
            production_date=start.date(),
            received_at=start,
            notes="demo seed",
        )

        sold = 0
        for offset in range(1, days + 1):
            if sold + daily > qty:
                break
            batch_service.record_movement(
                product_id=product.id,
                batch_id=batch.id,
                quantity=-daily,
                reason="SALE",
                occurred_at=start + timedelta(days=offset),
            )
            sold += daily

        click.echo(f"PASS {name}: received {qty} {unit} @ {_money(cost)}, sold {sold}")


@click.group('products')
def products_group():
    """Product catalog inspection."""


@products_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Include archived products')
@with_appcontext
def list_products_cli(show_all):
    """List products with current stock."""
    products = products_service.list_products(include_archived=show_all)
    if not products:
        click.echo("No products found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Name':<30} {'Category':<16} {'Unit':<6} {'Qty':>8} {'Value':>12} {'Archived'}")
    click.echo("="*90)
    for p in products:
        details = stock_service.get_stock_details(p.id)
        click.echo(
            f"{p.id:<5} {p.name[:30]:<30} {p.category.value:<16} {p.unit:<6} "
            f"{details['total_quantity']:>8} {_money(details['total_value_cents']):>12} {'Yes' if p.is_archived else 'No'}"
        )
    click.echo("="*90 + "\n")


@click.group('stock')
def stock_group():
    """Stock levels and forecasts."""


@stock_group.command('show')
@click.argument('product_id', type=int)
@with_appcontext
def show_stock_cli(product_id):
    """Per-batch stock of one product."""
    if db.session.get(Product, product_id) is None:
        click.echo(f"FAIL Product ID {product_id} not found")
        raise SystemExit(1)

    details = stock_service.get_stock_details(product_id)
    click.echo(f"{details['product_name']}: {details['total_quantity']} {details['unit']} "
               f"worth {_money(details['total_value_cents'])}")
    for b in details["batches"]:
        click.echo(
            f"  batch {b['id']:<5} qty {b['current_quantity']:>6}/{b['initial_quantity']:<6} "
            f"@ {_money(b['unit_cost_cents'])} expiry {b['expiry_date'] or '-'}"
        )


@stock_group.command('forecast')
@click.option('--days', type=int, default=None, help='Rolling window of N days (default: last full week)')
@with_appcontext
def forecast_cli(days):
    """Ranked depletion forecast for all active products."""
    try:
        window = ForecastWindow.rolling(days) if days is not None else None
        ranked = forecast_service.rank_depletion(window=window)
    except ValueError as e:
        click.echo(f"FAIL Error: {str(e)}")
        raise SystemExit(1)
    if not ranked:
        click.echo("No products found.")
        return

    click.echo(f"Window: {ranked[0].window.start} .. {ranked[0].window.end}")
    for f in ranked:
        if f.status == forecast_service.STATUS_CANNOT_PREDICT:
            when = "cannot predict"
        elif f.status == forecast_service.STATUS_ALREADY_DEPLETED:
            when = "DEPLETED"
        else:
            when = f"{int(f.days_to_depletion)} days ({f.predicted_depletion_date})"
        click.echo(f"  {f.product_name[:30]:<30} stock {f.current_stock:>8} avg/day {f.avg_daily_consumption:>8.2f}  {when}")


@click.group('ledger')
def ledger_group():
    """Ledger reconciliation."""


@ledger_group.command('verify')
@click.option('--product-id', type=int, default=None)
@with_appcontext
def verify_ledger_cli(product_id):
    """Compare each batch's stored quantity with its ledger sum."""
    mismatches = verify_ledger_consistency(product_id=product_id)
    if not mismatches:
        click.echo("PASS Ledger and batch store agree")
        return

    click.echo(f"FAIL {len(mismatches)} batch(es) disagree with the ledger:")
    for m in mismatches:
        click.echo(f"  batch {m['batch_id']} (product {m['product_id']}): stored={m['stored']} derived={m['derived']}")
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(products_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(ledger_group)
