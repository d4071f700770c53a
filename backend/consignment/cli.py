# Overview: Flask CLI command groups for bootstrap, stock intake, and ledger maintenance.

# backend/consignment/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenant management:
# - python -m flask tenants list
# - python -m flask tenants create --name "Acme Wholesale" --code "ACME"
#
# Catalog and stock:
# - python -m flask products create --tenant-id 1 --sku "TEE-BLK-M" --name "Black tee M" --price-cents 2000
# - python -m flask stock receive --tenant-id 1 --product-id 1 --quantity 250
#   Add received units to available stock.
# - python -m flask clients create --tenant-id 1 --business-name "Corner Shop" --credit-limit-cents 500000
#
# Ledger maintenance:
# - python -m flask ledger verify --tenant-id 1
#   Compare ProductStock.fronted_quantity with ACTIVE fronted records for every product.
# - python -m flask ledger release-stale-locks
#   Delete expired reconciliation locks left by crashed fallback runs.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Tenant, Product, Client, ProductStock
from .services import stock_service, balance_service, reconciliation_service
from .services.concurrency import run_in_transaction
from .services.errors import LedgerError
from .validation import ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask tenants create' to add a tenant.")


# =============================================================================
# TENANT MANAGEMENT COMMANDS
# =============================================================================

@click.group('tenants')
def tenants_group():
    """Tenant management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = db.session.query(Tenant).all()

    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active'}")
    click.echo("="*70)

    for tenant in tenants:
        active_str = "Yes" if tenant.is_active else "No"
        click.echo(f"{tenant.id:<5} {tenant.name:<30} {tenant.code or '-':<15} {active_str}")

    click.echo("="*70 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_tenant_cli(name, code):
    """Create a new tenant."""
    existing = db.session.query(Tenant).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Tenant with code '{code}' already exists")
        return

    tenant = Tenant(name=name, code=code, is_active=True)
    db.session.add(tenant)
    db.session.commit()

    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")


# =============================================================================
# CATALOG AND STOCK COMMANDS
# =============================================================================

@click.group('products')
def products_group():
    """Product catalog commands."""


@products_group.command('create')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--sku', required=True, help='SKU (unique within tenant)')
@click.option('--name', required=True, help='Product name')
@click.option('--price-cents', type=int, help='Default unit price in cents')
@with_appcontext
def create_product_cli(tenant_id, sku, name, price_cents):
    """Create a product."""
    if not db.session.get(Tenant, tenant_id):
        click.echo(f"FAIL Tenant ID {tenant_id} not found")
        return

    existing = db.session.query(Product).filter_by(tenant_id=tenant_id, sku=sku).first()
    if existing:
        click.echo(f"FAIL Product with SKU '{sku}' already exists in this tenant")
        return

    product = Product(tenant_id=tenant_id, sku=sku, name=name, price_cents=price_cents, is_active=True)
    db.session.add(product)
    db.session.commit()

    click.echo(f"PASS Created product: {product.name} (ID: {product.id}, SKU: {product.sku})")


@click.group('stock')
def stock_group():
    """Stock intake commands."""


@stock_group.command('receive')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--product-id', type=int, required=True, help='Product ID')
@click.option('--quantity', type=int, required=True, help='Units received')
@with_appcontext
def receive_stock_cli(tenant_id, product_id, quantity):
    """Add received units to available stock."""
    product = db.session.query(Product).filter_by(id=product_id, tenant_id=tenant_id).first()
    if not product:
        click.echo(f"FAIL Product ID {product_id} not found in tenant {tenant_id}")
        return

    try:
        stock = run_in_transaction(lambda: stock_service.receive_stock(tenant_id, product_id, quantity))
    except (ValidationError, LedgerError) as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(
        f"PASS Received {quantity} x {product.sku}: "
        f"available={stock.available_quantity}, fronted={stock.fronted_quantity}"
    )


@click.group('clients')
def clients_group():
    """Client (reseller) commands."""


@clients_group.command('create')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--business-name', required=True, help='Business name')
@click.option('--contact-name', help='Contact person')
@click.option('--phone', help='Phone number')
@click.option('--credit-limit-cents', type=int, default=0, show_default=True, help='Credit limit (0 = no limit)')
@with_appcontext
def create_client_cli(tenant_id, business_name, contact_name, phone, credit_limit_cents):
    """Create a client and its balance row."""
    if not db.session.get(Tenant, tenant_id):
        click.echo(f"FAIL Tenant ID {tenant_id} not found")
        return

    def _create():
        client = Client(
            tenant_id=tenant_id,
            business_name=business_name,
            contact_name=contact_name,
            phone=phone,
            is_active=True,
        )
        db.session.add(client)
        db.session.flush()
        balance_service.set_credit_limit(tenant_id, client.id, credit_limit_cents)
        return client

    try:
        client = run_in_transaction(_create)
    except (ValidationError, LedgerError) as e:
        click.echo(f"FAIL {e}")
        return

    limit_str = f"{credit_limit_cents} cents" if credit_limit_cents else "none"
    click.echo(f"PASS Created client: {client.business_name} (ID: {client.id}, credit limit: {limit_str})")


# =============================================================================
# LEDGER MAINTENANCE COMMANDS
# =============================================================================

@click.group('ledger')
def ledger_group():
    """Ledger audit and maintenance commands."""


@ledger_group.command('verify')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@with_appcontext
def verify_ledger_cli(tenant_id):
    """
    Audit fronted stock counters against ACTIVE fronted records.

    Read-only: drift is reported, never corrected. Exits non-zero on drift.
    """
    product_ids = [
        row[0] for row in db.session.query(ProductStock.product_id).filter_by(tenant_id=tenant_id).all()
    ]
    if not product_ids:
        click.echo("No stock rows found.")
        return

    drifted = 0
    click.echo("\n" + "="*70)
    click.echo(f"{'Product':<10} {'Fronted':<12} {'Expected':<12} {'Drift':<8} {'Status'}")
    click.echo("="*70)
    for product_id in sorted(product_ids):
        check = stock_service.verify_fronted_invariant(tenant_id, product_id)
        status = "OK" if check["ok"] else "DRIFT"
        if not check["ok"]:
            drifted += 1
        click.echo(
            f"{product_id:<10} {check['fronted_quantity']:<12} {check['expected_fronted_quantity']:<12} "
            f"{check['drift']:<8} {status}"
        )
    click.echo("="*70 + "\n")

    if drifted:
        click.echo(f"FAIL {drifted} product(s) drifted from the ledger")
        raise SystemExit(1)
    click.echo("PASS All fronted stock counters match the ledger")


@ledger_group.command('release-stale-locks')
@with_appcontext
def release_stale_locks_cli():
    """Delete expired reconciliation locks."""
    removed = reconciliation_service.release_stale_locks()
    click.echo(f"Released {removed} expired reconciliation lock(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(products_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(clients_group)
    app.cli.add_command(ledger_group)
