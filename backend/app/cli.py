# Overview: Flask CLI command groups for tenant bootstrap, inventory inspection and repair, and orders.

# backend/app/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "app:create_app".
# - Use: python -m flask <group> <command> [options]
#
# Tenant bootstrap:
# - python -m flask tenants create --name "Acme Corp" --code "ACME"
#   Create a new organization (tenant).
# - python -m flask tenants add-location --org-id 1 --name "Main Outlet" --code "MAIN"
#   Add a stock-holding location to a tenant.
# - python -m flask tenants list
#   List all organizations with their location counts.
#
# Inventory:
# - python -m flask inventory show --org-id 1 --location-id 1
#   Show stock/reserved/available per product variant at a location.
# - python -m flask inventory receive --org-id 1 --location-id 1 --product-id 3 --variant-id 4 --quantity 10 --reference GRN-1
#   Book received goods as a PURCHASE movement.
# - python -m flask inventory adjust --org-id 1 --location-id 1 --product-id 3 --variant-id 4 --physical 7 --reason "Cycle count"
#   Reconcile system stock with a physical count.
# - python -m flask inventory transfer --org-id 1 --from-location 1 --to-location 2 --product-id 3 --variant-id 4 --quantity 2
#   Move stock between two locations of the same tenant.
# - python -m flask inventory verify --org-id 1
#   Report summaries that drifted from the movement ledger.
# - python -m flask inventory rebuild --org-id 1
#   Recompute drifted summaries from the movement ledger.
#
# Orders:
# - python -m flask orders show --org-id 1 --order-id 5
# - python -m flask orders advance --org-id 1 --order-id 5 --status processing
# - python -m flask orders cancel --org-id 1 --order-id 5 --reason "Customer request"

import click
from flask.cli import with_appcontext

from .errors import ServiceError
from .extensions import db
from .models import Location, Organization
from .services.adjustment_service import adjust_stock
from .services.inventory_service import list_location_inventory, rebuild_summaries, verify_ledger_consistency
from .services.ledger_service import record_purchase_receipt
from .services.order_service import ORDER_STATUSES, cancel_order, get_order, update_order_status
from .services.tenant_service import require_active_tenant
from .services.transfer_service import transfer_stock


def _scope_or_exit(org_id: int):
    try:
        return require_active_tenant(org_id)
    except ServiceError as e:
        raise click.ClickException(e.message)


def _fail(e: ServiceError) -> None:
    click.echo(f"FAIL {e.message}")
    for key, value in e.details.items():
        click.echo(f"     {key}: {value}")


# =============================================================================
# TENANT COMMANDS
# =============================================================================

@click.group('tenants')
def tenants_group():
    """Organization (tenant) and location bootstrap commands."""


@tenants_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_tenant(name, code):
    """Create a new organization (tenant)."""
    existing = db.session.query(Organization).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Organization with code '{code}' already exists")
        return

    org = Organization(name=name, code=code, is_active=True)
    db.session.add(org)
    db.session.commit()
    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


@tenants_group.command('add-location')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--name', required=True, help='Location name')
@click.option('--code', default=None, help='Location code (unique per org)')
@click.option('--type', 'location_type', type=click.Choice(['OUTLET', 'WAREHOUSE']), default='OUTLET')
@with_appcontext
def add_location(org_id, name, code, location_type):
    """Add a stock-holding location to an organization."""
    scope = _scope_or_exit(org_id)
    existing = scope.query(Location).filter_by(name=name).first()
    if existing:
        click.echo(f"FAIL Location '{name}' already exists (ID: {existing.id})")
        return

    location = Location(org_id=scope.org_id, name=name, code=code, location_type=location_type)
    db.session.add(location)
    db.session.commit()
    click.echo(f"PASS Created location: {location.name} (ID: {location.id}, Type: {location.location_type})")


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id.asc()).all()
    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Locations'}")
    for org in orgs:
        location_count = db.session.query(Location).filter_by(org_id=org.id).count()
        active_str = "Yes" if org.is_active else "No"
        click.echo(f"{org.id:<5} {org.name:<30} {org.code or '-':<15} {active_str:<8} {location_count}")


# =============================================================================
# INVENTORY COMMANDS
# =============================================================================

@click.group('inventory')
def inventory_group():
    """Stock inspection, reconciliation and repair commands."""


@inventory_group.command('show')
@click.option('--org-id', type=int, required=True)
@click.option('--location-id', type=int, required=True)
@click.option('--all', 'include_empty', is_flag=True, help='Include zero rows')
@with_appcontext
def show_inventory(org_id, location_id, include_empty):
    """Show stock, reserved and available quantities at a location."""
    scope = _scope_or_exit(org_id)
    try:
        rows = list_location_inventory(scope, location_id, include_empty=include_empty)
    except ServiceError as e:
        _fail(e)
        return

    if not rows:
        click.echo("No stock at this location.")
        return

    click.echo(f"{'Product':<10} {'Variant':<10} {'Stock':>8} {'Reserved':>10} {'Available':>10}")
    for row in rows:
        click.echo(
            f"{row['product_id']:<10} {row['variant_id']:<10} {row['stock_count']:>8} "
            f"{row['reserved_stock']:>10} {row['available_stock']:>10}"
        )


@inventory_group.command('receive')
@click.option('--org-id', type=int, required=True)
@click.option('--location-id', type=int, required=True)
@click.option('--product-id', type=int, required=True)
@click.option('--variant-id', type=int, required=True)
@click.option('--quantity', type=int, required=True)
@click.option('--reference', required=True, help='Goods receipt reference')
@with_appcontext
def receive_inventory(org_id, location_id, product_id, variant_id, quantity, reference):
    """Book received goods into a location."""
    scope = _scope_or_exit(org_id)
    try:
        movements = record_purchase_receipt(
            scope,
            reference_id=reference,
            items=[{
                "product_id": product_id,
                "variant_id": variant_id,
                "location_id": location_id,
                "quantity": quantity,
            }],
        )
    except ServiceError as e:
        _fail(e)
        return
    click.echo(f"PASS Recorded {len(movements)} receipt movement(s) for {reference}")


@inventory_group.command('adjust')
@click.option('--org-id', type=int, required=True)
@click.option('--location-id', type=int, required=True)
@click.option('--product-id', type=int, required=True)
@click.option('--variant-id', type=int, required=True)
@click.option('--physical', 'physical_quantity', type=int, required=True, help='Physically counted quantity')
@click.option('--reason', required=True)
@with_appcontext
def adjust_inventory(org_id, location_id, product_id, variant_id, physical_quantity, reason):
    """Reconcile system stock with a physical count."""
    scope = _scope_or_exit(org_id)
    try:
        result = adjust_stock(
            scope,
            location_id=location_id,
            product_id=product_id,
            variant_id=variant_id,
            physical_quantity=physical_quantity,
            reason=reason,
        )
    except ServiceError as e:
        _fail(e)
        return

    if result["movement_id"] is None:
        click.echo(f"PASS Already reconciled (stock {result['new_stock_count']})")
    else:
        click.echo(
            f"PASS Adjusted by {result['difference']:+d}, stock now {result['new_stock_count']} "
            f"(movement {result['movement_id']})"
        )


@inventory_group.command('transfer')
@click.option('--org-id', type=int, required=True)
@click.option('--from-location', 'source_location_id', type=int, required=True)
@click.option('--to-location', 'destination_location_id', type=int, required=True)
@click.option('--product-id', type=int, required=True)
@click.option('--variant-id', type=int, required=True)
@click.option('--quantity', type=int, required=True)
@click.option('--notes', default=None)
@with_appcontext
def transfer_inventory(org_id, source_location_id, destination_location_id, product_id, variant_id, quantity, notes):
    """Move stock between two locations."""
    scope = _scope_or_exit(org_id)
    try:
        result = transfer_stock(
            scope,
            source_location_id=source_location_id,
            destination_location_id=destination_location_id,
            items=[{"product_id": product_id, "variant_id": variant_id, "quantity": quantity}],
            notes=notes,
        )
    except ServiceError as e:
        _fail(e)
        return
    click.echo(f"PASS Transfer {result['transfer_id']} recorded ({len(result['movements'])} item(s))")


@inventory_group.command('verify')
@click.option('--org-id', type=int, required=True)
@with_appcontext
def verify_inventory(org_id):
    """Report summaries that differ from the movement ledger."""
    scope = _scope_or_exit(org_id)
    drift = verify_ledger_consistency(scope)
    if not drift:
        click.echo("PASS All inventory summaries match the ledger")
        return

    click.echo(f"WARN {len(drift)} drifted summaries:")
    for entry in drift:
        click.echo(
            f"  product {entry['product_id']} variant {entry['variant_id']} location {entry['location_id']}: "
            f"summary {entry['actual_stock_count']}, ledger {entry['expected_stock_count']}"
        )


@inventory_group.command('rebuild')
@click.option('--org-id', type=int, required=True)
@with_appcontext
def rebuild_inventory(org_id):
    """Recompute drifted summaries from the movement ledger."""
    scope = _scope_or_exit(org_id)
    try:
        fixed = rebuild_summaries(scope)
    except ServiceError as e:
        _fail(e)
        return
    click.echo(f"PASS Rebuilt {fixed} summaries")


# =============================================================================
# ORDER COMMANDS
# =============================================================================

@click.group('orders')
def orders_group():
    """Order inspection and lifecycle commands."""


@orders_group.command('show')
@click.option('--org-id', type=int, required=True)
@click.option('--order-id', type=int, required=True)
@with_appcontext
def show_order(org_id, order_id):
    """Show an order with its lines."""
    scope = _scope_or_exit(org_id)
    try:
        order = get_order(scope, order_id)
    except ServiceError as e:
        _fail(e)
        return

    click.echo(
        f"{order.order_number} [{order.order_type}] status={order.status} "
        f"payment={order.payment_status} total={order.total_cents} "
        f"inventory_updated={'yes' if order.inventory_updated else 'no'}"
    )
    for line in order.lines:
        click.echo(
            f"  product {line.product_id} variant {line.variant_id} @ location {line.location_id}: "
            f"{line.quantity} x {line.unit_price_cents} (+tax {line.tax_cents}) = {line.line_total_cents}"
        )


@orders_group.command('advance')
@click.option('--org-id', type=int, required=True)
@click.option('--order-id', type=int, required=True)
@click.option('--status', type=click.Choice(ORDER_STATUSES), required=True)
@click.option('--tracking-number', default=None)
@with_appcontext
def advance_order(org_id, order_id, status, tracking_number):
    """Move an order to a new status."""
    scope = _scope_or_exit(org_id)
    try:
        order = update_order_status(scope, order_id, status, tracking_number=tracking_number)
    except ServiceError as e:
        _fail(e)
        return
    click.echo(f"PASS Order {order.order_number} is now {order.status}")


@orders_group.command('cancel')
@click.option('--org-id', type=int, required=True)
@click.option('--order-id', type=int, required=True)
@click.option('--reason', default=None)
@with_appcontext
def cancel_order_cli(org_id, order_id, reason):
    """Cancel an order, releasing or reversing its stock."""
    scope = _scope_or_exit(org_id)
    try:
        order = cancel_order(scope, order_id, reason=reason)
    except ServiceError as e:
        _fail(e)
        return
    click.echo(f"PASS Order {order.order_number} cancelled")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(tenants_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(orders_group)
