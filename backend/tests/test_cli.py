# Overview: Pytest coverage for the tenants/inventory/orders CLI groups.

from app.extensions import db
from app.models import Location, Organization
from app.services.inventory_service import get_summary
from app.services.order_service import create_order


def test_tenant_bootstrap(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["tenants", "create", "--name", "Gamma", "--code", "GAMMA"])
    assert "PASS Created organization" in result.output
    org = db.session.query(Organization).filter_by(code="GAMMA").one()

    result = runner.invoke(args=["tenants", "add-location", "--org-id", str(org.id), "--name", "Main", "--code", "M"])
    assert "PASS Created location" in result.output
    assert db.session.query(Location).filter_by(org_id=org.id).count() == 1

    result = runner.invoke(args=["tenants", "create", "--name", "Gamma 2", "--code", "GAMMA"])
    assert "already exists" in result.output


def test_inventory_receive_adjust_and_show(app, scope_a, product_a, variant_a, location_a):
    runner = app.test_cli_runner()
    key = [
        "--org-id", str(scope_a.org_id),
        "--location-id", str(location_a.id),
        "--product-id", str(product_a.id),
        "--variant-id", str(variant_a.id),
    ]

    result = runner.invoke(args=["inventory", "receive", *key, "--quantity", "10", "--reference", "GRN-1"])
    assert "PASS Recorded 1 receipt movement" in result.output

    result = runner.invoke(args=["inventory", "adjust", *key, "--physical", "7", "--reason", "Cycle count"])
    assert "Adjusted by -3" in result.output

    result = runner.invoke(args=["inventory", "adjust", *key, "--physical", "7", "--reason", "Cycle count"])
    assert "Already reconciled" in result.output

    result = runner.invoke(
        args=["inventory", "show", "--org-id", str(scope_a.org_id), "--location-id", str(location_a.id)]
    )
    assert result.exit_code == 0
    assert get_summary(scope_a, product_a.id, location_a.id, variant_a.id)["stock_count"] == 7

    result = runner.invoke(args=["inventory", "verify", "--org-id", str(scope_a.org_id)])
    assert "All inventory summaries match" in result.output


def test_inventory_transfer_reports_shortfall(app, scope_a, stocked_a, warehouse_a):
    product, variant, location = stocked_a
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        "inventory", "transfer",
        "--org-id", str(scope_a.org_id),
        "--from-location", str(location.id),
        "--to-location", str(warehouse_a.id),
        "--product-id", str(product.id),
        "--variant-id", str(variant.id),
        "--quantity", "9",
    ])

    assert "FAIL Insufficient stock. Available: 5, Requested: 9" in result.output


def test_orders_advance_and_cancel(app, scope_a, stocked_a):
    product, variant, location = stocked_a
    order = create_order(
        scope_a,
        items=[{"product_id": product.id, "variant_id": variant.id, "quantity": 2}],
        location_id=location.id,
    )
    runner = app.test_cli_runner()
    ids = ["--org-id", str(scope_a.org_id), "--order-id", str(order.id)]

    result = runner.invoke(args=["orders", "advance", *ids, "--status", "processing"])
    assert "is now processing" in result.output

    result = runner.invoke(args=["orders", "show", *ids])
    assert "inventory_updated=yes" in result.output

    result = runner.invoke(args=["orders", "cancel", *ids, "--reason", "Duplicate"])
    assert "cancelled" in result.output
    assert get_summary(scope_a, product.id, location.id, variant.id)["stock_count"] == 5


def test_unknown_tenant_fails(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["inventory", "verify", "--org-id", "424242"])

    assert result.exit_code != 0
    assert "Organization not found" in result.output
