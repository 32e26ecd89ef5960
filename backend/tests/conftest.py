"""
Pytest fixtures for the inventory/order core.

Provides an app bound to in-memory SQLite, a clean database per test, two
tenants with their own locations, and stocked products.
"""

import pytest

from app import create_app
from app.config import TestConfig
from app.extensions import db, tenant_cache
from app.models import Location, Organization
from app.models.inventory import MOVEMENT_PURCHASE
from app.services.catalog_service import create_product, get_or_create_default_variant
from app.services.ledger_service import record_movement
from app.services.tenant_service import TenantScope


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        tenant_cache.clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Acme Corp", code="ACME", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Beta Inc", code="BETA", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def scope_a(org_a):
    return TenantScope(org_a.id)


@pytest.fixture(scope='function')
def scope_b(org_b):
    return TenantScope(org_b.id)


@pytest.fixture(scope='function')
def location_a(db_session, org_a):
    """Main outlet of Organization A."""
    location = Location(org_id=org_a.id, name="Outlet A1", code="A1")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def warehouse_a(db_session, org_a, location_a):
    """Second location of Organization A (created after location_a)."""
    location = Location(org_id=org_a.id, name="Warehouse A2", code="A2", location_type="WAREHOUSE")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def location_b(db_session, org_b):
    """Outlet of Organization B."""
    location = Location(org_id=org_b.id, name="Outlet B1", code="B1")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def product_a(scope_a):
    """Product in Organization A, base price 10.00."""
    return create_product(scope_a, sku="PROD-A-001", name="Product A", base_price_cents=1000)


@pytest.fixture(scope='function')
def variant_a(scope_a, product_a):
    """DEFAULT variant of product_a."""
    return get_or_create_default_variant(scope_a, product_a.id)


@pytest.fixture(scope='function')
def product_b(scope_b):
    """Product in Organization B."""
    return create_product(scope_b, sku="PROD-B-001", name="Product B", base_price_cents=2000)


@pytest.fixture(scope='function')
def variant_b(scope_b, product_b):
    return get_or_create_default_variant(scope_b, product_b.id)


@pytest.fixture(scope='function')
def receive():
    """Helper: book a PURCHASE movement for a key."""
    def _receive(scope, product, variant, location, quantity):
        return record_movement(
            scope,
            product_id=product.id,
            variant_id=variant.id,
            location_id=location.id,
            movement_type=MOVEMENT_PURCHASE,
            quantity=quantity,
            reference_type="test",
            reference_id="seed",
        )
    return _receive


@pytest.fixture(scope='function')
def stocked_a(scope_a, product_a, variant_a, location_a, receive):
    """product_a / variant_a with 5 units on hand at location_a."""
    receive(scope_a, product_a, variant_a, location_a, 5)
    return product_a, variant_a, location_a
