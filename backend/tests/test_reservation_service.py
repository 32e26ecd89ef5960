# Overview: Pytest coverage for reservations (oversell prevention and release clamping).

import threading

import pytest

from app import create_app
from app.cache import InMemoryTTLCache
from app.config import TestConfig
from app.errors import InsufficientStockError, NotFoundError, ValidationError
from app.extensions import db
from app.models import Location, Organization, StockMovement
from app.services.catalog_service import create_product, get_or_create_default_variant
from app.services.inventory_service import get_summary
from app.services.ledger_service import record_movement
from app.services.reservation_service import get_reserved_stock, release_stock, reserve_stock
from app.services.tenant_service import TenantScope


class TestReserve:
    def test_oversell_rejected(self, scope_a, stocked_a):
        product, variant, location = stocked_a

        with pytest.raises(InsufficientStockError) as exc:
            reserve_stock(scope_a, product.id, location.id, variant.id, 6)
        assert exc.value.available == 5
        assert exc.value.requested == 6
        assert exc.value.details["shortfall"] == 1

        summary = reserve_stock(scope_a, product.id, location.id, variant.id, 5)
        assert summary["reserved_stock"] == 5
        assert summary["available_stock"] == 0

        with pytest.raises(InsufficientStockError) as exc:
            reserve_stock(scope_a, product.id, location.id, variant.id, 1)
        assert exc.value.available == 0
        assert get_reserved_stock(scope_a, product.id, location.id, variant.id) == 5

    def test_reservation_writes_no_movement(self, scope_a, stocked_a):
        product, variant, location = stocked_a
        before = db.session.query(StockMovement).count()

        reserve_stock(scope_a, product.id, location.id, variant.id, 2)

        assert db.session.query(StockMovement).count() == before
        assert get_summary(scope_a, product.id, location.id, variant.id)["stock_count"] == 5

    def test_reserve_without_summary_row_uses_ledger(self, scope_a, product_a, variant_a, location_a):
        with pytest.raises(InsufficientStockError) as exc:
            reserve_stock(scope_a, product_a.id, location_a.id, variant_a.id, 1)
        assert exc.value.available == 0

    def test_non_positive_quantity_rejected(self, scope_a, stocked_a):
        product, variant, location = stocked_a
        with pytest.raises(ValidationError):
            reserve_stock(scope_a, product.id, location.id, variant.id, 0)

    def test_cross_tenant_reservation_is_not_found(self, scope_b, stocked_a):
        product, variant, location = stocked_a
        with pytest.raises(NotFoundError):
            reserve_stock(scope_b, product.id, location.id, variant.id, 1)


class TestRelease:
    def test_release_returns_units(self, scope_a, stocked_a):
        product, variant, location = stocked_a
        reserve_stock(scope_a, product.id, location.id, variant.id, 4)

        summary = release_stock(scope_a, product.id, location.id, variant.id, 3)
        assert summary["reserved_stock"] == 1
        assert summary["available_stock"] == 4

    def test_release_clamps_at_zero(self, scope_a, stocked_a):
        product, variant, location = stocked_a
        reserve_stock(scope_a, product.id, location.id, variant.id, 2)

        release_stock(scope_a, product.id, location.id, variant.id, 2)
        summary = release_stock(scope_a, product.id, location.id, variant.id, 5)

        assert summary["reserved_stock"] == 0
        assert summary["available_stock"] == 5


@pytest.fixture
def file_app(tmp_path):
    """App bound to a file-backed SQLite database so threads share one store."""
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'reserve.sqlite3'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 5, "check_same_thread": False}}
        TRANSACTION_RETRY_ATTEMPTS = 6

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


class TestConcurrentReserve:
    def test_last_units_go_to_exactly_one_caller(self, file_app):
        ownership = InMemoryTTLCache()
        with file_app.app_context():
            org = Organization(name="Race Org", code="RACE", is_active=True)
            db.session.add(org)
            db.session.commit()
            scope = TenantScope(org.id, ownership)
            location = Location(org_id=org.id, name="Race Outlet", code="R1")
            db.session.add(location)
            db.session.commit()
            product = create_product(scope, sku="RACE-001", name="Race Product", base_price_cents=500)
            variant = get_or_create_default_variant(scope, product.id)
            record_movement(
                scope, product_id=product.id, variant_id=variant.id, location_id=location.id,
                movement_type="PURCHASE", quantity=2,
            )
            key = (org.id, product.id, location.id, variant.id)

        start = threading.Barrier(2, timeout=10)
        outcomes = []
        errors = []

        def claim_last_units():
            org_id, product_id, location_id, variant_id = key
            with file_app.app_context():
                try:
                    start.wait()
                    reserve_stock(TenantScope(org_id, ownership), product_id, location_id, variant_id, 2)
                    outcomes.append("reserved")
                except InsufficientStockError:
                    outcomes.append("insufficient")
                except Exception as e:
                    errors.append(repr(e))
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=claim_last_units) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert errors == []
        assert sorted(outcomes) == ["insufficient", "reserved"]
        with file_app.app_context():
            org_id, product_id, location_id, variant_id = key
            summary = get_summary(TenantScope(org_id, ownership), product_id, location_id, variant_id)
            assert summary["reserved_stock"] == 2
            assert summary["available_stock"] == 0
