# Overview: Pytest coverage for the stock ledger and the inventory aggregator.

import pytest

from app.errors import NotFoundError, ValidationError
from app.extensions import db
from app.models import InventorySummary, StockMovement
from app.models.inventory import MOVEMENT_ADJUSTMENT_OUT, MOVEMENT_PURCHASE, MOVEMENT_SALE
from app.services.inventory_service import (
    get_summary,
    list_location_inventory,
    rebuild_summaries,
    verify_ledger_consistency,
)
from app.services.ledger_service import (
    get_current_stock,
    list_movements,
    record_movement,
    record_order_movements,
    record_purchase_receipt,
)


def _record(scope, product, variant, location, movement_type, quantity):
    return record_movement(
        scope,
        product_id=product.id,
        variant_id=variant.id,
        location_id=location.id,
        movement_type=movement_type,
        quantity=quantity,
    )


class TestRecordMovement:
    def test_summary_tracks_ledger_sum(self, scope_a, product_a, variant_a, location_a):
        _record(scope_a, product_a, variant_a, location_a, MOVEMENT_PURCHASE, 10)
        _record(scope_a, product_a, variant_a, location_a, MOVEMENT_SALE, -3)
        _record(scope_a, product_a, variant_a, location_a, MOVEMENT_ADJUSTMENT_OUT, -2)

        assert get_current_stock(scope_a, product_a.id, location_a.id, variant_a.id) == 5
        summary = get_summary(scope_a, product_a.id, location_a.id, variant_a.id)
        assert summary["stock_count"] == 5
        assert summary["reserved_stock"] == 0
        assert summary["available_stock"] == 5

    def test_ledger_does_not_check_availability(self, scope_a, product_a, variant_a, location_a):
        _record(scope_a, product_a, variant_a, location_a, MOVEMENT_SALE, -4)

        assert get_summary(scope_a, product_a.id, location_a.id, variant_a.id)["stock_count"] == -4

    def test_zero_quantity_rejected(self, scope_a, product_a, variant_a, location_a):
        with pytest.raises(ValidationError):
            _record(scope_a, product_a, variant_a, location_a, MOVEMENT_PURCHASE, 0)
        assert db.session.query(StockMovement).count() == 0

    def test_missing_variant_rejected(self, scope_a, product_a, location_a):
        with pytest.raises(ValidationError):
            record_movement(
                scope_a,
                product_id=product_a.id,
                variant_id=None,
                location_id=location_a.id,
                movement_type=MOVEMENT_PURCHASE,
                quantity=1,
            )

    def test_unknown_movement_type_rejected(self, scope_a, product_a, variant_a, location_a):
        with pytest.raises(ValidationError):
            _record(scope_a, product_a, variant_a, location_a, "GIFT", 1)

    def test_fractional_quantity_rejected(self, scope_a, product_a, variant_a, location_a):
        with pytest.raises(ValidationError):
            _record(scope_a, product_a, variant_a, location_a, MOVEMENT_PURCHASE, 1.5)

    def test_cross_tenant_location_is_not_found(self, scope_a, product_a, variant_a, location_b):
        with pytest.raises(NotFoundError):
            _record(scope_a, product_a, variant_a, location_b, MOVEMENT_PURCHASE, 1)
        assert db.session.query(StockMovement).count() == 0

    def test_list_movements_filters_by_reference(self, scope_a, product_a, variant_a, location_a):
        record_movement(
            scope_a,
            product_id=product_a.id,
            variant_id=variant_a.id,
            location_id=location_a.id,
            movement_type=MOVEMENT_PURCHASE,
            quantity=3,
            reference_type="goods_receipt",
            reference_id="GRN-7",
        )
        _record(scope_a, product_a, variant_a, location_a, MOVEMENT_PURCHASE, 1)

        rows = list_movements(scope_a, reference_id="GRN-7")
        assert [m.quantity for m in rows] == [3]


class TestOrderAndReceiptMovements:
    def test_sales_order_movements_are_negative(self, scope_a, product_a, variant_a, location_a):
        items = [{"product_id": product_a.id, "variant_id": variant_a.id, "location_id": location_a.id, "quantity": 2}]
        movements = record_order_movements(scope_a, order_id=42, order_type="sales", items=items)

        assert [(m.movement_type, m.quantity, m.reference_id) for m in movements] == [("SALE", -2, "42")]

    def test_return_order_movements_are_positive(self, scope_a, product_a, variant_a, location_a):
        items = [{"product_id": product_a.id, "variant_id": variant_a.id, "location_id": location_a.id, "quantity": 2}]
        movements = record_order_movements(scope_a, order_id=43, order_type="return", items=items)

        assert [(m.movement_type, m.quantity) for m in movements] == [("RETURN", 2)]

    def test_order_movement_requires_variant(self, scope_a, product_a, location_a):
        items = [{"product_id": product_a.id, "location_id": location_a.id, "quantity": 2}]
        with pytest.raises(ValidationError):
            record_order_movements(scope_a, order_id=44, order_type="sales", items=items)

    def test_receipt_skips_non_positive_lines(self, scope_a, product_a, variant_a, location_a):
        items = [
            {"product_id": product_a.id, "variant_id": variant_a.id, "location_id": location_a.id, "quantity": 4},
            {"product_id": product_a.id, "variant_id": variant_a.id, "location_id": location_a.id, "quantity": 0},
        ]
        movements = record_purchase_receipt(scope_a, reference_id="GRN-1", items=items)

        assert len(movements) == 1
        assert get_current_stock(scope_a, product_a.id, location_a.id, variant_a.id) == 4


class TestAggregatorRepair:
    def test_verify_and_rebuild_fix_drift(self, scope_a, stocked_a):
        product, variant, location = stocked_a
        row = db.session.query(InventorySummary).filter_by(
            product_id=product.id, variant_id=variant.id, location_id=location.id
        ).one()
        row.stock_count = 99
        db.session.commit()

        drift = verify_ledger_consistency(scope_a)
        assert len(drift) == 1
        assert drift[0]["expected_stock_count"] == 5
        assert drift[0]["actual_stock_count"] == 99

        assert rebuild_summaries(scope_a) == 1
        assert verify_ledger_consistency(scope_a) == []
        assert get_summary(scope_a, product.id, location.id, variant.id)["stock_count"] == 5

    def test_list_location_inventory(self, scope_a, stocked_a):
        product, variant, location = stocked_a

        rows = list_location_inventory(scope_a, location.id)
        assert len(rows) == 1
        assert rows[0]["product_id"] == product.id
        assert rows[0]["stock_count"] == 5

    def test_summary_without_row_reports_ledger(self, scope_a, product_a, variant_a, location_a):
        summary = get_summary(scope_a, product_a.id, location_a.id, variant_a.id)
        assert summary["stock_count"] == 0
        assert summary["reserved_stock"] == 0
