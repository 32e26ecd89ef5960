# Overview: Pytest coverage for atomic inter-location transfers.

import pytest

from app.errors import InsufficientStockError, NotFoundError, ValidationError
from app.extensions import db
from app.models import StockMovement
from app.services.inventory_service import get_summary
from app.services.transfer_service import transfer_stock


def _stock(scope, product, variant, location):
    return get_summary(scope, product.id, location.id, variant.id)["stock_count"]


class TestTransferStock:
    def test_transfer_conserves_quantity(self, scope_a, stocked_a, warehouse_a):
        product, variant, location = stocked_a

        result = transfer_stock(
            scope_a,
            source_location_id=location.id,
            destination_location_id=warehouse_a.id,
            items=[{"product_id": product.id, "variant_id": variant.id, "quantity": 3}],
        )

        assert _stock(scope_a, product, variant, location) == 2
        assert _stock(scope_a, product, variant, warehouse_a) == 3

        movements = db.session.query(StockMovement).filter_by(reference_id=result["transfer_id"]).all()
        assert sorted((m.movement_type, m.quantity) for m in movements) == [
            ("TRANSFER_IN", 3),
            ("TRANSFER_OUT", -3),
        ]
        assert result["movements"][0]["quantity"] == 3
        assert result["movements"][0]["transfer_out_id"] != result["movements"][0]["transfer_in_id"]

    def test_insufficient_source_writes_nothing(self, scope_a, product_a, variant_a, location_a, warehouse_a, receive):
        receive(scope_a, product_a, variant_a, location_a, 2)
        before = db.session.query(StockMovement).count()

        with pytest.raises(InsufficientStockError) as exc:
            transfer_stock(
                scope_a,
                source_location_id=location_a.id,
                destination_location_id=warehouse_a.id,
                items=[{"product_id": product_a.id, "variant_id": variant_a.id, "quantity": 3}],
            )
        assert exc.value.available == 2
        assert exc.value.requested == 3

        assert db.session.query(StockMovement).count() == before
        assert _stock(scope_a, product_a, variant_a, location_a) == 2
        assert _stock(scope_a, product_a, variant_a, warehouse_a) == 0

    def test_duplicate_lines_are_checked_together(self, scope_a, stocked_a, warehouse_a):
        product, variant, location = stocked_a
        line = {"product_id": product.id, "variant_id": variant.id, "quantity": 3}

        with pytest.raises(InsufficientStockError):
            transfer_stock(
                scope_a,
                source_location_id=location.id,
                destination_location_id=warehouse_a.id,
                items=[line, dict(line)],
            )
        assert _stock(scope_a, product, variant, location) == 5

    def test_same_location_rejected(self, scope_a, stocked_a):
        product, variant, location = stocked_a
        with pytest.raises(ValidationError):
            transfer_stock(
                scope_a,
                source_location_id=location.id,
                destination_location_id=location.id,
                items=[{"product_id": product.id, "variant_id": variant.id, "quantity": 1}],
            )

    def test_empty_items_rejected(self, scope_a, location_a, warehouse_a):
        with pytest.raises(ValidationError):
            transfer_stock(
                scope_a,
                source_location_id=location_a.id,
                destination_location_id=warehouse_a.id,
                items=[],
            )

    def test_missing_variant_rejected(self, scope_a, stocked_a, warehouse_a):
        product, _variant, location = stocked_a
        with pytest.raises(ValidationError):
            transfer_stock(
                scope_a,
                source_location_id=location.id,
                destination_location_id=warehouse_a.id,
                items=[{"product_id": product.id, "quantity": 1}],
            )

    def test_cross_tenant_destination_is_not_found(self, scope_a, stocked_a, location_b):
        product, variant, location = stocked_a
        with pytest.raises(NotFoundError):
            transfer_stock(
                scope_a,
                source_location_id=location.id,
                destination_location_id=location_b.id,
                items=[{"product_id": product.id, "variant_id": variant.id, "quantity": 1}],
            )
        assert _stock(scope_a, product, variant, location) == 5
