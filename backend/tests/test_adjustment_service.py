# Overview: Pytest coverage for physical-count reconciliation.

import pytest

from app.errors import ValidationError
from app.extensions import db
from app.models import StockMovement
from app.services.adjustment_service import adjust_stock
from app.services.inventory_service import get_summary


def _adjust(scope, product, variant, location, physical, reason="Cycle count"):
    return adjust_stock(
        scope,
        location_id=location.id,
        product_id=product.id,
        variant_id=variant.id,
        physical_quantity=physical,
        reason=reason,
    )


class TestAdjustStock:
    def test_repeated_adjustment_writes_one_movement(self, scope_a, stocked_a):
        product, variant, location = stocked_a

        first = _adjust(scope_a, product, variant, location, 8)
        second = _adjust(scope_a, product, variant, location, 8)

        assert first["difference"] == 3
        assert first["movement_id"] is not None
        assert first["new_stock_count"] == 8
        assert second == {"movement_id": None, "difference": 0, "new_stock_count": 8}
        assert db.session.query(StockMovement).filter_by(reference_type="stock_adjustment").count() == 1

    def test_shrinkage_records_negative_adjustment_out(self, scope_a, stocked_a):
        product, variant, location = stocked_a

        result = _adjust(scope_a, product, variant, location, 2)

        movement = db.session.get(StockMovement, result["movement_id"])
        assert movement.movement_type == "ADJUSTMENT_OUT"
        assert movement.quantity == -3
        assert get_summary(scope_a, product.id, location.id, variant.id)["stock_count"] == 2

    def test_surplus_records_adjustment_in(self, scope_a, stocked_a):
        product, variant, location = stocked_a

        result = _adjust(scope_a, product, variant, location, 6)

        movement = db.session.get(StockMovement, result["movement_id"])
        assert movement.movement_type == "ADJUSTMENT_IN"
        assert movement.quantity == 1

    def test_reason_is_trimmed_and_stored(self, scope_a, stocked_a):
        product, variant, location = stocked_a

        result = _adjust(scope_a, product, variant, location, 4, reason="  Damaged box  ")

        assert db.session.get(StockMovement, result["movement_id"]).notes == "Damaged box"

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_reason_required(self, scope_a, stocked_a, reason):
        product, variant, location = stocked_a
        with pytest.raises(ValidationError):
            _adjust(scope_a, product, variant, location, 1, reason=reason)

    def test_negative_physical_quantity_rejected(self, scope_a, stocked_a):
        product, variant, location = stocked_a
        with pytest.raises(ValidationError):
            _adjust(scope_a, product, variant, location, -1)
