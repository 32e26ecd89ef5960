# backend/app/services/adjustment_service.py
"""
Adjustment Reconciler

WHY: A physical count is the ground truth for a shelf. Reconciliation
posts the single corrective movement that brings the system count in line
with it.

difference = physical_quantity - system stock
- difference == 0: nothing written (already reconciled), movement_id is None
- difference > 0:  one ADJUSTMENT_IN of +difference
- difference < 0:  one ADJUSTMENT_OUT of difference (stored negative, like
                   every other outbound movement)

The read and the write happen in one transaction with the key's summary
row locked, so a concurrent sale cannot slip in between them.
"""
from __future__ import annotations

from flask import current_app

from ..errors import ValidationError
from ..models import Product
from ..models.inventory import MOVEMENT_ADJUSTMENT_IN, MOVEMENT_ADJUSTMENT_OUT
from ..validation import coerce_int, require_reason
from .catalog_service import require_variant
from .concurrency import run_in_transaction
from .inventory_service import lock_summary
from .ledger_service import get_current_stock, record_movement
from .tenant_service import TenantScope

ADJUSTMENT_REFERENCE_TYPE = "stock_adjustment"


def adjust_stock(
    scope: TenantScope,
    *,
    location_id: int,
    product_id: int,
    variant_id: int,
    physical_quantity: int,
    reason: str,
    created_by: int | None = None,
    commit: bool = True,
) -> dict:
    """
    Reconcile one key against a physical count.

    Returns:
        {"movement_id": int | None, "difference": int, "new_stock_count": int}
    """
    def _op():
        if variant_id is None:
            raise ValidationError("variant_id is required for stock adjustments")
        physical = coerce_int(physical_quantity, "physical_quantity")
        if physical < 0:
            raise ValidationError("physical_quantity cannot be negative")
        note = require_reason(reason)
        if len(note) > 255:
            raise ValidationError("reason exceeds max length 255")

        scope.require_location(location_id)
        scope.get(Product, product_id, "Product")
        require_variant(scope, product_id, variant_id)

        lock_summary(scope, product_id, location_id, variant_id)
        system_stock = get_current_stock(scope, product_id, location_id, variant_id)
        difference = physical - system_stock

        if difference == 0:
            return {"movement_id": None, "difference": 0, "new_stock_count": system_stock}

        movement = record_movement(
            scope,
            product_id=product_id,
            variant_id=variant_id,
            location_id=location_id,
            movement_type=MOVEMENT_ADJUSTMENT_IN if difference > 0 else MOVEMENT_ADJUSTMENT_OUT,
            quantity=difference,
            reference_type=ADJUSTMENT_REFERENCE_TYPE,
            notes=note,
            created_by=created_by,
            commit=False,
        )
        current_app.logger.info(
            "Stock adjusted for product %s variant %s at location %s: %+d (%s)",
            product_id, variant_id, location_id, difference, note,
        )
        return {
            "movement_id": movement.id,
            "difference": difference,
            "new_stock_count": system_stock + difference,
        }

    return run_in_transaction(_op, commit=commit)
