# Overview: Reservation manager; atomic claims against available stock.

from __future__ import annotations

from sqlalchemy import case, update

from ..errors import InsufficientStockError, ValidationError
from ..extensions import db
from ..models import InventorySummary, Product
from ..time_utils import utcnow
from ..validation import require_positive_quantity
from .catalog_service import require_variant
from .concurrency import run_in_transaction
from .inventory_service import summary_key_filter, ensure_summary, get_summary
from .tenant_service import TenantScope
"""
Reservation Invariants

- reserved_stock never goes negative and never exceeds stock_count through a
  reservation (oversell prevention).
- The sufficiency check and the increment are one conditional UPDATE:
      SET reserved_stock = reserved_stock + q
      WHERE key AND stock_count - reserved_stock >= q
  so two concurrent reservations can never both pass against the same units.
- Reservations are not ledger events; they only touch InventorySummary.
"""


def _validate_key(scope: TenantScope, product_id: int, location_id: int, variant_id: int) -> None:
    if variant_id is None:
        raise ValidationError("variant_id is required for reservations")
    scope.get(Product, product_id, "Product")
    require_variant(scope, product_id, variant_id)
    scope.require_location(location_id)


def reserve_stock(
    scope: TenantScope,
    product_id: int,
    location_id: int,
    variant_id: int,
    quantity: int,
    *,
    commit: bool = True,
) -> dict:
    """
    Claim quantity units of available stock for a key.

    Returns the updated summary dict.

    Raises:
        InsufficientStockError: available < quantity (nothing is claimed)
    """
    def _op():
        qty = require_positive_quantity(quantity)
        _validate_key(scope, product_id, location_id, variant_id)
        ensure_summary(scope, product_id, location_id, variant_id)

        result = db.session.execute(
            update(InventorySummary)
            .where(
                summary_key_filter(scope, product_id, location_id, variant_id),
                InventorySummary.stock_count - InventorySummary.reserved_stock >= qty,
            )
            .values(reserved_stock=InventorySummary.reserved_stock + qty, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            summary = get_summary(scope, product_id, location_id, variant_id)
            raise InsufficientStockError(
                available=summary["available_stock"],
                requested=qty,
                product_id=product_id,
                variant_id=variant_id,
                location_id=location_id,
            )
        return get_summary(scope, product_id, location_id, variant_id)

    return run_in_transaction(_op, commit=commit)


def release_stock(
    scope: TenantScope,
    product_id: int,
    location_id: int,
    variant_id: int,
    quantity: int,
    *,
    commit: bool = True,
) -> dict:
    """
    Return quantity reserved units to available. Clamped at zero: releasing more
    than is reserved leaves reserved_stock at 0.
    """
    def _op():
        qty = require_positive_quantity(quantity)
        _validate_key(scope, product_id, location_id, variant_id)
        ensure_summary(scope, product_id, location_id, variant_id)

        db.session.execute(
            update(InventorySummary)
            .where(summary_key_filter(scope, product_id, location_id, variant_id))
            .values(
                reserved_stock=case(
                    (InventorySummary.reserved_stock > qty, InventorySummary.reserved_stock - qty),
                    else_=0,
                ),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return get_summary(scope, product_id, location_id, variant_id)

    return run_in_transaction(_op, commit=commit)


def get_reserved_stock(scope: TenantScope, product_id: int, location_id: int, variant_id: int) -> int:
    return get_summary(scope, product_id, location_id, variant_id)["reserved_stock"]
