# backend/app/services/transfer_service.py
"""
Transfer Coordinator

WHY: Move stock between two locations of the same tenant as one atomic unit.
A transfer is not its own entity: it is a TRANSFER_OUT at the source and a
TRANSFER_IN at the destination sharing one reference id, written together
or not at all.

INVARIANTS:
- source != destination; both locations owned by the tenant (404 otherwise)
- every item names product, variant and a positive quantity
- the source check is on raw stock_count (on-hand), not on availability;
  a transfer can never push on-hand at the source below zero
- any item failing its check aborts the whole transfer (nothing is written)
"""
from __future__ import annotations

import uuid

from flask import current_app

from ..errors import InsufficientStockError, ValidationError
from ..extensions import db
from ..models import Product
from ..models.inventory import MOVEMENT_TRANSFER_IN, MOVEMENT_TRANSFER_OUT
from ..validation import optional_text, require_id, require_items, require_positive_quantity
from .catalog_service import require_variant
from .concurrency import run_in_transaction
from .inventory_service import lock_summary
from .ledger_service import record_movement
from .tenant_service import TenantScope

TRANSFER_REFERENCE_TYPE = "transfer"


def _normalize_items(scope: TenantScope, items) -> dict[tuple[int, int], int]:
    """Validate items and merge lines for the same (product, variant)."""
    merged: dict[tuple[int, int], int] = {}
    for item in require_items(items):
        product_id = require_id(item.get("product_id"), "product_id")
        if item.get("variant_id") is None:
            raise ValidationError(f"variant_id is required for product {product_id}")
        variant_id = require_id(item.get("variant_id"), "variant_id")
        qty = require_positive_quantity(item.get("quantity"))

        scope.get(Product, product_id, "Product")
        require_variant(scope, product_id, variant_id)

        key = (product_id, variant_id)
        merged[key] = merged.get(key, 0) + qty
    return merged


def transfer_stock(
    scope: TenantScope,
    *,
    source_location_id: int,
    destination_location_id: int,
    items: list[dict],
    notes: str | None = None,
    created_by: int | None = None,
    commit: bool = True,
) -> dict:
    """
    Transfer items from source to destination.

    Returns:
        {"transfer_id": str, "movements": [{product_id, variant_id, quantity,
         transfer_out_id, transfer_in_id}, ...]}

    Raises:
        ValidationError: same location, empty/malformed items
        NotFoundError: location/product/variant missing or owned by another tenant
        InsufficientStockError: source on-hand below the requested quantity
    """
    def _op():
        if source_location_id is None or destination_location_id is None:
            raise ValidationError("source_location_id and destination_location_id are required")
        if source_location_id == destination_location_id:
            raise ValidationError("Source and destination locations must be different")

        scope.require_location(source_location_id)
        scope.require_location(destination_location_id)
        merged = _normalize_items(scope, items)
        note = optional_text(notes, 200)

        # Lock every source key first, check all, then write.
        for (product_id, variant_id), qty in merged.items():
            summary = lock_summary(scope, product_id, source_location_id, variant_id)
            if summary.stock_count < qty:
                raise InsufficientStockError(
                    available=summary.stock_count,
                    requested=qty,
                    product_id=product_id,
                    variant_id=variant_id,
                    location_id=source_location_id,
                )

        transfer_id = str(uuid.uuid4())
        movements = []
        for (product_id, variant_id), qty in merged.items():
            out_movement = record_movement(
                scope,
                product_id=product_id,
                variant_id=variant_id,
                location_id=source_location_id,
                movement_type=MOVEMENT_TRANSFER_OUT,
                quantity=-qty,
                reference_type=TRANSFER_REFERENCE_TYPE,
                reference_id=transfer_id,
                notes=note or f"Transfer to location {destination_location_id}",
                created_by=created_by,
                commit=False,
            )
            in_movement = record_movement(
                scope,
                product_id=product_id,
                variant_id=variant_id,
                location_id=destination_location_id,
                movement_type=MOVEMENT_TRANSFER_IN,
                quantity=qty,
                reference_type=TRANSFER_REFERENCE_TYPE,
                reference_id=transfer_id,
                notes=note or f"Transfer from location {source_location_id}",
                created_by=created_by,
                commit=False,
            )
            movements.append({
                "product_id": product_id,
                "variant_id": variant_id,
                "quantity": qty,
                "transfer_out_id": out_movement.id,
                "transfer_in_id": in_movement.id,
            })

        db.session.flush()
        current_app.logger.info(
            "Transfer %s: %s item(s) from location %s to %s (org %s)",
            transfer_id, len(movements), source_location_id, destination_location_id, scope.org_id,
        )
        return {"transfer_id": transfer_id, "movements": movements}

    return run_in_transaction(_op, commit=commit)
