# Overview: Stock ledger; append-only signed movements and ledger sums.

from __future__ import annotations

from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Product, StockMovement
from ..models.inventory import (
    MOVEMENT_PURCHASE,
    MOVEMENT_RECEIPT,
    MOVEMENT_RETURN,
    MOVEMENT_SALE,
    MOVEMENT_TYPES,
)
from ..validation import coerce_int, optional_text, require_items, require_nonzero_quantity
from .catalog_service import require_variant
from .concurrency import run_in_transaction
from .tenant_service import TenantScope
"""
Stock Ledger Invariants (authoritative)

- StockMovement rows are append-only: never updated, never deleted.
- quantity is signed and never zero (positive = in, negative = out).
- variant_id is mandatory on every movement.
- On-hand for a key is SUM(quantity) over its movements; nothing else is authoritative.
- The ledger has no notion of availability: it never rejects for insufficient stock.
  Callers that must prevent negative on-hand (transfers) check before recording.
- Every record_movement recomputes the InventorySummary row for its key in the
  same transaction.
"""


def record_movement(
    scope: TenantScope,
    *,
    product_id: int,
    variant_id: int,
    location_id: int,
    movement_type: str,
    quantity: int,
    reference_type: str | None = None,
    reference_id: str | None = None,
    notes: str | None = None,
    created_by: int | None = None,
    commit: bool = True,
) -> StockMovement:
    """
    Append one movement and bring the key's summary back in line with the ledger.

    Raises:
        ValidationError: variant missing, quantity zero/non-integer, unknown type
        NotFoundError: product/variant/location not in this tenant
    """
    from .inventory_service import lock_summary, recompute_summary

    def _op():
        if variant_id is None:
            raise ValidationError("variant_id is required for stock movements")
        qty = require_nonzero_quantity(quantity)
        if movement_type not in MOVEMENT_TYPES:
            raise ValidationError(f"Invalid movement type: {movement_type}")

        scope.get(Product, product_id, "Product")
        require_variant(scope, product_id, variant_id)
        scope.require_location(location_id)

        # Serialize writers on this key before reading the sum
        lock_summary(scope, product_id, location_id, variant_id)

        movement = StockMovement(
            org_id=scope.org_id,
            product_id=product_id,
            variant_id=variant_id,
            location_id=location_id,
            movement_type=movement_type,
            quantity=qty,
            reference_type=reference_type,
            reference_id=str(reference_id) if reference_id is not None else None,
            notes=optional_text(notes, 255),
            created_by=created_by,
        )
        db.session.add(movement)
        db.session.flush()

        recompute_summary(scope, product_id, location_id, variant_id)
        return movement

    return run_in_transaction(_op, commit=commit)


def get_current_stock(scope: TenantScope, product_id: int, location_id: int, variant_id: int) -> int:
    """
    On-hand quantity as the sum of all movements for the key.

    This is the aggregator's recomputation primitive and the audit fallback
    for InventorySummary.stock_count.
    """
    if variant_id is None:
        raise ValidationError("variant_id is required to get current stock")

    total = (
        db.session.query(func.coalesce(func.sum(StockMovement.quantity), 0))
        .filter(
            StockMovement.org_id == scope.org_id,
            StockMovement.product_id == product_id,
            StockMovement.location_id == location_id,
            StockMovement.variant_id == variant_id,
        )
        .scalar()
    )
    return int(total or 0)


def list_movements(
    scope: TenantScope,
    *,
    product_id: int | None = None,
    location_id: int | None = None,
    variant_id: int | None = None,
    reference_type: str | None = None,
    reference_id: str | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    q = scope.query(StockMovement)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if location_id is not None:
        q = q.filter(StockMovement.location_id == location_id)
    if variant_id is not None:
        q = q.filter(StockMovement.variant_id == variant_id)
    if reference_type is not None:
        q = q.filter(StockMovement.reference_type == reference_type)
    if reference_id is not None:
        q = q.filter(StockMovement.reference_id == str(reference_id))

    return q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).limit(limit).all()


def record_order_movements(
    scope: TenantScope,
    *,
    order_id: int,
    order_type: str,
    items: list[dict],
    created_by: int | None = None,
    commit: bool = True,
) -> list[StockMovement]:
    """
    Commit an order's lines to the ledger.

    sales  -> SALE with negative quantity
    return -> RETURN with positive quantity
    """
    if order_type not in ("sales", "return"):
        raise ValidationError(f"Order type {order_type} does not move stock")

    is_return = order_type == "return"
    movement_type = MOVEMENT_RETURN if is_return else MOVEMENT_SALE

    def _op():
        movements = []
        for item in require_items(items):
            if item.get("variant_id") is None:
                raise ValidationError(
                    f"variant_id is required for product {item.get('product_id')} in order {order_id}"
                )
            qty = coerce_int(item.get("quantity"), "quantity")
            movements.append(record_movement(
                scope,
                product_id=item["product_id"],
                variant_id=item["variant_id"],
                location_id=item["location_id"],
                movement_type=movement_type,
                quantity=qty if is_return else -qty,
                reference_type="order",
                reference_id=order_id,
                notes=f"{order_type} order {order_id}",
                created_by=created_by,
                commit=False,
            ))
        return movements

    return run_in_transaction(_op, commit=commit)


def record_purchase_receipt(
    scope: TenantScope,
    *,
    reference_id: str,
    items: list[dict],
    movement_type: str = MOVEMENT_PURCHASE,
    reference_type: str = "goods_receipt",
    created_by: int | None = None,
    commit: bool = True,
) -> list[StockMovement]:
    """
    Book received goods (purchase GRN or plain receipt). Always increases stock;
    lines with non-positive quantity are skipped.
    """
    if movement_type not in (MOVEMENT_PURCHASE, MOVEMENT_RECEIPT):
        raise ValidationError("Receipts must be PURCHASE or RECEIPT movements")

    def _op():
        movements = []
        for item in require_items(items):
            if item.get("variant_id") is None:
                raise ValidationError(
                    f"variant_id is required for product {item.get('product_id')} in receipt {reference_id}"
                )
            qty = coerce_int(item.get("quantity"), "quantity")
            if qty <= 0:
                continue
            movements.append(record_movement(
                scope,
                product_id=item["product_id"],
                variant_id=item["variant_id"],
                location_id=item["location_id"],
                movement_type=movement_type,
                quantity=qty,
                reference_type=reference_type,
                reference_id=reference_id,
                notes=item.get("notes") or f"Purchase GRN {reference_id}",
                created_by=created_by,
                commit=False,
            ))
        return movements

    return run_in_transaction(_op, commit=commit)
