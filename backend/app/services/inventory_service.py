# Overview: Inventory aggregator; keeps InventorySummary in line with the stock ledger.

from __future__ import annotations

from flask import current_app
from sqlalchemy import and_, func, update

from ..extensions import db
from ..models import InventorySummary, StockMovement
from ..time_utils import utcnow
from .concurrency import dialect_insert, lock_for_update, run_in_transaction
from .ledger_service import get_current_stock
from .tenant_service import TenantScope


def summary_key_filter(scope: TenantScope, product_id: int, location_id: int, variant_id: int):
    return and_(
        InventorySummary.org_id == scope.org_id,
        InventorySummary.product_id == product_id,
        InventorySummary.location_id == location_id,
        InventorySummary.variant_id == variant_id,
    )


def ensure_summary(scope: TenantScope, product_id: int, location_id: int, variant_id: int) -> None:
    """
    Make sure the summary row for a key exists, seeding stock_count from the ledger.

    Concurrent creators collapse onto the unique key (ON CONFLICT DO NOTHING).
    """
    values = {
        "org_id": scope.org_id,
        "product_id": product_id,
        "location_id": location_id,
        "variant_id": variant_id,
        "stock_count": get_current_stock(scope, product_id, location_id, variant_id),
        "reserved_stock": 0,
        "updated_at": utcnow(),
    }
    insert = dialect_insert()
    if insert is not None:
        stmt = insert(InventorySummary).values(**values).on_conflict_do_nothing(
            index_elements=["org_id", "location_id", "product_id", "variant_id"]
        )
        db.session.execute(stmt)
        return

    exists = (
        db.session.query(InventorySummary.id)
        .filter(summary_key_filter(scope, product_id, location_id, variant_id))
        .first()
    )
    if exists is None:
        db.session.add(InventorySummary(**values))
        db.session.flush()


def lock_summary(scope: TenantScope, product_id: int, location_id: int, variant_id: int) -> InventorySummary:
    """Ensure and row-lock the summary for a key (serializes writers on that key)."""
    ensure_summary(scope, product_id, location_id, variant_id)
    return lock_for_update(
        db.session.query(InventorySummary).filter(summary_key_filter(scope, product_id, location_id, variant_id))
    ).populate_existing().one()


def recompute_summary(scope: TenantScope, product_id: int, location_id: int, variant_id: int) -> int:
    """
    Re-sum the ledger for one key and store it as the summary's stock_count.

    reserved_stock is left untouched. Returns the new stock_count.
    """
    stock_count = get_current_stock(scope, product_id, location_id, variant_id)
    result = db.session.execute(
        update(InventorySummary)
        .where(summary_key_filter(scope, product_id, location_id, variant_id))
        .values(stock_count=stock_count, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        ensure_summary(scope, product_id, location_id, variant_id)
    return stock_count


def get_summary(scope: TenantScope, product_id: int, location_id: int, variant_id: int) -> dict:
    """
    Counters for a key. A key with no summary row yet reports its ledger sum and
    zero reservations.
    """
    scope.require_location(location_id)
    row = (
        db.session.query(InventorySummary)
        .filter(summary_key_filter(scope, product_id, location_id, variant_id))
        .populate_existing()
        .first()
    )
    if row is None:
        stock_count = get_current_stock(scope, product_id, location_id, variant_id)
        return {
            "org_id": scope.org_id,
            "location_id": location_id,
            "product_id": product_id,
            "variant_id": variant_id,
            "stock_count": stock_count,
            "reserved_stock": 0,
            "available_stock": stock_count,
            "updated_at": None,
        }
    return row.to_dict()


def list_location_inventory(scope: TenantScope, location_id: int, *, include_empty: bool = False) -> list[dict]:
    scope.require_location(location_id)
    q = scope.query(InventorySummary).filter(InventorySummary.location_id == location_id)
    if not include_empty:
        q = q.filter((InventorySummary.stock_count != 0) | (InventorySummary.reserved_stock != 0))
    rows = (
        q.order_by(InventorySummary.product_id.asc(), InventorySummary.variant_id.asc())
        .populate_existing()
        .all()
    )
    return [row.to_dict() for row in rows]


def _ledger_keys(scope: TenantScope):
    return (
        db.session.query(
            StockMovement.product_id,
            StockMovement.location_id,
            StockMovement.variant_id,
            func.sum(StockMovement.quantity),
        )
        .filter(StockMovement.org_id == scope.org_id)
        .group_by(StockMovement.product_id, StockMovement.location_id, StockMovement.variant_id)
        .all()
    )


def verify_ledger_consistency(scope: TenantScope) -> list[dict]:
    """
    Compare every summary against its ledger sum.

    Returns the drifted keys as dicts with expected/actual stock counts. An
    empty list means the aggregate matches the ledger everywhere.
    """
    expected = {
        (product_id, location_id, variant_id): int(total or 0)
        for product_id, location_id, variant_id, total in _ledger_keys(scope)
    }
    actual = {
        (row.product_id, row.location_id, row.variant_id): row.stock_count
        for row in scope.query(InventorySummary).populate_existing().all()
    }

    drift = []
    for key in sorted(set(expected) | set(actual)):
        want = expected.get(key, 0)
        have = actual.get(key, 0)
        if want != have:
            product_id, location_id, variant_id = key
            drift.append({
                "product_id": product_id,
                "location_id": location_id,
                "variant_id": variant_id,
                "expected_stock_count": want,
                "actual_stock_count": have,
            })
    return drift


def rebuild_summaries(scope: TenantScope, *, commit: bool = True) -> int:
    """
    Recompute stock_count for every key that has movements or a summary row.

    Repair tool for summaries that drifted (manual edits, restored backups).
    Returns the number of rows corrected.
    """
    def _op():
        drift = verify_ledger_consistency(scope)
        for entry in drift:
            recompute_summary(scope, entry["product_id"], entry["location_id"], entry["variant_id"])
        if drift:
            current_app.logger.warning(
                "Rebuilt %s drifted inventory summaries for org %s", len(drift), scope.org_id
            )
        return len(drift)

    return run_in_transaction(_op, commit=commit)
