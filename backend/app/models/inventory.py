from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z, utcnow


MOVEMENT_SALE = "SALE"
MOVEMENT_RETURN = "RETURN"
MOVEMENT_PURCHASE = "PURCHASE"
MOVEMENT_ADJUSTMENT_IN = "ADJUSTMENT_IN"
MOVEMENT_ADJUSTMENT_OUT = "ADJUSTMENT_OUT"
MOVEMENT_TRANSFER_IN = "TRANSFER_IN"
MOVEMENT_TRANSFER_OUT = "TRANSFER_OUT"
MOVEMENT_RECEIPT = "RECEIPT"

MOVEMENT_TYPES = (
    MOVEMENT_SALE,
    MOVEMENT_RETURN,
    MOVEMENT_PURCHASE,
    MOVEMENT_ADJUSTMENT_IN,
    MOVEMENT_ADJUSTMENT_OUT,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_OUT,
    MOVEMENT_RECEIPT,
)


class StockMovement(db.Model):
    """
    Immutable, append-only record of a signed stock change.

    INVARIANTS:
    - quantity != 0 (positive = increase, negative = decrease)
    - variant_id is mandatory
    - rows are never updated or deleted; corrections are new movements
    - SUM(quantity) per (org, location, product, variant) is the on-hand count
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity <> 0", name="ck_stock_movements_nonzero"),
        db.Index("ix_movements_key", "org_id", "product_id", "location_id", "variant_id"),
        db.Index("ix_movements_reference", "org_id", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)

    movement_type = db.Column(db.String(32), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} {self.movement_type} qty={self.quantity} "
            f"product={self.product_id} variant={self.variant_id} location={self.location_id}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "location_id": self.location_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class InventorySummary(db.Model):
    """
    Denormalized per-key counters derived from the movement ledger.

    stock_count is recomputed from StockMovement after every ledger write and
    is never authored directly. reserved_stock is a transient claim counter
    maintained by the reservation service; it never appears in the ledger.
    """
    __tablename__ = "inventory_summaries"
    __table_args__ = (
        db.UniqueConstraint(
            "org_id", "location_id", "product_id", "variant_id",
            name="uq_inventory_summaries_key",
        ),
        db.CheckConstraint("reserved_stock >= 0", name="ck_inventory_summaries_reserved_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False)

    stock_count = db.Column(db.Integer, nullable=False, default=0)
    reserved_stock = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def available_stock(self) -> int:
        return (self.stock_count or 0) - (self.reserved_stock or 0)

    def to_dict(self) -> dict:
        return {
            "org_id": self.org_id,
            "location_id": self.location_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "stock_count": self.stock_count,
            "reserved_stock": self.reserved_stock,
            "available_stock": self.available_stock,
            "updated_at": to_utc_z(self.updated_at),
        }
