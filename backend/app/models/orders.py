from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z, utcnow

class Order(db.Model):
    """
    Order document.

    order_type: sales | purchase | return
    status: pending -> processing -> shipped -> delivered, or cancelled
    payment_status: pending | paid | failed | refunded

    inventory_updated flips to True exactly once, when the ledger movements
    for the order are written. It gates every later status change so stock
    is never committed twice.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("org_id", "order_number", name="uq_orders_org_number"),
        db.Index("ix_orders_org_status_created", "org_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    order_number = db.Column(db.String(64), nullable=False)

    # Anonymous / POS orders have no user
    user_id = db.Column(db.Integer, nullable=True, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    order_type = db.Column(db.String(16), nullable=False, default="sales", index=True)
    original_order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")
    payment_reference = db.Column(db.String(128), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    inventory_updated = db.Column(db.Boolean, nullable=False, default=False)

    notes = db.Column(db.Text, nullable=True)
    tracking_number = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "OrderLine",
        backref="order",
        lazy=True,
        order_by="OrderLine.id",
        cascade="all, delete-orphan",
    )
    original_order = db.relationship("Order", remote_side=[id])

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        payload = {
            "id": self.id,
            "org_id": self.org_id,
            "order_number": self.order_number,
            "user_id": self.user_id,
            "location_id": self.location_id,
            "order_type": self.order_type,
            "original_order_id": self.original_order_id,
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "inventory_updated": self.inventory_updated,
            "notes": self.notes,
            "tracking_number": self.tracking_number,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
        }
        if include_lines:
            payload["lines"] = [line.to_dict() for line in self.lines]
        return payload


class OrderLine(db.Model):
    """Individual line items on an order; location_id may differ from the order's."""
    __tablename__ = "order_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "location_id": self.location_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "tax_cents": self.tax_cents,
            "line_total_cents": self.line_total_cents,
            "created_at": to_utc_z(self.created_at),
        }


class Payment(db.Model):
    """
    Payment record reported by the payment collaborator.

    gateway_reference is unique per tenant so a notification delivered twice
    maps onto the same row. Refunds are separate rows with negative amounts
    pointing at original_payment_id.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.UniqueConstraint("org_id", "gateway_reference", name="uq_payments_org_gateway_ref"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="completed", index=True)
    payment_method = db.Column(db.String(32), nullable=False)
    gateway_reference = db.Column(db.String(128), nullable=True)

    original_payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    order = db.relationship("Order", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "order_id": self.order_id,
            "amount_cents": self.amount_cents,
            "status": self.status,
            "payment_method": self.payment_method,
            "gateway_reference": self.gateway_reference,
            "original_payment_id": self.original_payment_id,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
