from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z, utcnow

class Product(db.Model):
    """
    Product master data.

    MULTI-TENANT: Products are org-scoped via org_id.

    Inventory is never tracked on the product itself: every product has at
    least one ProductVariant (the DEFAULT variant) and stock lives at
    location x product x variant.

    base_price_cents is the last-resort price when no ProductPrice row matches.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("org_id", "sku", name="uq_products_org_sku"),
        db.Index("ix_products_org_active", "org_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    # Authoritative storage in cents
    base_price_cents = db.Column(db.Integer, nullable=False, default=0)

    # Fallback tax when the variant has no tax assigned (basis points, 1800 = 18%)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} org_id={self.org_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "sku": self.sku,
            "name": self.name,
            "base_price_cents": self.base_price_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Tax(db.Model):
    __tablename__ = "taxes"
    __table_args__ = (
        db.UniqueConstraint("org_id", "code", name="uq_taxes_org_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    rate_bps = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "code": self.code,
            "name": self.name,
            "rate_bps": self.rate_bps,
            "is_active": self.is_active,
        }


class ProductVariant(db.Model):
    """
    Unit of inventory tracking beneath a product.

    Exactly one variant per product carries is_default=True; it is created on
    demand for products that have no explicit variants.
    """
    __tablename__ = "product_variants"
    __table_args__ = (
        db.UniqueConstraint("org_id", "sku", name="uq_variants_org_sku"),
        db.Index("ix_variants_product_default", "product_id", "is_default"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    tax_id = db.Column(db.Integer, db.ForeignKey("taxes.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("variants", lazy=True))
    tax = db.relationship("Tax")

    def __repr__(self) -> str:
        return f"<ProductVariant id={self.id} product_id={self.product_id} default={self.is_default}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "product_id": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "is_default": self.is_default,
            "is_active": self.is_active,
            "tax_id": self.tax_id,
            "created_at": to_utc_z(self.created_at),
        }


class ProductPrice(db.Model):
    """
    Layered price table.

    A row applies to a variant (variant_id set) or the whole product
    (variant_id NULL), at one location (location_id set) or everywhere
    (location_id NULL), within [valid_from, valid_until] (open-ended when
    valid_until is NULL).
    """
    __tablename__ = "product_prices"
    __table_args__ = (
        db.CheckConstraint("sale_price_cents <= mrp_price_cents", name="ck_product_prices_sale_le_mrp"),
        db.Index("ix_prices_lookup", "org_id", "product_id", "variant_id", "location_id", "price_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)

    price_type = db.Column(db.String(32), nullable=False, default="standard")
    mrp_price_cents = db.Column(db.Integer, nullable=False)
    sale_price_cents = db.Column(db.Integer, nullable=False)

    valid_from = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "location_id": self.location_id,
            "price_type": self.price_type,
            "mrp_price_cents": self.mrp_price_cents,
            "sale_price_cents": self.sale_price_cents,
            "valid_from": to_utc_z(self.valid_from),
            "valid_until": to_utc_z(self.valid_until) if self.valid_until else None,
        }
