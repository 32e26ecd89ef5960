# backend/app/services/catalog_service.py
"""
Catalog Gateway

The inventory/order core only needs three things from the catalog: does a
product exist (and is it active), what is its base price, and which variant
does stock live under. Full catalog management is outside this package;
create_* helpers exist for bootstrap, CLI and tests.

CORE RULE: every product has at least one variant. Lines and movements that
arrive without a variant resolve the product's DEFAULT variant, which is
created on first use.
"""
from __future__ import annotations

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, ProductPrice, ProductVariant, Tax
from ..time_utils import normalize_datetime, utcnow
from ..validation import require_price_cents
from .concurrency import run_in_transaction
from .tenant_service import TenantScope

DEFAULT_VARIANT_NAME = "Default"


def get_product(scope: TenantScope, product_id: int, *, require_active: bool = False) -> dict:
    """Return {id, base_price_cents, tax_rate_bps, is_active} for a tenant product."""
    product = scope.get(Product, product_id, "Product")
    if require_active and not product.is_active:
        raise ValidationError(f"Product {product_id} is inactive")
    return {
        "id": product.id,
        "base_price_cents": product.base_price_cents,
        "tax_rate_bps": product.tax_rate_bps,
        "is_active": product.is_active,
    }


def require_variant(scope: TenantScope, product_id: int, variant_id: int) -> ProductVariant:
    """Variant must exist in the tenant and belong to the product."""
    variant = scope.get(ProductVariant, variant_id, "Variant")
    if variant.product_id != product_id:
        raise NotFoundError(f"Variant {variant_id} not found for product {product_id}")
    return variant


def get_or_create_default_variant(scope: TenantScope, product_id: int) -> ProductVariant:
    """
    Return the product's DEFAULT variant, creating it if missing.

    Runs inside the caller's transaction (flush only).
    """
    product = scope.get(Product, product_id, "Product")

    variant = (
        scope.query(ProductVariant)
        .filter_by(product_id=product.id, is_default=True)
        .order_by(ProductVariant.id.asc())
        .first()
    )
    if variant is not None:
        return variant

    variant = ProductVariant(
        org_id=scope.org_id,
        product_id=product.id,
        sku=f"{product.sku}-DEFAULT",
        name=DEFAULT_VARIANT_NAME,
        is_default=True,
    )
    db.session.add(variant)
    db.session.flush()
    return variant


def resolve_variant_id(scope: TenantScope, product_id: int, variant_id: int | None) -> int:
    """Validate an explicit variant, or fall back to the DEFAULT variant."""
    if variant_id is None:
        return get_or_create_default_variant(scope, product_id).id
    return require_variant(scope, product_id, variant_id).id


def create_product(
    scope: TenantScope,
    *,
    sku: str,
    name: str,
    base_price_cents: int = 0,
    tax_rate_bps: int = 0,
    is_active: bool = True,
    commit: bool = True,
) -> Product:
    """Create a product together with its DEFAULT variant."""
    def _op():
        if not sku or not str(sku).strip():
            raise ValidationError("sku is required")
        if not name or not str(name).strip():
            raise ValidationError("name is required")

        clean_sku = str(sku).strip()
        if scope.query(Product).filter_by(sku=clean_sku).first() is not None:
            raise ConflictError(f"SKU {clean_sku} already exists")

        product = Product(
            org_id=scope.org_id,
            sku=clean_sku,
            name=str(name).strip(),
            base_price_cents=require_price_cents(base_price_cents, "base_price_cents"),
            tax_rate_bps=tax_rate_bps,
            is_active=is_active,
        )
        db.session.add(product)
        db.session.flush()

        get_or_create_default_variant(scope, product.id)
        return product

    return run_in_transaction(_op, commit=commit)


def create_variant(
    scope: TenantScope,
    *,
    product_id: int,
    sku: str,
    name: str,
    tax_id: int | None = None,
    commit: bool = True,
) -> ProductVariant:
    def _op():
        product = scope.get(Product, product_id, "Product")
        if tax_id is not None:
            scope.get(Tax, tax_id, "Tax")
        clean_sku = str(sku or "").strip()
        if not clean_sku:
            raise ValidationError("sku is required")
        if scope.query(ProductVariant).filter_by(sku=clean_sku).first() is not None:
            raise ConflictError(f"Variant SKU {clean_sku} already exists")

        variant = ProductVariant(
            org_id=scope.org_id,
            product_id=product.id,
            sku=clean_sku,
            name=str(name or clean_sku).strip(),
            is_default=False,
            tax_id=tax_id,
        )
        db.session.add(variant)
        db.session.flush()
        return variant

    return run_in_transaction(_op, commit=commit)


def create_tax(scope: TenantScope, *, code: str, name: str, rate_bps: int, commit: bool = True) -> Tax:
    def _op():
        if rate_bps < 0:
            raise ValidationError("rate_bps must be >= 0")
        tax = Tax(org_id=scope.org_id, code=code.strip().upper(), name=name.strip(), rate_bps=rate_bps)
        db.session.add(tax)
        db.session.flush()
        return tax

    return run_in_transaction(_op, commit=commit)


def set_price(
    scope: TenantScope,
    *,
    product_id: int,
    mrp_price_cents: int,
    sale_price_cents: int,
    variant_id: int | None = None,
    location_id: int | None = None,
    price_type: str = "standard",
    valid_from=None,
    valid_until=None,
    commit: bool = True,
) -> ProductPrice:
    """
    Write a price entry at the requested specificity.

    Enforces sale_price <= mrp_price on write (also a table CHECK).
    """
    def _op():
        scope.get(Product, product_id, "Product")
        if variant_id is not None:
            require_variant(scope, product_id, variant_id)
        if location_id is not None:
            scope.require_location(location_id)

        mrp = require_price_cents(mrp_price_cents, "mrp_price_cents")
        sale = require_price_cents(sale_price_cents, "sale_price_cents")
        if sale > mrp:
            raise ValidationError("sale_price_cents cannot exceed mrp_price_cents")

        starts = normalize_datetime(valid_from) or utcnow()
        ends = normalize_datetime(valid_until)
        if ends is not None and ends < starts:
            raise ValidationError("valid_until cannot be before valid_from")

        entry = ProductPrice(
            org_id=scope.org_id,
            product_id=product_id,
            variant_id=variant_id,
            location_id=location_id,
            price_type=price_type,
            mrp_price_cents=mrp,
            sale_price_cents=sale,
            valid_from=starts,
            valid_until=ends,
        )
        db.session.add(entry)
        db.session.flush()
        return entry

    return run_in_transaction(_op, commit=commit)
