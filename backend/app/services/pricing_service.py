"""
Price Resolver

Resolution priority (first match wins), each filtered by
valid_from <= at AND (valid_until IS NULL OR valid_until >= at):

1. variant + price_type + location        (most specific)
2. variant + price_type + any location
3. product + price_type + location        (variant_id IS NULL)
4. product + price_type + any location    (variant_id IS NULL)
5. product.base_price_cents               (used for both MRP and sale)

All amounts are integer cents. Tax rates are basis points.
"""
from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import or_

from ..errors import ServiceError, ValidationError
from ..models import Product, ProductPrice
from ..time_utils import normalize_datetime, utcnow
from .catalog_service import require_variant
from .tenant_service import TenantScope

SOURCE_VARIANT_LOCATION = "variant_location"
SOURCE_VARIANT = "variant"
SOURCE_PRODUCT_LOCATION = "product_location"
SOURCE_PRODUCT = "product"
SOURCE_BASE_PRICE = "base_price"

PRICE_MODE_LENIENT = "lenient"
PRICE_MODE_STRICT = "strict"


def _price_query(scope: TenantScope, product_id: int, price_type: str, at: datetime):
    return scope.query(ProductPrice).filter(
        ProductPrice.product_id == product_id,
        ProductPrice.price_type == price_type,
        ProductPrice.valid_from <= at,
        or_(ProductPrice.valid_until.is_(None), ProductPrice.valid_until >= at),
    )


def _first(query):
    # Newest entry wins when several rows share a tier
    return query.order_by(ProductPrice.valid_from.desc(), ProductPrice.id.desc()).first()


def resolve_price(
    scope: TenantScope,
    product_id: int,
    variant_id: int | None = None,
    location_id: int | None = None,
    price_type: str = "standard",
    at=None,
) -> dict:
    """
    Resolve effective MRP and sale price.

    Returns:
        {"mrp_price_cents": int, "sale_price_cents": int, "source": str}

    Raises:
        NotFoundError: product (or given variant) not in this tenant
    """
    product = scope.get(Product, product_id, "Product")
    if variant_id is not None:
        require_variant(scope, product_id, variant_id)
    at = normalize_datetime(at) or utcnow()

    base = _price_query(scope, product.id, price_type, at)

    tiers = []
    if variant_id is not None and location_id is not None:
        tiers.append((SOURCE_VARIANT_LOCATION, base.filter(
            ProductPrice.variant_id == variant_id,
            ProductPrice.location_id == location_id,
        )))
    if variant_id is not None:
        tiers.append((SOURCE_VARIANT, base.filter(
            ProductPrice.variant_id == variant_id,
            ProductPrice.location_id.is_(None),
        )))
    if location_id is not None:
        tiers.append((SOURCE_PRODUCT_LOCATION, base.filter(
            ProductPrice.variant_id.is_(None),
            ProductPrice.location_id == location_id,
        )))
    tiers.append((SOURCE_PRODUCT, base.filter(
        ProductPrice.variant_id.is_(None),
        ProductPrice.location_id.is_(None),
    )))

    for source, query in tiers:
        entry = _first(query)
        if entry is not None:
            return {
                "mrp_price_cents": entry.mrp_price_cents,
                "sale_price_cents": entry.sale_price_cents,
                "source": source,
            }

    return {
        "mrp_price_cents": product.base_price_cents,
        "sale_price_cents": product.base_price_cents,
        "source": SOURCE_BASE_PRICE,
    }


def get_sale_price_cents(
    scope: TenantScope,
    product_id: int,
    variant_id: int | None = None,
    location_id: int | None = None,
    price_type: str = "standard",
) -> int:
    return resolve_price(scope, product_id, variant_id, location_id, price_type)["sale_price_cents"]


def validate_price(
    scope: TenantScope,
    product_id: int,
    variant_id: int | None,
    location_id: int | None,
    provided_cents: int,
    price_type: str = "standard",
) -> bool:
    """
    True when provided_cents is within PRICE_TOLERANCE_CENTS of the resolved
    sale price. Lookup failures are logged and reported as a mismatch.
    """
    tolerance = current_app.config.get("PRICE_TOLERANCE_CENTS", 2)
    try:
        current = get_sale_price_cents(scope, product_id, variant_id, location_id, price_type)
    except ServiceError:
        current_app.logger.exception("Price validation lookup failed for product %s", product_id)
        return False
    return abs(current - provided_cents) < tolerance


def check_line_price(
    scope: TenantScope,
    product_id: int,
    variant_id: int | None,
    location_id: int | None,
    provided_cents: int,
) -> bool:
    """
    Apply PRICE_VALIDATION_MODE to a provided unit price.

    lenient: mismatch is logged as a warning and accepted
    strict: mismatch raises ValidationError
    """
    if validate_price(scope, product_id, variant_id, location_id, provided_cents):
        return True

    mode = current_app.config.get("PRICE_VALIDATION_MODE", PRICE_MODE_LENIENT)
    if mode == PRICE_MODE_STRICT:
        raise ValidationError(
            f"Unit price {provided_cents} does not match current price for product {product_id}"
        )
    current_app.logger.warning(
        "Price validation failed for product %s variant %s (provided %s), continuing",
        product_id, variant_id, provided_cents,
    )
    return False


def calculate_tax_cents(amount_cents: int, rate_bps: int) -> int:
    """Tax on an amount, nearest-cent rounding (half-up)."""
    if not rate_bps or amount_cents == 0:
        return 0
    raw = amount_cents * rate_bps
    sign = -1 if raw < 0 else 1
    return sign * ((abs(raw) + 5_000) // 10_000)


def get_tax_rate_bps(scope: TenantScope, product_id: int, variant_id: int | None = None) -> int:
    """Variant's active tax first, then the product's fallback rate, else 0."""
    product = scope.get(Product, product_id, "Product")
    if variant_id is not None:
        variant = require_variant(scope, product_id, variant_id)
        if variant.tax is not None and variant.tax.is_active:
            return variant.tax.rate_bps
    return product.tax_rate_bps or 0


def calculate_line_total(
    scope: TenantScope,
    product_id: int,
    quantity: int,
    unit_price_cents: int,
    variant_id: int | None = None,
) -> dict:
    subtotal = quantity * unit_price_cents
    tax = calculate_tax_cents(subtotal, get_tax_rate_bps(scope, product_id, variant_id))
    return {
        "subtotal_cents": subtotal,
        "tax_cents": tax,
        "total_cents": subtotal + tax,
    }
