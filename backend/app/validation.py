from __future__ import annotations

from typing import Any

from .errors import ValidationError


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for quantities, ids and cent amounts.

    Rejects bools, floats, scientific notation and decimal strings.
    """
    if value is None:
        raise ValidationError(f"{field} is required")
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def require_positive_quantity(value: Any, field: str = "quantity") -> int:
    qty = coerce_int(value, field)
    if qty <= 0:
        raise ValidationError(f"{field} must be greater than 0")
    return qty


def require_nonzero_quantity(value: Any, field: str = "quantity") -> int:
    qty = coerce_int(value, field)
    if qty == 0:
        raise ValidationError(f"{field} cannot be zero")
    return qty


def require_id(value: Any, field: str) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field} is required")
    ident = coerce_int(value, field)
    if ident <= 0:
        raise ValidationError(f"{field} is invalid")
    return ident


def require_price_cents(value: Any, field: str = "price_cents") -> int:
    price = coerce_int(value, field)
    if price < 0:
        raise ValidationError(f"{field} must be >= 0")
    if price > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS}")
    return price


def require_reason(value: Any, field: str = "reason") -> str:
    """Trimmed, non-empty free text."""
    if value is None:
        raise ValidationError(f"{field} is required")
    text = str(value).strip()
    if not text:
        raise ValidationError(f"{field} is required")
    return text


def optional_text(value: Any, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"text exceeds max length {max_length}")
    return text


def require_items(items: Any) -> list[dict]:
    """Items must be a non-empty list of mappings."""
    if not items or not isinstance(items, (list, tuple)):
        raise ValidationError("Items array cannot be empty")
    for item in items:
        if not isinstance(item, dict):
            raise ValidationError("Each item must be an object")
    return list(items)
