"""
Order Orchestrator

WHY: An order touches every other part of the core. Pricing resolves and
checks each line, reservations hold stock while the order is pending, the
ledger receives the realized movements once, and cancellation undoes
whichever of those already happened.

STATE MACHINE:
    pending -> processing -> shipped -> delivered
        \\__________\\___________\\______-> cancelled

- Terminal states: cancelled, delivered. Leaving one is a ConflictError.
- The first move to any non-pending, non-cancelled status commits stock
  (inventory_updated flips exactly once):
      sales    -> SALE movements (negative), reservations released
      return   -> RETURN movements (positive), nothing was reserved
      purchase -> PURCHASE movements (positive)
- Cancel:
      pending sales order        -> release its reservations
      committed sales order      -> RETURN reversal referencing the order,
                                    net of committed returns; open returns
                                    block the cancel (ConflictError)
      committed return/purchase  -> ConflictError (create a new order instead)

TRANSACTIONS: every operation below is one unit of work. Line validation,
pricing, reservations, the order row and its lines either all land or none
do; there is no hand-written compensation.
"""
from __future__ import annotations

from flask import current_app

from ..errors import ConflictError, ValidationError
from ..extensions import db
from ..models import Order, OrderLine
from ..models.inventory import MOVEMENT_RETURN
from ..time_utils import utcnow
from ..validation import (
    optional_text,
    require_id,
    require_items,
    require_positive_quantity,
    require_price_cents,
)
from .catalog_service import get_product, resolve_variant_id
from .concurrency import run_in_transaction
from .document_service import next_document_number
from .ledger_service import record_movement, record_order_movements, record_purchase_receipt
from .payment_service import (
    ORDER_PAYMENT_STATUSES,
    PAYMENT_STATUS_PAID,
    RECORD_COMPLETED,
    RECORD_PENDING,
    record_payment,
)
from .pricing_service import calculate_line_total, check_line_price, resolve_price
from .reservation_service import release_stock, reserve_stock
from .tenant_service import TenantScope


ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_PROCESSING = "processing"
ORDER_STATUS_SHIPPED = "shipped"
ORDER_STATUS_DELIVERED = "delivered"
ORDER_STATUS_CANCELLED = "cancelled"

ORDER_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PROCESSING,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_CANCELLED,
)
TERMINAL_STATUSES = (ORDER_STATUS_CANCELLED, ORDER_STATUS_DELIVERED)

ORDER_TYPE_SALES = "sales"
ORDER_TYPE_PURCHASE = "purchase"
ORDER_TYPE_RETURN = "return"
ORDER_TYPES = (ORDER_TYPE_SALES, ORDER_TYPE_PURCHASE, ORDER_TYPE_RETURN)

_NUMBER_PREFIX = {
    ORDER_TYPE_SALES: "ORD",
    ORDER_TYPE_PURCHASE: "PO",
    ORDER_TYPE_RETURN: "RET",
}


def _line_items(order: Order) -> list[dict]:
    return [
        {
            "product_id": line.product_id,
            "variant_id": line.variant_id,
            "location_id": line.location_id,
            "quantity": line.quantity,
        }
        for line in order.lines
    ]


def _prepare_line(scope: TenantScope, item: dict, default_location_id: int, order_type: str) -> dict:
    """Validate and price one requested line. Raises before anything is written."""
    product_id = require_id(item.get("product_id"), "product_id")
    get_product(scope, product_id, require_active=True)
    variant_id = resolve_variant_id(scope, product_id, item.get("variant_id"))

    location_id = item.get("location_id") or default_location_id
    scope.require_location(location_id, active_only=True)

    quantity = require_positive_quantity(item.get("quantity"))

    provided = item.get("unit_price_cents")
    if provided is None:
        unit_price = resolve_price(scope, product_id, variant_id, location_id)["sale_price_cents"]
    else:
        unit_price = require_price_cents(provided, "unit_price_cents")
        if order_type == ORDER_TYPE_SALES:
            check_line_price(scope, product_id, variant_id, location_id, unit_price)

    totals = calculate_line_total(scope, product_id, quantity, unit_price, variant_id)
    return {
        "product_id": product_id,
        "variant_id": variant_id,
        "location_id": location_id,
        "quantity": quantity,
        "unit_price_cents": unit_price,
        "tax_cents": totals["tax_cents"],
        "line_total_cents": totals["total_cents"],
        "subtotal_cents": totals["subtotal_cents"],
    }


def create_order(
    scope: TenantScope,
    *,
    items: list[dict],
    location_id: int | None = None,
    user_id: int | None = None,
    order_type: str = ORDER_TYPE_SALES,
    payment_method: str = "cash",
    payment_status: str = "pending",
    payment_reference: str | None = None,
    original_order_id: int | None = None,
    notes: str | None = None,
    commit: bool = True,
) -> Order:
    """
    Create an order in pending status.

    Sales orders reserve stock for every line (all-or-nothing). Totals are
    always computed from the priced lines. A payment reference accompanying
    creation is recorded through the payment service.

    Raises:
        ValidationError, NotFoundError, InsufficientStockError; on any of
        them nothing is persisted and no reservation remains.
    """
    def _op():
        if order_type not in ORDER_TYPES:
            raise ValidationError(f"Invalid order type: {order_type}")
        if payment_status not in ORDER_PAYMENT_STATUSES:
            raise ValidationError(f"Invalid payment status: {payment_status}")
        requested = require_items(items)

        if location_id is not None:
            location = scope.require_location(location_id, active_only=True)
        else:
            location = scope.default_location()
            if location is None:
                raise ValidationError("No active location available for order")

        original = None
        if original_order_id is not None:
            original = scope.get(Order, original_order_id, "Order")

        lines = [_prepare_line(scope, item, location.id, order_type) for item in requested]

        if order_type == ORDER_TYPE_SALES:
            for line in lines:
                reserve_stock(
                    scope,
                    line["product_id"],
                    line["location_id"],
                    line["variant_id"],
                    line["quantity"],
                    commit=False,
                )

        order = Order(
            org_id=scope.org_id,
            order_number=next_document_number(
                scope, document_type=f"ORDER_{order_type.upper()}", prefix=_NUMBER_PREFIX[order_type]
            ),
            user_id=user_id,
            location_id=location.id,
            order_type=order_type,
            original_order_id=original.id if original is not None else None,
            status=ORDER_STATUS_PENDING,
            payment_status=payment_status,
            payment_method=payment_method,
            payment_reference=optional_text(payment_reference, 128),
            subtotal_cents=sum(line["subtotal_cents"] for line in lines),
            tax_cents=sum(line["tax_cents"] for line in lines),
            total_cents=sum(line["line_total_cents"] for line in lines),
            notes=optional_text(notes),
        )
        db.session.add(order)
        db.session.flush()

        for line in lines:
            db.session.add(OrderLine(
                org_id=scope.org_id,
                order_id=order.id,
                product_id=line["product_id"],
                variant_id=line["variant_id"],
                location_id=line["location_id"],
                quantity=line["quantity"],
                unit_price_cents=line["unit_price_cents"],
                tax_cents=line["tax_cents"],
                line_total_cents=line["line_total_cents"],
            ))
        db.session.flush()

        if order.payment_reference:
            record_payment(
                scope,
                order_id=order.id,
                amount_cents=order.total_cents,
                payment_method=payment_method,
                status=RECORD_COMPLETED if payment_status == PAYMENT_STATUS_PAID else RECORD_PENDING,
                gateway_reference=order.payment_reference,
                commit=False,
            )

        current_app.logger.info(
            "Created %s order %s (%s lines, total %s) for org %s",
            order_type, order.order_number, len(lines), order.total_cents, scope.org_id,
        )
        return order

    return run_in_transaction(_op, commit=commit)


def _commit_inventory(scope: TenantScope, order: Order, created_by: int | None) -> None:
    """Write the order's ledger movements once and release sales reservations."""
    if order.inventory_updated:
        return

    items = _line_items(order)
    if order.order_type == ORDER_TYPE_PURCHASE:
        record_purchase_receipt(
            scope,
            reference_id=str(order.id),
            reference_type="order",
            items=items,
            created_by=created_by,
            commit=False,
        )
    else:
        record_order_movements(
            scope,
            order_id=order.id,
            order_type=order.order_type,
            items=items,
            created_by=created_by,
            commit=False,
        )

    if order.order_type == ORDER_TYPE_SALES:
        for item in items:
            release_stock(
                scope, item["product_id"], item["location_id"], item["variant_id"], item["quantity"],
                commit=False,
            )

    order.inventory_updated = True
    current_app.logger.info("Committed inventory for order %s", order.order_number)


def update_order_status(
    scope: TenantScope,
    order_id: int,
    status: str,
    *,
    payment_status: str | None = None,
    payment_method: str | None = None,
    tracking_number: str | None = None,
    notes: str | None = None,
    created_by: int | None = None,
    commit: bool = True,
) -> Order:
    """
    Move an order to a new status.

    Moving to cancelled goes through cancel_order (notes become the cancel
    reason). Any other non-pending status commits the order's stock the
    first time it is reached. Payment and tracking fields apply either way.
    """
    def _op():
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Invalid order status: {status}")
        if payment_status is not None and payment_status not in ORDER_PAYMENT_STATUSES:
            raise ValidationError(f"Invalid payment status: {payment_status}")

        if status == ORDER_STATUS_CANCELLED:
            order = cancel_order(scope, order_id, reason=notes, created_by=created_by, commit=False)
        else:
            order = scope.get(Order, order_id, "Order", lock=True)

            if order.status in TERMINAL_STATUSES and status != order.status:
                raise ConflictError(f"Cannot change status of a {order.status} order")
            if status == ORDER_STATUS_PENDING and order.status != ORDER_STATUS_PENDING:
                raise ConflictError("Order cannot return to pending")

            if status != ORDER_STATUS_PENDING:
                _commit_inventory(scope, order, created_by)

            order.status = status
            if notes is not None:
                order.notes = optional_text(notes)

        if payment_status is not None:
            order.payment_status = payment_status
        if payment_method is not None:
            order.payment_method = payment_method
        if tracking_number is not None:
            order.tracking_number = optional_text(tracking_number, 128)

        db.session.flush()
        return order

    return run_in_transaction(_op, commit=commit)


def cancel_order(
    scope: TenantScope,
    order_id: int,
    reason: str | None = None,
    *,
    created_by: int | None = None,
    commit: bool = True,
) -> Order:
    """
    Cancel an order and undo its stock effect.

    A committed sales order is reversed net of its committed returns, and
    cannot be cancelled while a return against it is still open.
    Cancelling an already cancelled order returns it unchanged.
    """
    def _op():
        order = scope.get(Order, order_id, "Order", lock=True)

        if order.status == ORDER_STATUS_CANCELLED:
            return order
        if order.status in TERMINAL_STATUSES:
            raise ConflictError(f"Cannot cancel a {order.status} order")

        if not order.inventory_updated:
            if order.order_type == ORDER_TYPE_SALES:
                for item in _line_items(order):
                    release_stock(
                        scope, item["product_id"], item["location_id"], item["variant_id"], item["quantity"],
                        commit=False,
                    )
        elif order.order_type == ORDER_TYPE_SALES:
            if _has_open_returns(scope, order):
                raise ConflictError(
                    f"Order {order.order_number} has open returns; cancel or complete them first"
                )
            # Stock already taken back by committed returns is not credited again
            returned = _returned_quantities(scope, order)
            for item in _line_items(order):
                key = (item["product_id"], item["variant_id"])
                covered = min(returned.get(key, 0), item["quantity"])
                returned[key] = returned.get(key, 0) - covered
                quantity = item["quantity"] - covered
                if quantity <= 0:
                    continue
                record_movement(
                    scope,
                    product_id=item["product_id"],
                    variant_id=item["variant_id"],
                    location_id=item["location_id"],
                    movement_type=MOVEMENT_RETURN,
                    quantity=quantity,
                    reference_type="order",
                    reference_id=order.id,
                    notes=f"Cancelled order {order.order_number}",
                    created_by=created_by,
                    commit=False,
                )
        else:
            raise ConflictError(
                f"Cannot cancel a {order.order_type} order after its stock was committed"
            )

        order.status = ORDER_STATUS_CANCELLED
        order.cancelled_at = utcnow()
        memo = optional_text(reason)
        if memo:
            order.notes = f"{order.notes}\n{memo}" if order.notes else memo

        db.session.flush()
        current_app.logger.info("Cancelled order %s", order.order_number)
        return order

    return run_in_transaction(_op, commit=commit)


def get_order(scope: TenantScope, order_id: int) -> Order:
    return scope.get(Order, order_id, "Order")


def list_orders(
    scope: TenantScope,
    *,
    status: str | None = None,
    order_type: str | None = None,
    location_id: int | None = None,
    limit: int = 100,
) -> list[Order]:
    q = scope.query(Order)
    if status is not None:
        q = q.filter(Order.status == status)
    if order_type is not None:
        q = q.filter(Order.order_type == order_type)
    if location_id is not None:
        q = q.filter(Order.location_id == location_id)
    return q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()


def _returned_quantities(scope: TenantScope, original: Order) -> dict[tuple[int, int], int]:
    rows = (
        scope.query(OrderLine)
        .join(Order, Order.id == OrderLine.order_id)
        .filter(
            Order.original_order_id == original.id,
            Order.order_type == ORDER_TYPE_RETURN,
            Order.status != ORDER_STATUS_CANCELLED,
        )
        .all()
    )
    returned: dict[tuple[int, int], int] = {}
    for line in rows:
        key = (line.product_id, line.variant_id)
        returned[key] = returned.get(key, 0) + line.quantity
    return returned


def _has_open_returns(scope: TenantScope, original: Order) -> bool:
    return (
        scope.query(Order)
        .filter(
            Order.original_order_id == original.id,
            Order.order_type == ORDER_TYPE_RETURN,
            Order.status != ORDER_STATUS_CANCELLED,
            Order.inventory_updated.is_(False),
        )
        .first()
        is not None
    )


def create_return_order(
    scope: TenantScope,
    original_order_id: int,
    items: list[dict],
    *,
    location_id: int | None = None,
    user_id: int | None = None,
    notes: str | None = None,
    commit: bool = True,
) -> Order:
    """
    Create a return order against a committed sales order.

    Each returned quantity is capped by what was sold minus what earlier
    (non-cancelled) returns already took back. Unit prices default to the
    original sale prices. Stock comes back when the return is advanced.
    """
    def _op():
        original = scope.get(Order, original_order_id, "Order", lock=True)
        if original.order_type != ORDER_TYPE_SALES:
            raise ConflictError("Returns can only be created for sales orders")
        if original.status == ORDER_STATUS_CANCELLED or not original.inventory_updated:
            raise ConflictError("Order has no committed stock to return")

        sold: dict[tuple[int, int], dict] = {}
        for line in original.lines:
            entry = sold.setdefault((line.product_id, line.variant_id), {
                "quantity": 0,
                "unit_price_cents": line.unit_price_cents,
                "location_id": line.location_id,
            })
            entry["quantity"] += line.quantity

        returned = _returned_quantities(scope, original)
        requested: dict[tuple[int, int], int] = {}
        return_items = []
        for item in require_items(items):
            product_id = require_id(item.get("product_id"), "product_id")
            variant_id = resolve_variant_id(scope, product_id, item.get("variant_id"))
            qty = require_positive_quantity(item.get("quantity"))
            key = (product_id, variant_id)
            if key not in sold:
                raise ValidationError(
                    f"Product {product_id} variant {variant_id} is not on order {original.order_number}"
                )
            requested[key] = requested.get(key, 0) + qty
            remaining = sold[key]["quantity"] - returned.get(key, 0)
            if requested[key] > remaining:
                raise ValidationError(
                    f"Return quantity exceeds remaining quantity ({remaining}) "
                    f"for product {product_id} variant {variant_id}"
                )
            return_items.append({
                "product_id": product_id,
                "variant_id": variant_id,
                "quantity": qty,
                "location_id": item.get("location_id") or sold[key]["location_id"],
                "unit_price_cents": item.get("unit_price_cents", sold[key]["unit_price_cents"]),
            })

        return create_order(
            scope,
            items=return_items,
            location_id=location_id or original.location_id,
            user_id=user_id if user_id is not None else original.user_id,
            order_type=ORDER_TYPE_RETURN,
            payment_method=original.payment_method,
            original_order_id=original.id,
            notes=notes,
            commit=False,
        )

    return run_in_transaction(_op, commit=commit)
