# Overview: Payment collaborator; applies reported payment outcomes to orders.

"""
Payment Recording Service

WHY: The gateway itself is outside this package. What matters here is the
effect of a payment notification on the order: payment_status moves to
paid, failed or refunded, and the notification is recorded once.

DESIGN PRINCIPLES:
- Idempotent on gateway_reference: (org_id, gateway_reference) is unique,
  and the insert is ON CONFLICT DO NOTHING followed by a re-read, so a
  notification delivered twice (even concurrently) maps onto one row.
- A reference already linked to a different order is a conflict.
- A reference recorded without an order is linked on first sight.
- A repeated reference may move its record forward (pending, then failed,
  then completed) and the order follows; it never moves backward.
- Refunds are separate rows with negative amounts.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..errors import ConflictError, ValidationError
from ..extensions import db
from ..models import Order, Payment
from ..validation import coerce_int, optional_text
from .concurrency import dialect_insert, run_in_transaction
from .tenant_service import TenantScope


# =============================================================================
# STATUS CONSTANTS
# =============================================================================

# Order.payment_status
PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUS_FAILED = "failed"
PAYMENT_STATUS_REFUNDED = "refunded"

ORDER_PAYMENT_STATUSES = (
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_FAILED,
    PAYMENT_STATUS_REFUNDED,
)

# Payment.status
RECORD_COMPLETED = "completed"
RECORD_PENDING = "pending"
RECORD_FAILED = "failed"
RECORD_REFUNDED = "refunded"
RECORD_REFUND = "refund"

RECORD_STATUSES = (RECORD_COMPLETED, RECORD_PENDING, RECORD_FAILED)

_ORDER_EFFECT = {
    RECORD_COMPLETED: PAYMENT_STATUS_PAID,
    RECORD_FAILED: PAYMENT_STATUS_FAILED,
    RECORD_PENDING: PAYMENT_STATUS_PENDING,
}


# Later outcomes for the same reference only move forward
_RECORD_RANK = {RECORD_PENDING: 0, RECORD_FAILED: 1, RECORD_COMPLETED: 2}


def _apply_to_order(order: Order, record_status: str) -> None:
    target = _ORDER_EFFECT.get(record_status)
    if target is None:
        return
    # A later failure/pending notification never downgrades a paid order
    if order.payment_status == PAYMENT_STATUS_PAID and target != PAYMENT_STATUS_PAID:
        return
    if order.payment_status == PAYMENT_STATUS_REFUNDED:
        return
    order.payment_status = target


def _find_by_reference(scope: TenantScope, gateway_reference: str) -> Payment | None:
    return (
        scope.query(Payment)
        .filter(Payment.gateway_reference == gateway_reference)
        .populate_existing()
        .first()
    )


def _resolve_existing(
    scope: TenantScope,
    existing: Payment,
    order: Order,
    status: str | None = None,
    amount_cents: int | None = None,
) -> Payment:
    if existing.order_id is not None and existing.order_id != order.id:
        raise ConflictError(
            "Payment already linked to a different order",
            details={"gateway_reference": existing.gateway_reference},
        )

    changed = False
    if existing.order_id is None:
        existing.order_id = order.id
        changed = True
        current_app.logger.info(
            "Linked payment %s (%s) to order %s", existing.id, existing.gateway_reference, order.id
        )

    current_rank = _RECORD_RANK.get(existing.status, len(_RECORD_RANK))
    if status is not None and _RECORD_RANK.get(status, -1) > current_rank:
        current_app.logger.info(
            "Payment %s (%s) moved from %s to %s",
            existing.id, existing.gateway_reference, existing.status, status,
        )
        existing.status = status
        if amount_cents:
            existing.amount_cents = amount_cents
        changed = True

    if changed:
        db.session.flush()
        _apply_to_order(order, existing.status)
    return existing


def record_payment(
    scope: TenantScope,
    *,
    order_id: int,
    amount_cents: int,
    payment_method: str,
    status: str = RECORD_COMPLETED,
    gateway_reference: str | None = None,
    note: str | None = None,
    commit: bool = True,
) -> Payment:
    """
    Record a payment outcome for an order and update order.payment_status.

    Returns the stored Payment (the pre-existing one for a duplicate
    gateway_reference on the same order).

    Raises:
        ValidationError: unknown status, negative amount, missing method
        NotFoundError: order not in this tenant
        ConflictError: gateway_reference already linked to another order
    """
    def _op():
        if status not in RECORD_STATUSES:
            raise ValidationError(f"Invalid payment status: {status}")
        amount = coerce_int(amount_cents, "amount_cents")
        if amount < 0:
            raise ValidationError("amount_cents must be >= 0")
        method = optional_text(payment_method, 32)
        if not method:
            raise ValidationError("payment_method is required")
        reference = optional_text(gateway_reference, 128)
        memo = optional_text(note, 255)

        order = scope.get(Order, order_id, "Order")

        if reference is None:
            payment = Payment(
                org_id=scope.org_id,
                order_id=order.id,
                amount_cents=amount,
                status=status,
                payment_method=method,
                note=memo,
            )
            db.session.add(payment)
            db.session.flush()
            _apply_to_order(order, status)
            return payment

        existing = _find_by_reference(scope, reference)
        if existing is not None:
            return _resolve_existing(scope, existing, order, status, amount)

        values = {
            "org_id": scope.org_id,
            "order_id": order.id,
            "amount_cents": amount,
            "status": status,
            "payment_method": method,
            "gateway_reference": reference,
            "note": memo,
        }
        insert = dialect_insert()
        if insert is not None:
            result = db.session.execute(
                insert(Payment).values(**values).on_conflict_do_nothing(
                    index_elements=["org_id", "gateway_reference"]
                )
            )
            payment = _find_by_reference(scope, reference)
            if not result.rowcount:
                # Lost the race to a concurrent delivery of the same notification
                return _resolve_existing(scope, payment, order, status, amount)
        else:
            payment = Payment(**values)
            db.session.add(payment)
            db.session.flush()

        _apply_to_order(order, status)
        return payment

    return run_in_transaction(_op, commit=commit)


def mark_payment_failed(
    scope: TenantScope,
    order_id: int,
    gateway_reference: str | None = None,
    *,
    payment_method: str = "gateway",
    note: str | None = None,
    commit: bool = True,
) -> Payment:
    """Record a failed payment attempt; a paid order keeps its paid status."""
    return record_payment(
        scope,
        order_id=order_id,
        amount_cents=0,
        payment_method=payment_method,
        status=RECORD_FAILED,
        gateway_reference=gateway_reference,
        note=note,
        commit=commit,
    )


def refund_payment(
    scope: TenantScope,
    payment_id: int,
    amount_cents: int | None = None,
    reason: str | None = None,
    *,
    commit: bool = True,
) -> Payment:
    """
    Refund part or all of a completed payment.

    A full refund marks the original payment refunded and, when it leaves
    the order with nothing paid, moves order.payment_status to refunded.
    """
    def _op():
        original = scope.get(Payment, payment_id, "Payment", lock=True)
        if original.status not in (RECORD_COMPLETED, RECORD_REFUNDED) or original.amount_cents <= 0:
            raise ConflictError("Only completed payments can be refunded")

        already = (
            db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
            .filter(Payment.org_id == scope.org_id, Payment.original_payment_id == original.id)
            .scalar()
        )
        remaining = original.amount_cents + int(already or 0)
        amount = remaining if amount_cents is None else coerce_int(amount_cents, "amount_cents")
        if amount <= 0:
            raise ValidationError("Refund amount must be greater than 0")
        if amount > remaining:
            raise ValidationError(f"Refund exceeds refundable amount ({remaining})")

        refund = Payment(
            org_id=scope.org_id,
            order_id=original.order_id,
            amount_cents=-amount,
            status=RECORD_REFUND,
            payment_method=original.payment_method,
            original_payment_id=original.id,
            note=optional_text(reason, 255),
        )
        db.session.add(refund)

        if amount == remaining:
            original.status = RECORD_REFUNDED

        if original.order_id is not None:
            order = scope.get(Order, original.order_id, "Order")
            db.session.flush()
            net = (
                db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
                .filter(
                    Payment.org_id == scope.org_id,
                    Payment.order_id == order.id,
                    Payment.status.in_((RECORD_COMPLETED, RECORD_REFUNDED, RECORD_REFUND)),
                )
                .scalar()
            )
            if int(net or 0) <= 0:
                order.payment_status = PAYMENT_STATUS_REFUNDED

        db.session.flush()
        return refund

    return run_in_transaction(_op, commit=commit)


def list_order_payments(scope: TenantScope, order_id: int) -> list[Payment]:
    order = scope.get(Order, order_id, "Order")
    return (
        scope.query(Payment)
        .filter(Payment.order_id == order.id)
        .order_by(Payment.created_at.asc(), Payment.id.asc())
        .all()
    )
