# Overview: Pytest coverage for payment recording, idempotency and refunds.

import pytest

from app.errors import ConflictError, NotFoundError, ValidationError
from app.extensions import db
from app.models import Payment
from app.services.order_service import create_order
from app.services.payment_service import (
    list_order_payments,
    mark_payment_failed,
    record_payment,
    refund_payment,
)


@pytest.fixture
def order_a(scope_a, stocked_a):
    product, variant, location = stocked_a
    return create_order(
        scope_a,
        items=[{"product_id": product.id, "variant_id": variant.id, "quantity": 1}],
        location_id=location.id,
    )


@pytest.fixture
def second_order_a(scope_a, stocked_a, order_a):
    product, variant, location = stocked_a
    return create_order(
        scope_a,
        items=[{"product_id": product.id, "variant_id": variant.id, "quantity": 1}],
        location_id=location.id,
    )


class TestRecordPayment:
    def test_completed_payment_marks_order_paid(self, scope_a, order_a):
        payment = record_payment(
            scope_a, order_id=order_a.id, amount_cents=1000, payment_method="card", gateway_reference="pi_1"
        )

        assert payment.order_id == order_a.id
        assert order_a.payment_status == "paid"

    def test_duplicate_notification_is_idempotent(self, scope_a, order_a):
        first = record_payment(
            scope_a, order_id=order_a.id, amount_cents=1000, payment_method="card", gateway_reference="pi_1"
        )
        second = record_payment(
            scope_a, order_id=order_a.id, amount_cents=1000, payment_method="card", gateway_reference="pi_1"
        )

        assert first.id == second.id
        assert db.session.query(Payment).filter_by(gateway_reference="pi_1").count() == 1

    def test_reference_linked_to_other_order_conflicts(self, scope_a, order_a, second_order_a):
        record_payment(
            scope_a, order_id=order_a.id, amount_cents=1000, payment_method="card", gateway_reference="pi_1"
        )

        with pytest.raises(ConflictError) as exc:
            record_payment(
                scope_a, order_id=second_order_a.id, amount_cents=1000, payment_method="card",
                gateway_reference="pi_1",
            )
        assert exc.value.message == "Payment already linked to a different order"

    def test_unlinked_record_is_linked(self, scope_a, org_a, order_a):
        db.session.add(Payment(
            org_id=org_a.id, amount_cents=1000, status="completed", payment_method="card", gateway_reference="pi_9"
        ))
        db.session.commit()

        payment = record_payment(
            scope_a, order_id=order_a.id, amount_cents=1000, payment_method="card", gateway_reference="pi_9"
        )

        assert payment.order_id == order_a.id
        assert order_a.payment_status == "paid"

    def test_confirmation_upgrades_pending_reference(self, scope_a, stocked_a):
        product, variant, location = stocked_a
        order = create_order(
            scope_a,
            items=[{"product_id": product.id, "variant_id": variant.id, "quantity": 1}],
            location_id=location.id,
            payment_method="card",
            payment_reference="pi_9",
        )
        assert order.payment_status == "pending"

        payment = record_payment(
            scope_a, order_id=order.id, amount_cents=1000, payment_method="card", gateway_reference="pi_9"
        )

        assert payment.status == "completed"
        assert order.payment_status == "paid"
        assert db.session.query(Payment).filter_by(gateway_reference="pi_9").count() == 1

    def test_late_pending_does_not_regress_completed_reference(self, scope_a, order_a):
        record_payment(
            scope_a, order_id=order_a.id, amount_cents=1000, payment_method="card", gateway_reference="pi_3"
        )
        payment = record_payment(
            scope_a, order_id=order_a.id, amount_cents=1000, payment_method="card",
            status="pending", gateway_reference="pi_3",
        )

        assert payment.status == "completed"
        assert order_a.payment_status == "paid"

    def test_failure_does_not_downgrade_paid_order(self, scope_a, order_a):
        record_payment(scope_a, order_id=order_a.id, amount_cents=1000, payment_method="card")
        mark_payment_failed(scope_a, order_a.id, "pi_late_failure")

        assert order_a.payment_status == "paid"

    def test_failure_marks_unpaid_order_failed(self, scope_a, order_a):
        mark_payment_failed(scope_a, order_a.id, "pi_2")

        assert order_a.payment_status == "failed"

    def test_invalid_status_rejected(self, scope_a, order_a):
        with pytest.raises(ValidationError):
            record_payment(scope_a, order_id=order_a.id, amount_cents=1, payment_method="card", status="maybe")

    def test_cross_tenant_order_is_not_found(self, scope_b, order_a):
        with pytest.raises(NotFoundError):
            record_payment(scope_b, order_id=order_a.id, amount_cents=1, payment_method="card")


class TestRefunds:
    def test_full_refund_marks_order_refunded(self, scope_a, order_a):
        payment = record_payment(scope_a, order_id=order_a.id, amount_cents=1000, payment_method="card")

        refund = refund_payment(scope_a, payment.id, reason="Damaged")

        assert refund.amount_cents == -1000
        assert refund.original_payment_id == payment.id
        assert db.session.get(Payment, payment.id).status == "refunded"
        assert order_a.payment_status == "refunded"

    def test_partial_refund_keeps_order_paid(self, scope_a, order_a):
        payment = record_payment(scope_a, order_id=order_a.id, amount_cents=1000, payment_method="card")

        refund_payment(scope_a, payment.id, 400)

        assert db.session.get(Payment, payment.id).status == "completed"
        assert order_a.payment_status == "paid"
        with pytest.raises(ValidationError):
            refund_payment(scope_a, payment.id, 700)

    def test_list_order_payments(self, scope_a, order_a):
        payment = record_payment(scope_a, order_id=order_a.id, amount_cents=1000, payment_method="card")
        refund_payment(scope_a, payment.id, 250)

        assert [p.amount_cents for p in list_order_payments(scope_a, order_a.id)] == [1000, -250]
