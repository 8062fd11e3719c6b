"""Unit tests for order transition rules and invariants (no database)."""
from datetime import datetime, timedelta, timezone

import pytest

from apps.orders.domain import (
    InvalidOrder,
    Order,
    OrderDraft,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    intent_id_of,
    plan_transition,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_order(payment_status=PaymentStatus.COMPLETED, paid_at=None, refunded_at=None):
    return Order(
        id="o1",
        buyer_id="buyer-1",
        buyer_name="Hanako",
        items=[],
        subtotal=1000,
        shipping_fee=0,
        total_amount=1000,
        payment_method=PaymentMethod.CARD,
        payment_status=payment_status,
        order_status=OrderStatus.CONFIRMED,
        payment_intent_id="pi_1",
        shipping_address=None,
        created_at=NOW,
        updated_at=NOW,
        paid_at=paid_at,
        refunded_at=refunded_at,
    )


def test_success_confirms_and_stamps_paid_at():
    patch = plan_transition(make_order(PaymentStatus.PENDING), "payment_intent.succeeded", {}, NOW)
    assert patch.payment_status == PaymentStatus.COMPLETED
    assert patch.order_status == OrderStatus.CONFIRMED
    assert patch.paid_at == NOW


def test_success_keeps_existing_paid_at():
    earlier = NOW - timedelta(hours=1)
    patch = plan_transition(make_order(paid_at=earlier), "payment_intent.succeeded", {}, NOW)
    assert patch.paid_at == earlier


def test_failure_uses_processor_message():
    payload = {"last_payment_error": {"message": "Insufficient funds."}}
    patch = plan_transition(make_order(PaymentStatus.PENDING), "payment_intent.payment_failed", payload, NOW)
    assert patch.payment_status == PaymentStatus.FAILED
    assert patch.failure_reason == "Insufficient funds."
    assert patch.order_status is None


@pytest.mark.parametrize(
    "current, event_type",
    [
        (PaymentStatus.COMPLETED, "payment_intent.payment_failed"),
        (PaymentStatus.REFUNDED, "payment_intent.payment_failed"),
        (PaymentStatus.REFUNDED, "payment_intent.succeeded"),
    ],
)
def test_payment_status_never_moves_backwards(current, event_type):
    assert plan_transition(make_order(current), event_type, {}, NOW) is None


def test_failed_payment_can_still_succeed():
    patch = plan_transition(make_order(PaymentStatus.FAILED), "payment_intent.succeeded", {}, NOW)
    assert patch.payment_status == PaymentStatus.COMPLETED


def test_refund_cancels_and_keeps_first_refunded_at():
    earlier = NOW - timedelta(days=1)
    patch = plan_transition(make_order(PaymentStatus.REFUNDED, refunded_at=earlier), "charge.refunded", {}, NOW)
    assert patch.order_status == OrderStatus.CANCELLED
    assert patch.refunded_at == earlier


def test_unknown_event_type_changes_nothing():
    assert plan_transition(make_order(), "customer.created", {}, NOW) is None


def test_intent_id_of_charge_and_intent_events():
    assert intent_id_of("payment_intent.succeeded", {"id": "pi_1"}) == "pi_1"
    assert intent_id_of("charge.refunded", {"id": "ch_1", "payment_intent": "pi_2"}) == "pi_2"
    assert intent_id_of("charge.refunded", {"id": "ch_1", "payment_intent": {"id": "pi_3"}}) == "pi_3"
    assert intent_id_of("charge.refunded", {"id": "ch_1"}) is None


def test_draft_totals_must_add_up():
    item = OrderItem(product_id="p1", product_name="P1", price=500, quantity=2, seller_id="s1")
    OrderDraft(buyer_id="b", items=[item], subtotal=1000, shipping_fee=700, total_amount=1700).check_totals()

    with pytest.raises(InvalidOrder):
        OrderDraft(buyer_id="b", items=[item], subtotal=1000, shipping_fee=700, total_amount=1000).check_totals()
    with pytest.raises(InvalidOrder):
        OrderDraft(buyer_id="b", items=[item], subtotal=900, shipping_fee=0, total_amount=900).check_totals()
