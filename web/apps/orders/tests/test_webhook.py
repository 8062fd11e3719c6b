"""API tests for processor webhook reconciliation.

Events are signed the way the processor signs them (see ``conftest.py``) and
posted to the webhook endpoint. The catalog is the in-process stub, so the
reservation side of each event can be checked as well.
"""
import time

import pytest
from django.db import DatabaseError

from apps.checkout.domain import ProductStatus
from apps.orders.domain import OrderStatus, PaymentStatus
from apps.orders.models import OrderModel, ProcessedWebhookEvent

SUCCEEDED = "payment_intent.succeeded"
FAILED = "payment_intent.payment_failed"
REFUNDED = "charge.refunded"


@pytest.fixture
def held_p1(add_product):
    return add_product("p1", status=ProductStatus.RESERVED, reserved_by="buyer-1")


@pytest.mark.django_db
def test_success_event_marks_order_paid_and_product_sold(post_webhook, intent_event, make_order, held_p1, catalog):
    order = make_order(payment_intent_id="pi_1")

    r = post_webhook(intent_event("evt_1", SUCCEEDED, "pi_1"))

    assert r.status_code == 200
    assert r.json() == {"received": True}
    obj = OrderModel.objects.get(id=order.id)
    assert obj.payment_status == PaymentStatus.COMPLETED.value
    assert obj.order_status == OrderStatus.CONFIRMED.value
    assert obj.paid_at is not None
    assert obj.updated_at >= obj.created_at
    product = catalog.lookup(["p1"])["p1"]
    assert product.status == ProductStatus.SOLD
    assert product.reserved_by == "buyer-1"
    assert ProcessedWebhookEvent.objects.get(event_id="evt_1").applied is True


@pytest.mark.django_db
def test_redelivered_event_is_skipped(post_webhook, intent_event, make_order, held_p1):
    order = make_order(payment_intent_id="pi_1")
    event = intent_event("evt_1", SUCCEEDED, "pi_1")

    post_webhook(event)
    paid_at = OrderModel.objects.get(id=order.id).paid_at
    r = post_webhook(event)

    assert r.status_code == 200
    assert OrderModel.objects.get(id=order.id).paid_at == paid_at
    assert ProcessedWebhookEvent.objects.count() == 1


@pytest.mark.django_db
def test_new_success_event_keeps_first_paid_at(post_webhook, intent_event, make_order, held_p1):
    order = make_order(payment_intent_id="pi_1")
    post_webhook(intent_event("evt_1", SUCCEEDED, "pi_1"))
    paid_at = OrderModel.objects.get(id=order.id).paid_at

    post_webhook(intent_event("evt_2", SUCCEEDED, "pi_1"))

    assert OrderModel.objects.get(id=order.id).paid_at == paid_at


@pytest.mark.django_db
def test_invalid_signature_changes_nothing(post_webhook, intent_event, make_order, held_p1, catalog, sign):
    order = make_order(payment_intent_id="pi_1")
    event = intent_event("evt_1", SUCCEEDED, "pi_1")

    r = post_webhook(event, signature=sign("{}", secret="whsec_wrong"))

    assert r.status_code == 400
    assert r.json()["error"] == "invalid_webhook"
    assert OrderModel.objects.get(id=order.id).paid_at is None
    assert catalog.lookup(["p1"])["p1"].status == ProductStatus.RESERVED
    assert ProcessedWebhookEvent.objects.count() == 0


@pytest.mark.django_db
def test_missing_signature_is_rejected(client):
    r = client.post("/api/payment/webhook", data="{}", content_type="application/json")
    assert r.status_code == 400


@pytest.mark.django_db
def test_expired_signature_is_rejected(client, intent_event, sign):
    import json

    body = json.dumps(intent_event("evt_1", SUCCEEDED, "pi_1"))
    r = client.post(
        "/api/payment/webhook",
        data=body,
        content_type="application/json",
        HTTP_STRIPE_SIGNATURE=sign(body, timestamp=int(time.time()) - 3600),
    )
    assert r.status_code == 400


@pytest.mark.django_db
def test_signed_but_malformed_event_is_rejected(post_webhook):
    r = post_webhook({"id": "evt_1", "type": SUCCEEDED})
    assert r.status_code == 400


@pytest.mark.django_db
def test_event_without_order_is_acknowledged(post_webhook, intent_event, held_p1, catalog):
    r = post_webhook(intent_event("evt_1", SUCCEEDED, "pi_unknown"))

    assert r.status_code == 200
    assert OrderModel.objects.count() == 0
    # the ledger only records events that matched an order
    assert ProcessedWebhookEvent.objects.count() == 0
    # the sale is still finalised in the catalog
    assert catalog.lookup(["p1"])["p1"].status == ProductStatus.SOLD


@pytest.mark.django_db
def test_failure_event_records_reason_and_releases_products(post_webhook, intent_event, make_order, held_p1, catalog):
    order = make_order(payment_intent_id="pi_1", payment_status=PaymentStatus.PENDING, order_status=OrderStatus.PENDING)
    event = intent_event("evt_1", FAILED, "pi_1", last_payment_error={"message": "Your card was declined."})

    r = post_webhook(event)

    assert r.status_code == 200
    obj = OrderModel.objects.get(id=order.id)
    assert obj.payment_status == "failed"
    assert obj.failure_reason == "Your card was declined."
    product = catalog.lookup(["p1"])["p1"]
    assert product.status == ProductStatus.AVAILABLE
    assert product.reserved_by is None


@pytest.mark.django_db
def test_failure_without_error_details(post_webhook, intent_event, make_order):
    order = make_order(payment_intent_id="pi_1", payment_status=PaymentStatus.PENDING, order_status=OrderStatus.PENDING)
    post_webhook(intent_event("evt_1", FAILED, "pi_1", product_ids=()))
    assert OrderModel.objects.get(id=order.id).failure_reason == "Unknown error"


@pytest.mark.django_db
def test_failure_after_success_is_stale(post_webhook, intent_event, make_order):
    order = make_order(payment_intent_id="pi_1")
    post_webhook(intent_event("evt_1", SUCCEEDED, "pi_1", product_ids=()))

    r = post_webhook(intent_event("evt_2", FAILED, "pi_1", product_ids=(), last_payment_error={"message": "late"}))

    assert r.status_code == 200
    obj = OrderModel.objects.get(id=order.id)
    assert obj.payment_status == "completed"
    assert obj.failure_reason is None
    assert ProcessedWebhookEvent.objects.get(event_id="evt_2").applied is False


@pytest.mark.django_db
def test_refund_cancels_the_order(post_webhook, make_order):
    order = make_order(payment_intent_id="pi_1")
    charge = {"id": "ch_1", "object": "charge", "payment_intent": "pi_1", "amount_refunded": 1000}

    r = post_webhook({"id": "evt_9", "type": REFUNDED, "data": {"object": charge}})

    assert r.status_code == 200
    obj = OrderModel.objects.get(id=order.id)
    assert obj.payment_status == "refunded"
    assert obj.order_status == "cancelled"
    assert obj.refunded_at is not None


@pytest.mark.django_db
def test_success_after_refund_is_stale(post_webhook, intent_event, make_order):
    order = make_order(payment_intent_id="pi_1")
    charge = {"id": "ch_1", "object": "charge", "payment_intent": "pi_1"}
    post_webhook({"id": "evt_9", "type": REFUNDED, "data": {"object": charge}})

    post_webhook(intent_event("evt_10", SUCCEEDED, "pi_1", product_ids=()))

    assert OrderModel.objects.get(id=order.id).payment_status == "refunded"


@pytest.mark.django_db
def test_unhandled_event_types_are_acknowledged(post_webhook, make_order):
    order = make_order(payment_intent_id="pi_1")
    r = post_webhook({"id": "evt_1", "type": "customer.created", "data": {"object": {"id": "cus_1"}}})
    assert r.status_code == 200
    assert OrderModel.objects.get(id=order.id).updated_at == order.updated_at
    assert ProcessedWebhookEvent.objects.count() == 0


@pytest.mark.django_db
def test_store_failure_returns_500_and_redelivery_succeeds(post_webhook, intent_event, make_order, monkeypatch):
    order = make_order(payment_intent_id="pi_1")
    event = intent_event("evt_1", SUCCEEDED, "pi_1", product_ids=())

    def broken(self, order_id, patch):
        raise DatabaseError("connection lost")

    with monkeypatch.context() as m:
        m.setattr("apps.orders.repository.OrderRepository.apply_status_update", broken)
        r = post_webhook(event)
    assert r.status_code == 500
    assert r.json()["error"] == "reconciliation_failed"
    assert ProcessedWebhookEvent.objects.count() == 0

    r = post_webhook(event)
    assert r.status_code == 200
    assert OrderModel.objects.get(id=order.id).paid_at is not None


@pytest.mark.django_db
def test_hosted_checkout_sale_is_finalised_without_holder(post_webhook, intent_event, add_product, catalog):
    add_product("p2")
    post_webhook(intent_event("evt_1", SUCCEEDED, "pi_9", buyer_id="", product_ids=("p2",)))
    product = catalog.lookup(["p2"])["p2"]
    assert product.status == ProductStatus.SOLD
    assert product.reserved_by is None
