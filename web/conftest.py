"""Shared fixtures for the gateway tests.

Every test runs against the in-process stubs (catalog, processor, user
directory, notifier) with a clean cache, so no network is ever involved.
"""
import hashlib
import hmac
import json
import time

import pytest
from django.core.cache import cache

from apps.checkout import adapters as checkout_adapters
from apps.checkout.auth import issue_identity_token
from apps.checkout.domain import CatalogProduct, ProductStatus, ShippingPayer
from apps.orders import adapters as orders_adapters

WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False
    settings.STRIPE_WEBHOOK_SECRET = WEBHOOK_SECRET
    cache.clear()
    checkout_adapters.catalog_stub.clear()
    checkout_adapters.processor_stub.clear()
    orders_adapters.user_directory_stub.clear()
    orders_adapters.notifier_stub.clear()
    yield


@pytest.fixture
def catalog():
    return checkout_adapters.catalog_stub


@pytest.fixture
def processor():
    return checkout_adapters.processor_stub


@pytest.fixture
def notifier():
    return orders_adapters.notifier_stub


@pytest.fixture
def directory():
    return orders_adapters.user_directory_stub


@pytest.fixture
def add_product(catalog):
    """Seed the catalog stub; keyword overrides go to ``CatalogProduct``."""
    def _add(product_id, price=1000, **overrides):
        fields = {
            "title": f"Product {product_id}",
            "seller_id": "seller-1",
            "seller_name": "Seller One",
            "status": ProductStatus.AVAILABLE,
            "shipping_payer": ShippingPayer.SELLER,
        }
        fields.update(overrides)
        return catalog.put(CatalogProduct(id=product_id, price=price, **fields))
    return _add


@pytest.fixture
def auth_header():
    """Return the ``HTTP_AUTHORIZATION`` kwarg for the Django test client."""
    def _header(uid="buyer-1"):
        return {"HTTP_AUTHORIZATION": f"Bearer {issue_identity_token(uid)}"}
    return _header


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a ``Stripe-Signature`` header value for ``payload``."""
    ts = int(time.time()) if timestamp is None else timestamp
    mac = hmac.new(secret.encode(), f"{ts}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={ts},v1={mac}"


@pytest.fixture
def post_webhook(client):
    """POST a signed processor event to the webhook endpoint."""
    def _post(event: dict, signature: str | None = None):
        body = json.dumps(event)
        return client.post(
            "/api/payment/webhook",
            data=body,
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE=signature if signature is not None else sign_payload(body),
        )
    return _post


def make_event(event_id, event_type, obj):
    return {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}


@pytest.fixture
def intent_event():
    """Build a payment intent event the way the processor delivers it."""
    def _event(event_id, event_type, intent_id, buyer_id="buyer-1", product_ids=("p1",), **fields):
        obj = {
            "id": intent_id,
            "object": "payment_intent",
            "metadata": {"buyerId": buyer_id, "productIds": ",".join(product_ids)},
        }
        obj.update(fields)
        return make_event(event_id, event_type, obj)
    return _event


@pytest.fixture
def sign():
    return sign_payload


@pytest.fixture
def make_order(db):
    """Store an order directly through the repository."""
    from apps.orders.domain import OrderDraft, OrderItem, OrderStatus, PaymentStatus
    from apps.orders.repository import OrderRepository

    def _make(buyer_id="buyer-1", payment_intent_id="pi_1", price=1000, shipping_fee=0,
              payment_status=PaymentStatus.COMPLETED, order_status=OrderStatus.CONFIRMED, product_id="p1"):
        item = OrderItem(product_id=product_id, product_name=f"Product {product_id}", price=price,
                         quantity=1, seller_id="seller-1", seller_name="Seller One")
        draft = OrderDraft(
            buyer_id=buyer_id,
            buyer_name="Hanako",
            items=[item],
            subtotal=price,
            shipping_fee=shipping_fee,
            total_amount=price + shipping_fee,
            payment_intent_id=payment_intent_id,
            payment_status=payment_status,
            order_status=order_status,
        )
        return OrderRepository().create(draft)
    return _make
