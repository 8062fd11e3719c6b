"""API tests for the payment intent and hosted checkout endpoints.

The catalog and the processor are the in-process stubs from
``apps.checkout.adapters`` (see ``conftest.py``).
"""
import httpx
import pytest

from apps.checkout.domain import ProductStatus, ShippingPayer

INTENT_URL = "/api/payment/create-intent"
SESSION_URL = "/api/checkout"

TOKYO = {"prefecture": "Tokyo", "city": "Shibuya", "line1": "1-2-3", "postalCode": "150-0001", "name": "Hanako"}


def _post(client, url, body, **headers):
    return client.post(url, data=body, content_type="application/json", **headers)


# ---- create-intent ----
@pytest.mark.django_db
def test_create_intent_requires_authentication(client, add_product):
    add_product("p1")
    r = _post(client, INTENT_URL, {"items": [{"productId": "p1"}]})
    assert r.status_code == 401


@pytest.mark.django_db
def test_create_intent_rejects_tampered_token(client, add_product, auth_header):
    add_product("p1")
    token = auth_header()["HTTP_AUTHORIZATION"] + "x"
    r = _post(client, INTENT_URL, {"items": [{"productId": "p1"}]}, HTTP_AUTHORIZATION=token)
    assert r.status_code == 401


@pytest.mark.django_db
def test_create_intent_prices_from_catalog_and_reserves(client, add_product, processor, catalog, auth_header):
    add_product("p1", price=1000, shipping_payer=ShippingPayer.BUYER)
    body = {"items": [{"productId": "p1", "quantity": 2, "price": 1}], "shippingAddress": TOKYO}

    r = _post(client, INTENT_URL, body, **auth_header("buyer-1"))

    assert r.status_code == 200, r.content
    data = r.json()
    assert data["amount"] == 2700
    intent = processor.intents[0]
    assert data["paymentIntentId"] == intent["id"]
    assert data["clientSecret"].startswith(intent["id"])
    assert intent["currency"] == "jpy"
    assert intent["description"] == "User buyer-1 - 1 items purchase"
    assert intent["metadata"] == {
        "buyerId": "buyer-1",
        "itemCount": "1",
        "subtotal": "2000",
        "shippingFee": "700",
        "productIds": "p1",
    }
    assert intent["shipping"].prefecture == "Tokyo"

    product = catalog.lookup(["p1"])["p1"]
    assert product.status == ProductStatus.RESERVED
    assert product.reserved_by == "buyer-1"


@pytest.mark.django_db
def test_create_intent_accepts_legacy_item_ids(client, add_product, processor, auth_header):
    add_product("p1", price=800)
    r = _post(client, INTENT_URL, {"items": [{"id": "p1", "quantity": 1}]}, **auth_header())
    assert r.status_code == 200
    assert r.json()["amount"] == 800


@pytest.mark.django_db
def test_create_intent_rejects_unknown_top_level_fields(client, add_product, auth_header):
    add_product("p1")
    r = _post(client, INTENT_URL, {"items": [{"productId": "p1"}], "amount": 1}, **auth_header())
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_request"
    assert "amount" in r.json()["fields"]


@pytest.mark.django_db
def test_create_intent_empty_cart(client, processor, auth_header):
    r = _post(client, INTENT_URL, {"items": [{"quantity": 3}]}, **auth_header())
    assert r.status_code == 400
    assert r.json()["error"] == "empty_cart"
    assert processor.intents == []


@pytest.mark.django_db
def test_create_intent_requires_address_for_buyer_paid_shipping(client, add_product, processor, auth_header):
    add_product("p1", shipping_payer=ShippingPayer.BUYER)
    r = _post(client, INTENT_URL, {"items": [{"productId": "p1"}]}, **auth_header())
    assert r.status_code == 400
    assert r.json()["error"] == "shipping_address_required"
    assert processor.intents == []


@pytest.mark.django_db
def test_create_intent_amount_too_low(client, add_product, auth_header):
    add_product("p1", price=10)
    r = _post(client, INTENT_URL, {"items": [{"productId": "p1"}]}, **auth_header())
    assert r.status_code == 400
    assert r.json()["error"] == "amount_too_low"


@pytest.mark.django_db
def test_create_intent_lists_every_unavailable_product(client, add_product, processor, catalog, auth_header):
    add_product("p1", status=ProductStatus.SOLD)
    add_product("p2")
    add_product("p3", status=ProductStatus.RESERVED, reserved_by="buyer-2")

    r = _post(
        client,
        INTENT_URL,
        {"items": [{"productId": "p1"}, {"productId": "p2"}, {"productId": "p3"}]},
        **auth_header("buyer-1"),
    )

    assert r.status_code == 409
    body = r.json()
    assert body["error"] == "unavailable_products"
    assert body["unavailableProducts"] == [
        {"productId": "p1", "reason": "sold"},
        {"productId": "p3", "reason": "reserved"},
    ]
    assert processor.intents == []
    # nothing is reserved when the gate fails
    assert catalog.lookup(["p2"])["p2"].status == ProductStatus.AVAILABLE


@pytest.mark.django_db
def test_create_intent_retry_keeps_own_reservation(client, add_product, processor, auth_header):
    add_product("p1", status=ProductStatus.RESERVED, reserved_by="buyer-1")
    r = _post(client, INTENT_URL, {"items": [{"productId": "p1"}]}, **auth_header("buyer-1"))
    assert r.status_code == 200
    assert len(processor.intents) == 1


@pytest.mark.django_db
def test_processor_failure_releases_the_reservation(client, add_product, processor, catalog, auth_header):
    add_product("p1")
    processor.fail_with = "Your card was declined."

    r = _post(client, INTENT_URL, {"items": [{"productId": "p1"}]}, **auth_header())

    assert r.status_code == 500
    assert r.json() == {"error": "processor_error", "message": "Your card was declined."}
    product = catalog.lookup(["p1"])["p1"]
    assert product.status == ProductStatus.AVAILABLE
    assert product.reserved_by is None


@pytest.mark.django_db
def test_catalog_outage_maps_to_503(client, monkeypatch, auth_header):
    class DownCatalog:
        def lookup(self, product_ids):
            raise httpx.ConnectError("boom")

    monkeypatch.setattr("apps.checkout.providers.get_catalog", lambda: DownCatalog(), raising=True)
    r = _post(client, INTENT_URL, {"items": [{"productId": "p1"}]}, **auth_header())
    assert r.status_code == 503
    assert r.json()["error"] == "upstream_unavailable"


@pytest.mark.django_db
def test_create_intent_response_carries_request_id(client, add_product, auth_header):
    add_product("p1")
    r = _post(client, INTENT_URL, {"items": [{"productId": "p1"}]}, HTTP_X_REQUEST_ID="rid-42", **auth_header())
    assert r["X-Request-ID"] == "rid-42"


# ---- hosted checkout ----
@pytest.mark.django_db
def test_checkout_session_adds_shipping_line(client, add_product, processor, catalog):
    add_product("p1", price=1200, shipping_payer=ShippingPayer.BUYER, image="https://img/p1.jpg")
    body = {"items": [{"productId": "p1", "quantity": 1}], "shippingAddress": {"prefecture": "Osaka"}}

    r = _post(client, SESSION_URL, body, HTTP_ORIGIN="https://shop.example")

    assert r.status_code == 200, r.content
    session = processor.sessions[0]
    assert r.json() == {"sessionId": session["id"]}
    assert [(l.name, l.unit_amount, l.quantity) for l in session["lines"]] == [
        ("Product p1", 1200, 1),
        ("Shipping", 700, 1),
    ]
    assert session["lines"][0].image == "https://img/p1.jpg"
    assert session["success_url"] == "https://shop.example/?success=true"
    assert session["cancel_url"] == "https://shop.example/cart?canceled=true"
    assert session["metadata"]["productIds"] == "p1"
    assert session["metadata"]["buyerId"] == ""
    # hosted checkout takes no reservation
    assert catalog.lookup(["p1"])["p1"].status == ProductStatus.AVAILABLE


@pytest.mark.django_db
def test_checkout_session_without_buyer_shipping_has_no_shipping_line(client, add_product, processor, auth_header):
    add_product("p1", price=500)
    r = _post(client, SESSION_URL, {"items": [{"productId": "p1", "quantity": 2}]}, **auth_header("buyer-7"))
    assert r.status_code == 200
    session = processor.sessions[0]
    assert [l.name for l in session["lines"]] == ["Product p1"]
    assert session["metadata"]["buyerId"] == "buyer-7"


@pytest.mark.django_db
def test_checkout_session_rejects_sold_products(client, add_product, processor):
    add_product("p1", status=ProductStatus.SOLD)
    r = _post(client, SESSION_URL, {"items": [{"productId": "p1"}]})
    assert r.status_code == 409
    assert r.json()["unavailableProducts"] == [{"productId": "p1", "reason": "sold"}]
    assert processor.sessions == []
