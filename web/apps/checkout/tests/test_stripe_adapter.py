"""Unit tests for the Stripe processor adapter (Stripe calls are patched)."""
from types import SimpleNamespace

import pytest
import stripe

from apps.checkout.domain import ProcessorError, SessionLine, ShippingAddress
from apps.checkout.stripe_adapter import StripeProcessor


def test_create_intent_sends_exact_amount_and_shipping(monkeypatch):
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(id="pi_123", client_secret="pi_123_secret_abc", amount=kwargs["amount"])

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create, raising=True)
    address = ShippingAddress(prefecture="Tokyo", city="Shibuya", line1="1-2-3", postal_code="150-0001")

    handle = StripeProcessor(api_key="sk_test_x").create_intent(
        2700, "jpy", description="User buyer-1 - 1 items purchase", metadata={"buyerId": "buyer-1"}, shipping=address
    )

    assert handle.payment_intent_id == "pi_123"
    assert handle.client_secret == "pi_123_secret_abc"
    assert handle.amount == 2700
    assert captured["api_key"] == "sk_test_x"
    assert captured["currency"] == "jpy"
    assert captured["automatic_payment_methods"] == {"enabled": True}
    assert captured["shipping"]["name"] == "buyer-1"
    assert captured["shipping"]["address"]["state"] == "Tokyo"
    assert captured["shipping"]["address"]["country"] == "JP"


def test_stripe_errors_become_processor_errors(monkeypatch):
    def fake_create(**kwargs):
        raise stripe.StripeError("card declined")

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create, raising=True)
    with pytest.raises(ProcessorError) as exc:
        StripeProcessor(api_key="sk_test_x").create_intent(1000, "jpy", description="d", metadata={})
    assert str(exc.value) == "processor_error"


def test_checkout_session_line_items(monkeypatch):
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(id="cs_123")

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create, raising=True)
    lines = [SessionLine("Camera", 12000, 1, "https://img/c.jpg"), SessionLine("Shipping", 700, 1)]

    session_id = StripeProcessor(api_key="sk_test_x").create_checkout_session(
        lines, "jpy", success_url="https://s/?success=true", cancel_url="https://s/cart?canceled=true",
        metadata={"productIds": "p1"},
    )

    assert session_id == "cs_123"
    assert captured["mode"] == "payment"
    first, shipping = captured["line_items"]
    assert first["price_data"] == {
        "currency": "jpy",
        "product_data": {"name": "Camera", "images": ["https://img/c.jpg"]},
        "unit_amount": 12000,
    }
    assert shipping["price_data"]["product_data"] == {"name": "Shipping"}
    assert captured["payment_intent_data"] == {"metadata": {"productIds": "p1"}}
