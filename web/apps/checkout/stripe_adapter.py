"""Stripe implementation of ``PaymentProcessorPort``.

The secret key is passed per request and never logged. Processor calls are
not retried here: a failed intent surfaces to the buyer, who can retry the
checkout.
"""

import logging
from typing import Dict, List, Optional

import stripe
from django.conf import settings

from .domain import IntentHandle, PaymentProcessorPort, ProcessorError, SessionLine, ShippingAddress

logger = logging.getLogger("checkout.stripe")

SHIPPING_COUNTRY = "JP"


def _shipping(address: ShippingAddress, fallback_name: str) -> dict:
    return {
        "name": address.name or fallback_name,
        "address": {
            "line1": address.line1,
            "line2": address.line2 or "",
            "city": address.city,
            "state": address.prefecture,
            "postal_code": address.postal_code,
            "country": SHIPPING_COUNTRY,
        },
    }


class StripeProcessor(PaymentProcessorPort):
    """Creates payment intents and hosted checkout sessions with Stripe."""

    def __init__(self, api_key: str | None = None):
        self.api_key = api_key or settings.STRIPE_SECRET_KEY

    def create_intent(
        self,
        amount: int,
        currency: str,
        *,
        description: str,
        metadata: Dict[str, str],
        shipping: Optional[ShippingAddress] = None,
    ) -> IntentHandle:
        params = {
            "amount": amount,
            "currency": currency,
            "description": description,
            "metadata": metadata,
            "automatic_payment_methods": {"enabled": True},
        }
        if shipping is not None:
            params["shipping"] = _shipping(shipping, metadata.get("buyerId", ""))

        try:
            intent = stripe.PaymentIntent.create(api_key=self.api_key, **params)
        except stripe.StripeError as e:
            logger.error("payment intent creation failed", extra={"error_type": type(e).__name__, "amount": amount})
            raise ProcessorError(getattr(e, "user_message", None)) from e
        return IntentHandle(client_secret=intent.client_secret, payment_intent_id=intent.id, amount=intent.amount)

    def create_checkout_session(
        self,
        lines: List[SessionLine],
        currency: str,
        *,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> str:
        line_items = []
        for line in lines:
            product_data = {"name": line.name}
            if line.image:
                product_data["images"] = [line.image]
            line_items.append(
                {
                    "price_data": {
                        "currency": currency,
                        "product_data": product_data,
                        "unit_amount": line.unit_amount,
                    },
                    "quantity": line.quantity,
                }
            )

        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode="payment",
                payment_method_types=["card"],
                line_items=line_items,
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata,
                payment_intent_data={"metadata": metadata},
            )
        except stripe.StripeError as e:
            logger.error("checkout session creation failed", extra={"error_type": type(e).__name__})
            raise ProcessorError(getattr(e, "user_message", None)) from e
        return session.id
