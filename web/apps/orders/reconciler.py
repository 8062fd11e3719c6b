"""Webhook reconciliation: processor events to order status.

``verify_event`` authenticates a delivery against the raw request body before
anything else happens. ``WebhookReconciler`` then settles the catalog
reservation recorded on the payment intent and moves the matching order
through its payment lifecycle.

Guarantees:
- an event id that already changed an order is skipped;
- payment status only moves forward (see ``domain.plan_transition``);
- an event for an intent without an order is a benign miss, acknowledged
  without touching the order store;
- store failures propagate so the processor redelivers, and every step is
  safe to run again.
"""

import json
import logging
from typing import List, Optional

import stripe
from django.db import transaction
from django.utils import timezone

from apps.checkout.domain import CatalogPort

from .domain import EventType, InvalidWebhook, intent_id_of, plan_transition
from .idempotency import already_processed, claim_event
from .repository import OrderRepository

logger = logging.getLogger("orders.reconciler")

APPLIED = "applied"
STALE = "stale"
DUPLICATE = "duplicate"
NO_ORDER = "no_order"
IGNORED = "ignored"

HANDLED_EVENTS = {e.value for e in EventType}


def verify_event(payload: bytes, signature: Optional[str], secret: str, tolerance: int = 300) -> dict:
    """Authenticate a webhook delivery and return the parsed event.

    Args:
        payload: Raw, unparsed request body.
        signature: Value of the ``Stripe-Signature`` header.
        secret: Webhook signing secret.
        tolerance: Maximum age of the signed timestamp, in seconds.

    Returns:
        dict: The event with at least ``type`` and ``data.object``.

    Raises:
        InvalidWebhook: Missing or invalid signature, or a malformed event.
    """
    if not secret:
        logger.error("webhook secret is not configured")
        raise InvalidWebhook()
    if not signature:
        raise InvalidWebhook("Missing signature.")
    try:
        body = payload.decode("utf-8")
        stripe.WebhookSignature.verify_header(body, signature, secret, tolerance)
        event = json.loads(body)
    except stripe.SignatureVerificationError as e:
        logger.warning("webhook signature invalid", extra={"error": str(e)})
        raise InvalidWebhook("Invalid signature.") from e
    except ValueError as e:
        raise InvalidWebhook("Malformed event.") from e

    data = event.get("data") if isinstance(event, dict) else None
    if not isinstance(event, dict) or not isinstance(event.get("type"), str) \
            or not isinstance(data, dict) or not isinstance(data.get("object"), dict):
        raise InvalidWebhook("Malformed event.")
    return event


def _product_ids(payload: dict) -> List[str]:
    metadata = payload.get("metadata") or {}
    raw = metadata.get("productIds") or ""
    return [pid for pid in raw.split(",") if pid]


class WebhookReconciler:
    """Apply verified processor events to orders and catalog reservations.

    Args:
        repository: Order store.
        catalog: Catalog used to finalise or release reservations.
    """

    def __init__(self, repository: OrderRepository, catalog: CatalogPort):
        self.repository = repository
        self.catalog = catalog

    def handle(self, event: dict) -> str:
        """Process one verified event.

        Returns:
            str: One of ``applied``, ``stale``, ``duplicate``, ``no_order`` or
            ``ignored``.
        """
        event_id = event.get("id") or ""
        event_type = event["type"]
        payload = event["data"]["object"]
        log_extra = {"event_id": event_id, "event_type": event_type}

        if event_type not in HANDLED_EVENTS:
            logger.info("unhandled event type", extra=log_extra)
            return IGNORED

        if already_processed(event_id):
            logger.info("event already processed", extra=log_extra)
            return DUPLICATE

        self._settle_reservation(event_type, payload, log_extra)

        intent_id = intent_id_of(event_type, payload)
        log_extra["payment_intent_id"] = intent_id
        with transaction.atomic():
            order = self.repository.find_by_payment_intent_id(intent_id, for_update=True)
            if order is None:
                logger.info("no order for payment intent", extra=log_extra)
                return NO_ORDER

            patch = plan_transition(order, event_type, payload, timezone.now())
            if not claim_event(event_id, event_type, order.id, applied=patch is not None):
                logger.info("event already processed", extra=log_extra)
                return DUPLICATE

            if patch is None:
                logger.info(
                    "stale event ignored",
                    extra={**log_extra, "order_id": order.id, "payment_status": order.payment_status.value},
                )
                return STALE

            updated = self.repository.apply_status_update(order.id, patch)

        logger.info(
            "order reconciled",
            extra={
                **log_extra,
                "order_id": updated.id,
                "payment_status": updated.payment_status.value,
                "order_status": updated.order_status.value,
            },
        )
        return APPLIED

    def _settle_reservation(self, event_type: str, payload: dict, log_extra: dict):
        """Finalise or release the products recorded on the intent.

        Runs whether or not an order exists yet: the reservation belongs to
        the payment, not to the order.
        """
        product_ids = _product_ids(payload)
        if not product_ids:
            return
        holder = (payload.get("metadata") or {}).get("buyerId") or ""

        if event_type == EventType.INTENT_SUCCEEDED.value:
            conflicts = self.catalog.finalize(holder, product_ids)
            if conflicts:
                logger.error(
                    "paid products could not be marked sold",
                    extra={**log_extra, "conflicts": [c.as_dict() for c in conflicts]},
                )
        elif event_type == EventType.INTENT_FAILED.value and holder:
            released = self.catalog.release(holder, product_ids)
            logger.info("reservation released", extra={**log_extra, "released": released})
