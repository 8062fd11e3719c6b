"""Checkout domain service.

``CheckoutService`` prices a cart, gates it against live inventory and hands
the payment off to the processor, either as an embedded payment intent or as
a hosted checkout session. It never creates orders: the order record comes
later, from the client confirmation or from the processor webhook.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from .domain import (
    CatalogPort,
    IntentHandle,
    PaymentProcessorPort,
    PricedCart,
    ProcessorError,
    SessionLine,
    ShippingAddress,
    UnavailableProducts,
    find_unavailable,
)
from .pricing import PricingEngine

logger = logging.getLogger("checkout.service")

SHIPPING_LINE_NAME = "Shipping"


def intent_metadata(buyer_id: str, priced: PricedCart) -> Dict[str, str]:
    """Metadata attached to every intent so webhooks can be reconciled.

    ``productIds`` lets the reconciler finalise or release the catalog
    reservation even when no order has been created yet.
    """
    return {
        "buyerId": buyer_id,
        "itemCount": str(priced.item_count),
        "subtotal": str(priced.subtotal),
        "shippingFee": str(priced.shipping_fee),
        "productIds": ",".join(priced.product_ids),
    }


class CheckoutService:
    """Domain service behind the checkout endpoints.

    Args:
        catalog: CatalogPort used for lookups and reservations.
        processor: PaymentProcessorPort used to start payments.
        currency: Lowercase ISO currency code of every charge.
        min_charge_amount: Smallest total the processor accepts.
        reservation_ttl: Lifetime of a checkout reservation, in seconds.
    """

    def __init__(
        self,
        catalog: CatalogPort,
        processor: PaymentProcessorPort,
        currency: str = "jpy",
        min_charge_amount: int = 50,
        reservation_ttl: int = 1800,
    ):
        self.catalog = catalog
        self.processor = processor
        self.currency = currency
        self.reservation_ttl = reservation_ttl
        self.pricing = PricingEngine(catalog, min_charge_amount)

    def validate_and_price(self, raw_items: Iterable[Any], address: Optional[ShippingAddress] = None) -> PricedCart:
        return self.pricing.validate_and_price(raw_items, address)

    def check_availability(
        self, priced: PricedCart, holder: Optional[str] = None, accept_sold_to_holder: bool = False
    ) -> None:
        """Raise ``UnavailableProducts`` listing every line that cannot be sold.

        Reads the catalog again rather than trusting the snapshot taken for
        pricing, so the check reflects the latest state. A product missing
        from the pricing snapshot stays ``not_found`` even if it has
        reappeared since, because the cart was priced without it.
        """
        fresh = self.catalog.lookup(priced.product_ids)
        products = {pid: p for pid, p in fresh.items() if pid in priced.products}
        unavailable = find_unavailable(priced.lines, products, holder, accept_sold_to_holder)
        if unavailable:
            logger.info(
                "cart has unavailable products",
                extra={"unavailable": [u.as_dict() for u in unavailable]},
            )
            raise UnavailableProducts(unavailable)

    def create_payment_intent(
        self,
        buyer_id: str,
        raw_items: Iterable[Any],
        address: Optional[ShippingAddress] = None,
    ) -> IntentHandle:
        """Price, gate, reserve and open a payment intent for the exact total.

        Steps:
            1. Validate and price the cart from catalog data.
            2. Check availability of every line.
            3. Reserve every product for the buyer (all or nothing).
            4. Create the processor intent; on failure release the
               reservation taken in step 3.

        Args:
            buyer_id: Authenticated buyer; also the reservation holder.
            raw_items: Cart entries as sent by the client.
            address: Optional destination for shipping fee and intent.

        Returns:
            IntentHandle: Client secret, intent id and charged amount.

        Raises:
            EmptyCart, ShippingAddressRequired, AmountTooLow: From pricing.
            UnavailableProducts: When a product is gone or held by someone
                else, including a reservation race lost at step 3.
            ProcessorError: When the processor refuses the intent.
        """
        priced = self.validate_and_price(raw_items, address)
        self.check_availability(priced, holder=buyer_id)

        conflicts = self.catalog.reserve(buyer_id, priced.product_ids, self.reservation_ttl)
        if conflicts:
            logger.info(
                "reservation lost to a concurrent checkout",
                extra={"buyer_id": buyer_id, "unavailable": [c.as_dict() for c in conflicts]},
            )
            raise UnavailableProducts(conflicts)

        try:
            handle = self.processor.create_intent(
                priced.total,
                self.currency,
                description=f"User {buyer_id} - {priced.item_count} items purchase",
                metadata=intent_metadata(buyer_id, priced),
                shipping=address,
            )
        except ProcessorError:
            # compensating action for step 3
            self.catalog.release(buyer_id, priced.product_ids)
            raise

        logger.info(
            "payment intent created",
            extra={
                "buyer_id": buyer_id,
                "payment_intent_id": handle.payment_intent_id,
                "amount": handle.amount,
                "item_count": priced.item_count,
            },
        )
        return handle

    def create_checkout_session(
        self,
        raw_items: Iterable[Any],
        origin: str,
        address: Optional[ShippingAddress] = None,
        buyer_id: str = "",
    ) -> str:
        """Create a hosted checkout session priced from the catalog.

        No reservation is taken: finalisation after payment accepts products
        that are still available.

        Returns:
            str: The processor session id.
        """
        priced = self.validate_and_price(raw_items, address)
        self.check_availability(priced, holder=buyer_id or None)

        lines: List[SessionLine] = []
        for line in priced.lines:
            product = priced.products[line.product_id]
            lines.append(SessionLine(product.title, product.price, line.quantity, product.image))
        if priced.shipping_fee:
            lines.append(SessionLine(SHIPPING_LINE_NAME, priced.shipping_fee, 1))

        origin = origin.rstrip("/")
        session_id = self.processor.create_checkout_session(
            lines,
            self.currency,
            success_url=f"{origin}/?success=true",
            cancel_url=f"{origin}/cart?canceled=true",
            metadata=intent_metadata(buyer_id, priced),
        )
        logger.info("checkout session created", extra={"session_id": session_id, "total": priced.total})
        return session_id
